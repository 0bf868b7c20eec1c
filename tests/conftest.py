from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "zeromoney" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from zeromoney.ledger.constants import HALVING_PERIOD  # noqa: E402
from zeromoney.runtime import metrics  # noqa: E402
from zeromoney.runtime.token import ZeroToken  # noqa: E402
from zeromoney.testing.sigtools import account_id, endorse_claim  # noqa: E402

AUTHORITY_LABEL = "authority"
T0 = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = int(now)

    def __call__(self) -> int:
        return self.now

    def set_era(self, started_at: int, era: int) -> None:
        self.now = int(started_at) + int(era) * HALVING_PERIOD


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def deployer() -> str:
    return account_id("deployer")


@pytest.fixture
def token(clock: FakeClock, deployer: str) -> ZeroToken:
    return ZeroToken.create(controller=deployer, authority_key=account_id(AUTHORITY_LABEL), clock=clock)


@pytest.fixture
def claim_for(token: ZeroToken):
    """claim_for(account, identifier) claims with a valid authority endorsement."""

    def _claim(account: str, identifier: int):
        sig = endorse_claim(authority_label=AUTHORITY_LABEL, identifier=identifier, claimant=account)
        return token.claim(account, identifier, sig)

    return _claim
