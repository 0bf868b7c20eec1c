from __future__ import annotations

import pytest

from zeromoney.ledger.constants import FINAL_ERA, ONE_ZERO, POOL_ACCOUNT_ID, UNBOUNDED_ERA
from zeromoney.ledger.state import audit_supply, initial_state
from zeromoney.runtime.errors import (
    AlreadyStarted,
    InsufficientAllowance,
    InsufficientBalance,
    ZeroDividend,
)
from zeromoney.runtime.metrics import counter_value, gauge_value
from zeromoney.runtime.token import ZeroToken
from zeromoney.testing.sigtools import account_id, endorse_claim

ALICE = account_id("alice")
BOB = account_id("bob")
CAROL = account_id("carol")


def almost_equal(actual: int, expected: int) -> None:
    if expected == 0:
        assert actual == 0
    else:
        assert actual in (expected - 1, expected, expected + 1), (actual, expected)


def _withdraw_and_burn_down_to_one(token: ZeroToken, *accounts: str) -> None:
    for a in accounts:
        token.withdraw_dividend(a)
        token.burn(a, token.balance_of(a) - ONE_ZERO)


def test_initial_params(token, deployer) -> None:
    assert token.started_at is None
    assert token.current_halving_era() == UNBOUNDED_ERA
    assert token.total_supply == 0
    assert token.controller == deployer
    assert token.metadata() == {"name": "Zero Money", "symbol": "ZERO", "decimals": 18}


def test_should_not_distribute_before_starting(token, claim_for) -> None:
    claim_for(ALICE, 1)
    out = token.transfer(ALICE, BOB, ONE_ZERO)

    assert out["reward"] == 0
    assert token.balance_of(ALICE) == 0
    assert token.balance_of(BOB) == ONE_ZERO
    assert token.total_supply == ONE_ZERO
    assert token.withdrawable_dividend_of(ALICE) == 0
    assert token.withdrawable_dividend_of(BOB) == 0


def test_should_not_distribute_from_blacklisted_sender(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    token.set_blacklisted(deployer, ALICE, True)
    token.start(deployer)

    token.transfer(ALICE, BOB, ONE_ZERO)
    assert token.total_supply == 2 * ONE_ZERO
    assert token.withdrawable_dividend_of(ALICE) == 0
    assert token.withdrawable_dividend_of(BOB) == 0
    assert token.withdrawable_dividend_of(deployer) == 0


def test_blacklisted_recipient_still_triggers_emission(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    token.set_blacklisted(deployer, BOB, True)
    token.start(deployer)

    out = token.transfer(ALICE, BOB, ONE_ZERO)
    assert out["reward"] == ONE_ZERO
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 2)


def test_should_distribute_and_withdraw(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    token.start(deployer)

    assert token.balance_of(ALICE) == ONE_ZERO
    assert token.balance_of(deployer) == ONE_ZERO
    assert token.total_supply == 2 * ONE_ZERO
    assert token.current_halving_era() == 0
    for a in (ALICE, BOB, deployer):
        assert token.withdrawable_dividend_of(a) == 0

    with pytest.raises(ZeroDividend):
        token.withdraw_dividend(ALICE)

    token.transfer(ALICE, BOB, ONE_ZERO)
    assert token.balance_of(ALICE) == 0
    assert token.balance_of(BOB) == ONE_ZERO
    assert token.balance_of(POOL_ACCOUNT_ID) == ONE_ZERO
    assert token.total_supply == 3 * ONE_ZERO
    almost_equal(token.withdrawable_dividend_of(ALICE), 0)
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 2)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 2)
    assert token.withdrawable_dividend_of(POOL_ACCOUNT_ID) == 0

    token.withdraw_dividend(BOB)
    almost_equal(token.balance_of(BOB), 3 * ONE_ZERO // 2)
    almost_equal(token.balance_of(POOL_ACCOUNT_ID), ONE_ZERO // 2)
    almost_equal(token.withdrawable_dividend_of(BOB), 0)
    almost_equal(token.withdrawn_dividend_of(BOB), ONE_ZERO // 2)
    almost_equal(token.accumulative_dividend_of(BOB), ONE_ZERO // 2)


def test_should_not_distribute_after_final_era(token, claim_for, clock, deployer) -> None:
    claim_for(ALICE, 1)
    token.start(deployer)

    clock.set_era(token.started_at, FINAL_ERA)
    assert token.current_halving_era() == FINAL_ERA

    token.transfer(ALICE, BOB, ONE_ZERO)
    assert token.balance_of(BOB) == ONE_ZERO
    assert token.withdrawable_dividend_of(ALICE) == 0
    assert token.withdrawable_dividend_of(BOB) == 0
    assert token.withdrawable_dividend_of(deployer) == 0

    clock.set_era(token.started_at, FINAL_ERA + 1)
    supply = token.total_supply
    token.transfer(deployer, ALICE, ONE_ZERO)
    assert token.total_supply == supply


@pytest.mark.parametrize("era", [0, 1, 2, 5, FINAL_ERA, FINAL_ERA + 1])
def test_halving_grows_supply_by_shifted_amount(token, claim_for, clock, deployer, era) -> None:
    claim_for(ALICE, 1)
    token.start(deployer)
    clock.set_era(token.started_at, era)

    amount = ONE_ZERO - 12345
    supply = token.total_supply
    token.transfer(ALICE, BOB, amount)

    expected = (amount >> era) if era <= FINAL_ERA else 0
    assert token.total_supply == supply + expected


def test_distribute_and_withdraw_across_eras(token, claim_for, clock, deployer) -> None:
    claim_for(ALICE, 1)
    token.start(deployer)
    claim_for(BOB, 2)
    claim_for(CAROL, 3)
    assert token.total_supply == 4 * ONE_ZERO

    token.transfer(ALICE, BOB, ONE_ZERO)
    almost_equal(token.withdrawable_dividend_of(ALICE), 0)
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 2)
    almost_equal(token.withdrawable_dividend_of(CAROL), ONE_ZERO // 4)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 4)
    _withdraw_and_burn_down_to_one(token, BOB, CAROL, deployer)

    token.transfer(BOB, ALICE, ONE_ZERO)
    almost_equal(token.withdrawable_dividend_of(ALICE), ONE_ZERO // 3)
    almost_equal(token.withdrawable_dividend_of(BOB), 0)
    almost_equal(token.withdrawable_dividend_of(CAROL), ONE_ZERO // 3)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 3)
    _withdraw_and_burn_down_to_one(token, ALICE, CAROL, deployer)

    clock.set_era(token.started_at, 1)
    assert token.current_halving_era() == 1
    token.transfer(ALICE, BOB, ONE_ZERO)
    almost_equal(token.withdrawable_dividend_of(ALICE), 0)
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 6)
    almost_equal(token.withdrawable_dividend_of(CAROL), ONE_ZERO // 6)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 6)
    _withdraw_and_burn_down_to_one(token, BOB, CAROL, deployer)

    clock.set_era(token.started_at, 2)
    token.transfer(BOB, ALICE, ONE_ZERO)
    almost_equal(token.withdrawable_dividend_of(ALICE), ONE_ZERO // 12)
    almost_equal(token.withdrawable_dividend_of(BOB), 0)
    almost_equal(token.withdrawable_dividend_of(CAROL), ONE_ZERO // 12)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 12)
    _withdraw_and_burn_down_to_one(token, ALICE, CAROL, deployer)

    clock.set_era(token.started_at, 3)
    token.transfer(ALICE, BOB, ONE_ZERO)
    almost_equal(token.withdrawable_dividend_of(ALICE), 0)
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 24)
    almost_equal(token.withdrawable_dividend_of(CAROL), ONE_ZERO // 24)
    almost_equal(token.withdrawable_dividend_of(deployer), ONE_ZERO // 24)

    assert audit_supply(token.state)["ok"] is True


def test_should_burn(token, claim_for) -> None:
    claim_for(ALICE, 1)
    token.burn(ALICE, ONE_ZERO // 4)
    assert token.balance_of(ALICE) == 3 * ONE_ZERO // 4
    token.burn(ALICE, ONE_ZERO // 2)
    assert token.balance_of(ALICE) == ONE_ZERO // 4
    assert token.total_supply == ONE_ZERO // 4

    with pytest.raises(InsufficientBalance):
        token.burn(ALICE, ONE_ZERO)


def test_start_is_single_use_and_accepts_recipient(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    claim_for(BOB, 2)
    out = token.start(deployer, CAROL)
    assert out["amount"] == 2 * ONE_ZERO
    assert token.balance_of(CAROL) == 2 * ONE_ZERO
    assert token.total_supply == 4 * ONE_ZERO

    with pytest.raises(AlreadyStarted):
        token.start(deployer)
    assert token.total_supply == 4 * ONE_ZERO


def test_allowance_flow(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    token.start(deployer)

    token.approve(ALICE, BOB, ONE_ZERO // 2)
    assert token.allowance(ALICE, BOB) == ONE_ZERO // 2

    with pytest.raises(InsufficientAllowance):
        token.transfer_from(BOB, ALICE, CAROL, ONE_ZERO)

    out = token.transfer_from(BOB, ALICE, CAROL, ONE_ZERO // 2)
    assert out["reward"] == ONE_ZERO // 2
    assert token.balance_of(CAROL) == ONE_ZERO // 2
    assert token.allowance(ALICE, BOB) == 0
    assert ALICE not in token.state["allowances"]


def test_transfer_from_checks_owner_blacklist(token, claim_for, deployer) -> None:
    claim_for(ALICE, 1)
    token.set_blacklisted(deployer, ALICE, True)
    token.start(deployer)

    token.approve(ALICE, BOB, ONE_ZERO)
    out = token.transfer_from(BOB, ALICE, CAROL, ONE_ZERO)
    assert out["reward"] == 0


def test_concrete_walkthrough(token, claim_for, deployer) -> None:
    pool_recipient = account_id("p")
    claim_for(ALICE, 1)
    assert token.total_supply == ONE_ZERO

    token.start(deployer, pool_recipient)
    assert token.total_supply == 2 * ONE_ZERO
    assert token.balance_of(pool_recipient) == ONE_ZERO

    token.transfer(ALICE, BOB, ONE_ZERO)
    assert token.total_supply == 3 * ONE_ZERO
    assert token.balance_of(POOL_ACCOUNT_ID) == ONE_ZERO
    almost_equal(token.withdrawable_dividend_of(BOB), ONE_ZERO // 2)
    almost_equal(token.withdrawable_dividend_of(pool_recipient), ONE_ZERO // 2)
    assert token.withdrawable_dividend_of(ALICE) == 0

    token.withdraw_dividend(BOB)
    almost_equal(token.balance_of(BOB), 3 * ONE_ZERO // 2)
    almost_equal(token.balance_of(POOL_ACCOUNT_ID), ONE_ZERO // 2)
    almost_equal(token.withdrawn_dividend_of(BOB), ONE_ZERO // 2)


def test_failed_commit_hook_rolls_everything_back(clock, deployer) -> None:
    def _boom(journal):
        raise RuntimeError("disk full")

    st = initial_state(chain_id="t", controller=deployer, authority_key=account_id("authority"))
    tok = ZeroToken(st, clock=clock, on_commit=_boom)

    sig = endorse_claim(authority_label="authority", identifier=9, claimant=ALICE)
    with pytest.raises(RuntimeError):
        tok.claim(ALICE, 9, sig)

    assert tok.total_supply == 0
    assert tok.balance_of(ALICE) == 0
    assert tok.is_claimed(9) is False
    assert tok.state["accounts"] == {}
    assert counter_value("claims_total") == 0
    assert gauge_value("total_supply") == 0
