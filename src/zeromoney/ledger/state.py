# src/zeromoney/ledger/state.py
from __future__ import annotations

"""Ledger state schema.

ZeroMoney state is a nested JSON-like dict mutated only through the ledger
modules (dividends, claims, access). Layout:

  {
    "token": {"total_supply": int, "dividend_per_share_magnified": int, "started_at": int | None},
    "params": {"chain_id": str, "authority_key": str, "controller": str},
    "accounts": {account: {"balance": int, "withdrawn_dividend": int, "dividend_correction_magnified": int}},
    "allowances": {owner: {spender: int}},
    "claimed": {identifier_hex: claimant},
    "blacklist": {account: True},
    "nonces": {account: int},
  }

Every root is a dict so the state maps onto (root, key) entries, the unit
the journal tracks and the SQLite store persists. All values are plain
ints/strs so they round-trip through canonical JSON (Python ints are
unbounded; magnified values stay exact).
"""

import copy
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from zeromoney.ledger.constants import MAGNITUDE, POOL_ACCOUNT_ID

Json = Dict[str, Any]

_DICT_ROOTS = ("token", "params", "accounts", "allowances", "claimed", "blacklist", "nonces")


def initial_state(*, chain_id: str, controller: str, authority_key: str) -> Json:
    return {
        "token": {
            "total_supply": 0,
            "dividend_per_share_magnified": 0,
            "started_at": None,
        },
        "params": {
            "chain_id": str(chain_id),
            "authority_key": str(authority_key),
            "controller": str(controller),
        },
        "accounts": {},
        "allowances": {},
        "claimed": {},
        "blacklist": {},
        "nonces": {},
    }


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains every root container.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st (or an existing root) has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for root in _DICT_ROOTS:
        v = st.get(root)
        if v is None:
            st[root] = {}
        elif not isinstance(v, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{root!r}] must be dict, got {type(v)}")

    tok = st["token"]
    tok.setdefault("total_supply", 0)
    tok.setdefault("dividend_per_share_magnified", 0)
    tok.setdefault("started_at", None)

    params = st["params"]
    params.setdefault("chain_id", "")
    params.setdefault("authority_key", "")
    params.setdefault("controller", "")

    return st  # type: ignore[return-value]


def new_account() -> Json:
    return {"balance": 0, "withdrawn_dividend": 0, "dividend_correction_magnified": 0}


def audit_supply(st: Json) -> Json:
    """Full-scan consistency check. O(holders): boot and tests only.

    Returns {"ok", "total_supply", "sum_balances", "pool_accrued"}.
    """
    accounts = st.get("accounts") or {}
    tok = st.get("token") or {}
    total = int(tok.get("total_supply", 0))
    rate = int(tok.get("dividend_per_share_magnified", 0))

    sum_balances = 0
    negative: list[str] = []
    for aid, acct in accounts.items():
        bal = int(acct.get("balance", 0))
        if bal < 0:
            negative.append(str(aid))
        sum_balances += bal

    pool = accounts.get(POOL_ACCOUNT_ID) or {}
    pool_accrued = (rate * int(pool.get("balance", 0)) + int(pool.get("dividend_correction_magnified", 0))) // MAGNITUDE

    return {
        "ok": sum_balances == total and not negative and pool_accrued == 0,
        "total_supply": total,
        "sum_balances": sum_balances,
        "pool_accrued": pool_accrued,
        "negative_balances": negative,
    }


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only ledger view used by the API and admission code.
    """

    chain_id: str = ""
    token: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    accounts: Dict[str, Any] = field(default_factory=dict)
    blacklist: Dict[str, Any] = field(default_factory=dict)
    nonces: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "LedgerView":
        return cls(
            chain_id=str((state.get("params") or {}).get("chain_id") or ""),
            token=copy.deepcopy(state.get("token", {})),
            params=copy.deepcopy(state.get("params", {})),
            accounts=copy.deepcopy(state.get("accounts", {})),
            blacklist=copy.deepcopy(state.get("blacklist", {})),
            nonces=copy.deepcopy(state.get("nonces", {})),
        )

    def get_account(self, account_id: str) -> Dict[str, Any]:
        acct = self.accounts.get(account_id)
        return acct if isinstance(acct, dict) else new_account()

    def get_nonce(self, account_id: str) -> int:
        try:
            return int(self.nonces.get(account_id, 0))
        except Exception:
            return 0

    def is_blacklisted(self, account_id: str) -> bool:
        return bool(self.blacklist.get(account_id, False))

    @property
    def controller(self) -> str:
        return str(self.params.get("controller") or "")

    @property
    def authority_key(self) -> str:
        return str(self.params.get("authority_key") or "")

    @property
    def started_at(self) -> Optional[int]:
        v = self.token.get("started_at")
        return None if v is None else int(v)


__all__ = ["Json", "initial_state", "ensure_state", "new_account", "audit_supply", "LedgerView"]
