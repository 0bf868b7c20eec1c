# src/zeromoney/ledger/dividends.py
from __future__ import annotations

"""Dividend accounting engine.

A single shared rate plus one signed correction term per account lets every
balance change run in O(1) while

    accrued(a) = (rate * balance(a) + correction(a)) // MAGNITUDE

stays exact for every holder. Rules:

  mint(a, x)       balance += x   supply += x   correction(a) -= rate * x
  burn(a, x)       balance -= x   supply -= x   correction(a) += rate * x
  move(a, b, x)    correction(a) += rate * x    correction(b) -= rate * x
  distribute(r)    rate += r * MAGNITUDE // supply, then mint(POOL, r)

The pool is dividend-exempt: whenever the rate moves, its correction absorbs
rate_delta * balance(POOL), so correction(POOL) == -rate * balance(POOL) at
all times and the pool never accrues. The pool's share of a distribution and
the truncated residue both stay in the pool, unallocated.

Every primitive validates before its first write, so a raised TokenError
leaves the state untouched. Nothing here iterates over holders.
"""

from typing import Any, Dict, Optional

from zeromoney.ledger.constants import FINAL_ERA, MAGNITUDE, POOL_ACCOUNT_ID
from zeromoney.ledger.emission import reward_for
from zeromoney.ledger.journal import StateJournal
from zeromoney.ledger.state import ensure_state, new_account
from zeromoney.runtime.errors import InsufficientBalance, InvalidArgument, ZeroDividend

Json = Dict[str, Any]


def as_amount(amount: Any, *, field: str = "amount") -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument("amount_not_int", {field: repr(amount)})
    if amount < 0:
        raise InvalidArgument("negative_amount", {field: amount})
    return amount


def as_account(account: Any, *, field: str = "account") -> str:
    if not isinstance(account, str) or not account.strip():
        raise InvalidArgument("bad_account", {field: repr(account)})
    return account.strip()


class DividendLedger:
    """Invariant-preserving primitives over a ZeroMoney state dict."""

    def __init__(self, state: Json, journal: Optional[StateJournal] = None) -> None:
        self.state = ensure_state(state)
        self.journal = journal if journal is not None else StateJournal(self.state)

    # ---- internal ----

    def _peek(self, account_id: str) -> Json:
        acct = self.state["accounts"].get(account_id)
        return acct if isinstance(acct, dict) else new_account()

    def _account(self, account_id: str) -> Json:
        return self.journal.entry("accounts", account_id, new_account)

    def _add_correction(self, acct: Json, delta: int) -> None:
        acct["dividend_correction_magnified"] = int(acct.get("dividend_correction_magnified", 0)) + delta

    # ---- reads (O(1)) ----

    @property
    def total_supply(self) -> int:
        return int(self.state["token"].get("total_supply", 0))

    @property
    def dividend_per_share_magnified(self) -> int:
        return int(self.state["token"].get("dividend_per_share_magnified", 0))

    def balance_of(self, account_id: str) -> int:
        return int(self._peek(account_id).get("balance", 0))

    def accrued_dividend_of(self, account_id: str) -> int:
        acct = self._peek(account_id)
        magnified = self.dividend_per_share_magnified * int(acct.get("balance", 0)) + int(
            acct.get("dividend_correction_magnified", 0)
        )
        return magnified // MAGNITUDE

    def withdrawn_dividend_of(self, account_id: str) -> int:
        return int(self._peek(account_id).get("withdrawn_dividend", 0))

    def withdrawable_dividend_of(self, account_id: str) -> int:
        return self.accrued_dividend_of(account_id) - self.withdrawn_dividend_of(account_id)

    # ---- primitives ----

    def mint(self, account_id: str, amount: int) -> None:
        aid = as_account(account_id)
        amt = as_amount(amount)
        rate = self.dividend_per_share_magnified

        acct = self._account(aid)
        acct["balance"] = int(acct.get("balance", 0)) + amt
        self._add_correction(acct, -rate * amt)
        self.journal.set("token", "total_supply", self.total_supply + amt)

    def burn(self, account_id: str, amount: int) -> None:
        aid = as_account(account_id)
        amt = as_amount(amount)
        bal = self.balance_of(aid)
        if bal < amt:
            raise InsufficientBalance(details={"account": aid, "balance": bal, "amount": amt})
        rate = self.dividend_per_share_magnified

        acct = self._account(aid)
        acct["balance"] = bal - amt
        self._add_correction(acct, rate * amt)
        self.journal.set("token", "total_supply", self.total_supply - amt)

    def move(self, sender: str, recipient: str, amount: int) -> None:
        src = as_account(sender, field="from")
        dst = as_account(recipient, field="to")
        amt = as_amount(amount)
        bal = self.balance_of(src)
        if bal < amt:
            raise InsufficientBalance(details={"account": src, "balance": bal, "amount": amt})
        shift = self.dividend_per_share_magnified * amt

        a = self._account(src)
        a["balance"] = int(a.get("balance", 0)) - amt
        self._add_correction(a, shift)

        b = self._account(dst)
        b["balance"] = int(b.get("balance", 0)) + amt
        self._add_correction(b, -shift)

    def distribute(self, trigger_amount: int, *, era: int, eligible: bool = True) -> int:
        """Emit reward_for(trigger_amount, era) to all holders pro rata.

        Returns the number of units minted into the pool (0 when inert).
        """
        amt = as_amount(trigger_amount)
        if not eligible or int(era) > FINAL_ERA:
            return 0

        reward = reward_for(amt, era)
        supply = self.total_supply
        if reward == 0 or supply == 0:
            return 0

        delta = reward * MAGNITUDE // supply
        self.journal.set("token", "dividend_per_share_magnified", self.dividend_per_share_magnified + delta)

        # Pool stays exempt from its share of this round.
        pool = self._account(POOL_ACCOUNT_ID)
        self._add_correction(pool, -delta * int(pool.get("balance", 0)))

        self.mint(POOL_ACCOUNT_ID, reward)
        return reward

    def withdraw(self, account_id: str) -> int:
        aid = as_account(account_id)
        w = self.withdrawable_dividend_of(aid)
        if w <= 0:
            raise ZeroDividend(details={"account": aid})

        self.move(POOL_ACCOUNT_ID, aid, w)
        acct = self._account(aid)
        acct["withdrawn_dividend"] = int(acct.get("withdrawn_dividend", 0)) + w
        return w


__all__ = ["DividendLedger", "as_amount", "as_account"]
