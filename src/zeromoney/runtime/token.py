# src/zeromoney/runtime/token.py
from __future__ import annotations

"""ZeroToken: the externally observed token operations.

Composes the claim gate, emission schedule, access policy and dividend
ledger over one state dict. Every mutating call:

  - runs under a process-wide lock (single writer, linearized)
  - writes only through a StateJournal
  - rolls the journal back if anything raises, so a failed call leaves no
    trace (including a failing on_commit hook, e.g. persistence)

Sub-effect order for transfers is fixed: move at the current rate first,
then distribute. The sender and receiver therefore see this round's rate
exactly like every other holder.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

from zeromoney.ledger import access, claims
from zeromoney.ledger.constants import TOKEN_DECIMALS, TOKEN_NAME, TOKEN_SYMBOL
from zeromoney.ledger.dividends import DividendLedger, as_account, as_amount
from zeromoney.ledger.emission import current_era
from zeromoney.ledger.journal import StateJournal
from zeromoney.ledger.state import LedgerView, ensure_state, initial_state
from zeromoney.runtime.errors import AlreadyStarted, InsufficientAllowance, InvalidArgument
from zeromoney.runtime.metrics import inc_counter, set_gauge
from zeromoney.structured_logging import log_event

Json = Dict[str, Any]
CommitHook = Callable[[StateJournal], None]

log = logging.getLogger("zeromoney.token")


def _wall_clock() -> int:
    return int(time.time())


class ZeroToken:
    def __init__(
        self,
        state: Json,
        *,
        clock: Optional[Callable[[], int]] = None,
        on_commit: Optional[CommitHook] = None,
    ) -> None:
        self.state = ensure_state(state)
        self._clock = clock or _wall_clock
        self._on_commit = on_commit
        self._lock = threading.RLock()

    @classmethod
    def create(
        cls,
        *,
        controller: str,
        authority_key: str,
        chain_id: str = "zeromoney-dev",
        clock: Optional[Callable[[], int]] = None,
    ) -> "ZeroToken":
        st = initial_state(chain_id=chain_id, controller=controller, authority_key=authority_key)
        return cls(st, clock=clock)

    # ----------------------------
    # Atomicity
    # ----------------------------

    @contextmanager
    def atomic(self, journal: Optional[StateJournal] = None) -> Iterator[StateJournal]:
        """All-or-nothing block. Passing an outer journal joins that block instead.

        Effects queued with `journal.after_commit` run only once the outermost
        block has committed, so a failed commit hook leaves no metric or log
        trace either.
        """
        if journal is not None:
            yield journal
            return

        with self._lock:
            j = StateJournal(self.state)
            try:
                yield j
                if self._on_commit is not None and len(j):
                    self._on_commit(j)
            except Exception:
                j.rollback()
                raise
            j.run_after_commit()

    def _now(self, now_s: Optional[int]) -> int:
        return int(now_s) if now_s is not None else int(self._clock())

    def current_time(self) -> int:
        return int(self._clock())

    def _ledger(self, journal: Optional[StateJournal] = None) -> DividendLedger:
        return DividendLedger(self.state, journal)

    def _after_supply_change(self) -> None:
        set_gauge("total_supply", self._ledger().total_supply)

    def _record(
        self, j: StateJournal, event: str, *, counter: Optional[str] = None, supply_changed: bool = False, **fields: Any
    ) -> None:
        """Queue the metric and log side of an operation until it commits."""

        def _emit() -> None:
            if counter:
                inc_counter(counter)
            if supply_changed:
                self._after_supply_change()
            log_event(log, event, **fields)

        j.after_commit(_emit)

    # ----------------------------
    # Claim gate
    # ----------------------------

    def claim(
        self,
        caller: str,
        identifier: Any,
        endorsement: Any,
        *,
        journal: Optional[StateJournal] = None,
    ) -> Json:
        with self.atomic(journal) as j:
            out = claims.claim(self.state, caller=caller, identifier=identifier, endorsement=endorsement, journal=j)
            self._record(
                j,
                "claim",
                counter="claims_total",
                supply_changed=True,
                account=out["account"],
                identifier=out["identifier"],
                amount=out["amount"],
            )

        return out

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def start(
        self,
        caller: str,
        recipient: Optional[str] = None,
        *,
        now_s: Optional[int] = None,
        journal: Optional[StateJournal] = None,
    ) -> Json:
        """Begin emission: double the supply into `recipient` and stamp started_at.

        Single use; a second call raises AlreadyStarted.
        """
        now = self._now(now_s)
        with self.atomic(journal) as j:
            access.require_controller(self.state, caller)
            if self.started_at is not None:
                raise AlreadyStarted(details={"started_at": self.started_at})

            to = as_account(recipient if recipient is not None else caller, field="recipient")
            ledger = self._ledger(j)
            amount = ledger.total_supply
            ledger.mint(to, amount)
            j.set("token", "started_at", now)
            self._record(j, "start", supply_changed=True, recipient=to, amount=amount, started_at=now)

        return {"applied": "START", "recipient": to, "amount": amount, "started_at": now}

    # ----------------------------
    # Transfers
    # ----------------------------

    def _move_and_distribute(self, j: StateJournal, sender: str, to: str, amount: int, now: int) -> Json:
        ledger = self._ledger(j)
        ledger.move(sender, to, amount)

        era = current_era(self.started_at, now)
        # Only the sender's blacklist status suppresses emission.
        eligible = self.started_at is not None and not access.is_blacklisted(self.state, sender)
        reward = ledger.distribute(amount, era=era, eligible=eligible)
        return {"from": sender, "to": to, "amount": amount, "era": era, "reward": reward}

    def _record_transfer(self, j: StateJournal, out: Json) -> None:
        if out["reward"]:
            self._record(
                j,
                "distribute",
                counter="distributions_total",
                supply_changed=True,
                trigger=out["amount"],
                era=out["era"],
                reward=out["reward"],
            )
        self._record(
            j,
            "transfer",
            counter="transfers_total",
            sender=out["from"],
            to=out["to"],
            amount=out["amount"],
            reward=out["reward"],
        )

    def transfer(
        self,
        caller: str,
        to: str,
        amount: int,
        *,
        now_s: Optional[int] = None,
        journal: Optional[StateJournal] = None,
    ) -> Json:
        now = self._now(now_s)
        with self.atomic(journal) as j:
            sender = as_account(caller, field="from")
            out = self._move_and_distribute(j, sender, as_account(to, field="to"), as_amount(amount), now)
            self._record_transfer(j, out)

        return {"applied": "TRANSFER", **out}

    def approve(
        self,
        caller: str,
        spender: str,
        amount: int,
        *,
        journal: Optional[StateJournal] = None,
    ) -> Json:
        owner = as_account(caller, field="owner")
        sp = as_account(spender, field="spender")
        amt = as_amount(amount)
        with self.atomic(journal) as j:
            self._set_allowance(j, owner, sp, amt)
            self._record(j, "approve", owner=owner, spender=sp, amount=amt)

        return {"applied": "APPROVE", "owner": owner, "spender": sp, "amount": amt}

    def _set_allowance(self, j: StateJournal, owner: str, spender: str, amount: int) -> None:
        per_owner = j.entry("allowances", owner, dict)
        if amount:
            per_owner[spender] = amount
        else:
            per_owner.pop(spender, None)
        if not per_owner:
            j.delete("allowances", owner)

    def transfer_from(
        self,
        caller: str,
        owner: str,
        to: str,
        amount: int,
        *,
        now_s: Optional[int] = None,
        journal: Optional[StateJournal] = None,
    ) -> Json:
        now = self._now(now_s)
        with self.atomic(journal) as j:
            spender = as_account(caller, field="spender")
            src = as_account(owner, field="owner")
            amt = as_amount(amount)
            allowed = self.allowance(src, spender)
            if allowed < amt:
                raise InsufficientAllowance(details={"owner": src, "spender": spender, "allowance": allowed, "amount": amt})

            out = self._move_and_distribute(j, src, as_account(to, field="to"), amt, now)
            self._set_allowance(j, src, spender, allowed - amt)
            self._record_transfer(j, out)

        return {"applied": "TRANSFER_FROM", "spender": spender, **out}

    # ----------------------------
    # Burn / dividends
    # ----------------------------

    def burn(self, caller: str, amount: int, *, journal: Optional[StateJournal] = None) -> Json:
        with self.atomic(journal) as j:
            acct = as_account(caller)
            amt = as_amount(amount)
            self._ledger(j).burn(acct, amt)
            self._record(j, "burn", counter="burns_total", supply_changed=True, account=acct, amount=amt)

        return {"applied": "BURN", "account": acct, "amount": amt}

    def withdraw_dividend(self, caller: str, *, journal: Optional[StateJournal] = None) -> Json:
        with self.atomic(journal) as j:
            acct = as_account(caller)
            amount = self._ledger(j).withdraw(acct)
            self._record(j, "withdraw", counter="withdrawals_total", account=acct, amount=amount)

        return {"applied": "WITHDRAW_DIVIDEND", "account": acct, "amount": amount}

    # ----------------------------
    # Privileged operations
    # ----------------------------

    def change_authority_key(self, caller: str, authority_key: str, *, journal: Optional[StateJournal] = None) -> Json:
        with self.atomic(journal) as j:
            access.change_authority_key(self.state, caller, authority_key, journal=j)
            self._record(j, "authority_key_set", authority_key=self.authority_key)

        return {"applied": "AUTHORITY_KEY_SET", "authority_key": self.authority_key}

    def set_blacklisted(
        self, caller: str, account: str, flag: bool, *, journal: Optional[StateJournal] = None
    ) -> Json:
        if not isinstance(flag, bool):
            raise InvalidArgument("flag_not_bool", {"blacklisted": repr(flag)})
        with self.atomic(journal) as j:
            access.set_blacklisted(self.state, caller, account, flag, journal=j)
            self._record(j, "blacklist_set", account=account, blacklisted=flag)

        return {"applied": "BLACKLIST_SET", "account": account.strip(), "blacklisted": flag}

    def transfer_control(self, caller: str, new_controller: str, *, journal: Optional[StateJournal] = None) -> Json:
        with self.atomic(journal) as j:
            access.transfer_control(self.state, caller, new_controller, journal=j)
            self._record(j, "controller_set", controller=self.controller)

        return {"applied": "CONTROLLER_SET", "controller": self.controller}

    # ----------------------------
    # Reads
    # ----------------------------

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._ledger().balance_of(account)

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._ledger().total_supply

    @property
    def dividend_per_share_magnified(self) -> int:
        with self._lock:
            return self._ledger().dividend_per_share_magnified

    def withdrawable_dividend_of(self, account: str) -> int:
        with self._lock:
            return self._ledger().withdrawable_dividend_of(account)

    def withdrawn_dividend_of(self, account: str) -> int:
        with self._lock:
            return self._ledger().withdrawn_dividend_of(account)

    def accumulative_dividend_of(self, account: str) -> int:
        with self._lock:
            return self._ledger().accrued_dividend_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        per_owner = self.state["allowances"].get(owner)
        if not isinstance(per_owner, dict):
            return 0
        return int(per_owner.get(spender, 0))

    def current_halving_era(self, now_s: Optional[int] = None) -> int:
        return current_era(self.started_at, self._now(now_s))

    def is_blacklisted(self, account: str) -> bool:
        return access.is_blacklisted(self.state, account)

    def is_claimed(self, identifier: Any) -> bool:
        return claims.is_claimed(self.state, claims.parse_identifier(identifier))

    @property
    def started_at(self) -> Optional[int]:
        v = self.state["token"].get("started_at")
        return None if v is None else int(v)

    @property
    def authority_key(self) -> str:
        return str(self.state["params"].get("authority_key") or "")

    @property
    def controller(self) -> str:
        return access.controller_of(self.state)

    @property
    def chain_id(self) -> str:
        return str(self.state["params"].get("chain_id") or "")

    def snapshot(self) -> LedgerView:
        with self._lock:
            return LedgerView.from_ledger(self.state)

    def metadata(self) -> Json:
        return {"name": TOKEN_NAME, "symbol": TOKEN_SYMBOL, "decimals": TOKEN_DECIMALS}


__all__ = ["ZeroToken", "CommitHook"]
