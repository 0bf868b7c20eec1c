from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from zeromoney.crypto.sig import canonical_tx_message, verify_ed25519_signature
from zeromoney.ledger.journal import StateJournal
from zeromoney.ledger.state import LedgerView, audit_supply, ensure_state, initial_state
from zeromoney.runtime.errors import BadNonce, InvalidArgument, TokenError, Unauthorized
from zeromoney.runtime.metrics import inc_counter, set_gauge
from zeromoney.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from zeromoney.runtime.token import ZeroToken
from zeromoney.runtime.tx_types import TxEnvelope
from zeromoney.structured_logging import log_event

Json = Dict[str, Any]
Handler = Callable[[ZeroToken, StateJournal, str, Json, int], Json]

log = logging.getLogger("zeromoney.executor")


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


# ----------------------------
# Payload helpers
# ----------------------------


def _payload_str(p: Json, name: str, *, required: bool = True) -> Optional[str]:
    v = p.get(name)
    if v is None and not required:
        return None
    if not isinstance(v, str) or not v.strip():
        raise InvalidArgument(f"bad_{name}", {name: repr(v)})
    return v.strip()


def _payload_int(p: Json, name: str) -> int:
    """Amounts may arrive as JSON ints or decimal strings (for clients without bigints)."""
    v = p.get(name)
    if isinstance(v, bool):
        raise InvalidArgument(f"bad_{name}", {name: repr(v)})
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v.strip().isdecimal():
        try:
            return int(v.strip())
        except ValueError:
            # Over the interpreter's int digit limit.
            raise InvalidArgument(f"bad_{name}", {name: f"<{len(v.strip())} digits>"}) from None
    raise InvalidArgument(f"bad_{name}", {name: repr(v)[:64]})


def _payload_bool(p: Json, name: str) -> bool:
    v = p.get(name)
    if not isinstance(v, bool):
        raise InvalidArgument(f"bad_{name}", {name: repr(v)})
    return v


# ----------------------------
# Dispatch
# ----------------------------


def _apply_claim(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.claim(signer, p.get("identifier"), p.get("endorsement"), journal=j)


def _apply_transfer(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.transfer(signer, _payload_str(p, "to"), _payload_int(p, "amount"), now_s=now, journal=j)


def _apply_transfer_from(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.transfer_from(
        signer,
        _payload_str(p, "owner"),
        _payload_str(p, "to"),
        _payload_int(p, "amount"),
        now_s=now,
        journal=j,
    )


def _apply_approve(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.approve(signer, _payload_str(p, "spender"), _payload_int(p, "amount"), journal=j)


def _apply_burn(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.burn(signer, _payload_int(p, "amount"), journal=j)


def _apply_withdraw(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.withdraw_dividend(signer, journal=j)


def _apply_start(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.start(signer, _payload_str(p, "recipient", required=False), now_s=now, journal=j)


def _apply_authority_key_set(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.change_authority_key(signer, _payload_str(p, "authority_key"), journal=j)


def _apply_blacklist_set(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.set_blacklisted(signer, _payload_str(p, "account"), _payload_bool(p, "blacklisted"), journal=j)


def _apply_controller_set(tok: ZeroToken, j: StateJournal, signer: str, p: Json, now: int) -> Json:
    return tok.transfer_control(signer, _payload_str(p, "controller"), journal=j)


_HANDLERS: Dict[str, Handler] = {
    "CLAIM": _apply_claim,
    "TRANSFER": _apply_transfer,
    "TRANSFER_FROM": _apply_transfer_from,
    "APPROVE": _apply_approve,
    "BURN": _apply_burn,
    "WITHDRAW_DIVIDEND": _apply_withdraw,
    "START": _apply_start,
    "AUTHORITY_KEY_SET": _apply_authority_key_set,
    "BLACKLIST_SET": _apply_blacklist_set,
    "CONTROLLER_SET": _apply_controller_set,
}


class TokenExecutor:
    """ZeroMoney executor: signed tx envelopes in, SQLite-persisted ledger out.

    Each submitted tx is verified (signature, nonce), applied through
    ZeroToken and persisted inside the same atomic block. If persistence
    fails the in-memory state is rolled back too, so memory and disk never
    diverge.
    """

    def __init__(
        self,
        *,
        db_path: str,
        chain_id: str,
        controller: str,
        authority_key: str,
        blacklist_controller_at_genesis: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.chain_id = str(chain_id)
        self.db_path = str(db_path)
        _ensure_parent(self.db_path)

        self._db = SqliteDB(path=self.db_path)
        self._store = SqliteLedgerStore(db=self._db)

        if self._store.exists():
            state = ensure_state(self._store.read())
        else:
            state = initial_state(chain_id=self.chain_id, controller=controller, authority_key=authority_key)
            if blacklist_controller_at_genesis:
                # Controller-held balances never trigger emission.
                state["blacklist"][str(controller)] = True
            self._store.write(state)
            log_event(log, "genesis", chain_id=self.chain_id, controller=str(controller))

        st_chain_id = str(state["params"].get("chain_id") or "").strip()
        if st_chain_id != self.chain_id:
            raise ExecutorError(
                f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
            )

        audit = audit_supply(state)
        if not audit["ok"]:
            raise ExecutorError(f"ledger_invariant_violation: {audit!r}. Refuse to start.")

        self.token = ZeroToken(state, clock=clock, on_commit=self._persist)
        set_gauge("total_supply", self.token.total_supply)

    def _persist(self, journal: StateJournal) -> None:
        self._store.apply_changes(journal.changes())

    # ----------------------------
    # Public accessors
    # ----------------------------

    def snapshot(self) -> LedgerView:
        return self.token.snapshot()

    def nonce_of(self, account: str) -> int:
        return int(self.token.state["nonces"].get(str(account), 0))

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Any, *, now_s: Optional[int] = None) -> Json:
        """Verify and apply one signed envelope. Raises TokenError on rejection.

        A rejected tx changes nothing, including the signer's nonce.
        """
        try:
            tx = TxEnvelope.from_json(env)
            msg = canonical_tx_message(
                chain_id=self.chain_id,
                tx_type=tx.tx_type,
                signer=tx.signer,
                nonce=tx.nonce,
                payload=tx.payload,
            )
            if not tx.sig or not verify_ed25519_signature(message=msg, sig=tx.sig, pubkey=tx.signer):
                raise Unauthorized("bad_tx_signature", {"signer": tx.signer})

            handler = _HANDLERS[tx.tx_type]
            with self.token.atomic() as j:
                expected = self.nonce_of(tx.signer) + 1
                if tx.nonce != expected:
                    raise BadNonce(details={"signer": tx.signer, "expected": expected, "got": tx.nonce})

                now = int(now_s) if now_s is not None else self.token.current_time()
                receipt = handler(self.token, j, tx.signer, tx.payload, now)
                j.set("nonces", tx.signer, tx.nonce)
        except TokenError as e:
            inc_counter("tx_rejected_total", code=e.code)
            log_event(log, "tx_rejected", level=logging.WARNING, code=e.code, reason=e.reason)
            raise

        inc_counter("tx_applied_total", tx_type=tx.tx_type)
        return {"ok": True, "tx_type": tx.tx_type, "signer": tx.signer, "nonce": tx.nonce, "receipt": receipt}


# ----------------------------
# Boot
# ----------------------------


@dataclass
class ExecutorBootConfig:
    db_path: str
    chain_id: str
    controller: str
    authority_key: str
    blacklist_controller_at_genesis: bool = True


def boot_config_from_env() -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=os.environ.get("ZEROMONEY_DB_PATH", "./data/zeromoney.db"),
        chain_id=os.environ.get("ZEROMONEY_CHAIN_ID", "zeromoney-dev"),
        controller=os.environ.get("ZEROMONEY_CONTROLLER", ""),
        authority_key=os.environ.get("ZEROMONEY_AUTHORITY_KEY", ""),
        blacklist_controller_at_genesis=(os.environ.get("ZEROMONEY_BLACKLIST_CONTROLLER", "1").strip() != "0"),
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> TokenExecutor:
    """Build a TokenExecutor from an explicit boot config or, if omitted, from env."""
    c = cfg or boot_config_from_env()
    if not c.controller.strip() or not c.authority_key.strip():
        raise ExecutorError("controller and authority_key must be configured. Refuse to start.")
    return TokenExecutor(
        db_path=c.db_path,
        chain_id=c.chain_id,
        controller=c.controller,
        authority_key=c.authority_key,
        blacklist_controller_at_genesis=c.blacklist_controller_at_genesis,
    )
