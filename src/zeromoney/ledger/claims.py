# src/zeromoney/ledger/claims.py
from __future__ import annotations

"""Claim gate: one-time, authority-endorsed minting per external identifier.

Check order is fixed: identifier validity, then endorsement, then the
one-time mark. A bad endorsement on an already-claimed identifier therefore
reports UNAUTHORIZED, never CLAIMED.
"""

from typing import Any, Dict, Optional

from zeromoney.crypto.sig import verify_claim_endorsement
from zeromoney.ledger.constants import CLAIM_AMOUNT, MAX_IDENTIFIER
from zeromoney.ledger.dividends import DividendLedger, as_account
from zeromoney.ledger.journal import StateJournal
from zeromoney.runtime.errors import AlreadyClaimed, InvalidIdentifier, Unauthorized

Json = Dict[str, Any]


def parse_identifier(raw: Any) -> int:
    """Accept an int, a 0x-hex string or a decimal string; return the 256-bit value."""
    if isinstance(raw, bool):
        raise InvalidIdentifier("identifier_not_int", {"identifier": repr(raw)})
    if isinstance(raw, int):
        v = raw
    elif isinstance(raw, str):
        s = raw.strip()
        try:
            v = int(s, 16) if s[:2] in ("0x", "0X") else int(s, 10)
        except ValueError:
            raise InvalidIdentifier("identifier_unparseable", {"identifier": raw}) from None
    else:
        raise InvalidIdentifier("identifier_not_int", {"identifier": repr(raw)})

    if v < 0 or v > MAX_IDENTIFIER:
        raise InvalidIdentifier("identifier_out_of_range", {"identifier": str(raw)})
    return v


def identifier_key(identifier: int) -> str:
    """Canonical key for the claimed set: 0x + 64 hex chars."""
    return "0x" + format(int(identifier), "064x")


def is_claimed(state: Json, identifier: int) -> bool:
    claimed = state.get("claimed")
    return isinstance(claimed, dict) and identifier_key(identifier) in claimed


def claimant_of(state: Json, identifier: int) -> str:
    claimed = state.get("claimed")
    if not isinstance(claimed, dict):
        return ""
    return str(claimed.get(identifier_key(identifier)) or "")


def claim(
    state: Json,
    *,
    caller: str,
    identifier: Any,
    endorsement: Any,
    journal: Optional[StateJournal] = None,
) -> Json:
    caller = as_account(caller, field="caller")
    ident = parse_identifier(identifier)
    if ident == 0:
        raise InvalidIdentifier("zero_identifier", {"identifier": identifier_key(0)})

    authority_key = str((state.get("params") or {}).get("authority_key") or "")
    if not verify_claim_endorsement(
        identifier=ident,
        claimant=str(caller),
        endorsement=endorsement if isinstance(endorsement, str) else "",
        authority_key=authority_key,
    ):
        raise Unauthorized(details={"identifier": identifier_key(ident), "caller": str(caller)})

    key = identifier_key(ident)
    if is_claimed(state, ident):
        raise AlreadyClaimed(details={"identifier": key})

    ledger = DividendLedger(state, journal)
    ledger.mint(caller, CLAIM_AMOUNT)
    ledger.journal.set("claimed", key, str(caller))

    return {"applied": "CLAIM", "identifier": key, "account": str(caller), "amount": CLAIM_AMOUNT}


__all__ = ["parse_identifier", "identifier_key", "is_claimed", "claimant_of", "claim"]
