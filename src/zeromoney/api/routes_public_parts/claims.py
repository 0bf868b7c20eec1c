from __future__ import annotations

from fastapi import APIRouter, Request

from zeromoney.api.routes_public_parts.common import Json, _token
from zeromoney.ledger.claims import claimant_of, identifier_key, parse_identifier

router = APIRouter()


@router.get("/claims/{identifier}")
def claim_get(identifier: str, request: Request) -> Json:
    tok = _token(request)
    ident = parse_identifier(identifier)
    claimant = claimant_of(tok.state, ident)
    return {
        "ok": True,
        "identifier": identifier_key(ident),
        "claimed": bool(claimant),
        "claimant": claimant or None,
    }
