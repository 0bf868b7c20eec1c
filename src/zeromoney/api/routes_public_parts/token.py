from __future__ import annotations

from fastapi import APIRouter, Request

from zeromoney.api.routes_public_parts.common import Json, _token
from zeromoney.ledger.constants import FINAL_ERA

router = APIRouter()


@router.get("/token")
def token_info(request: Request) -> Json:
    tok = _token(request)
    era = tok.current_halving_era()
    return {
        "ok": True,
        **tok.metadata(),
        "total_supply": tok.total_supply,
        "started_at": tok.started_at,
        "current_era": era,
        "emitting": era <= FINAL_ERA,
        "authority_key": tok.authority_key,
        "controller": tok.controller,
        "chain_id": tok.chain_id,
    }
