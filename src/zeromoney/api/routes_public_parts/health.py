from __future__ import annotations

from fastapi import APIRouter, Request

from zeromoney import __version__
from zeromoney.api.routes_public_parts.common import Json

router = APIRouter()


@router.get("/health")
def health(request: Request) -> Json:
    ex = getattr(request.app.state, "executor", None)
    out: Json = {"ok": True, "version": __version__, "ready": ex is not None}
    if ex is not None:
        out["chain_id"] = ex.chain_id
        out["started"] = ex.token.started_at is not None
    return out
