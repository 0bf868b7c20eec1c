from __future__ import annotations

from fastapi import APIRouter, Request

from zeromoney.api.routes_public_parts.common import Json, _executor
from zeromoney.api.schemas import TxSubmitRequest

router = APIRouter()


@router.post("/tx/submit")
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Verify, apply and persist one signed tx envelope.

    Returns the receipt; rejections surface as TokenError JSON with the
    mapped HTTP status.
    """
    return _executor(request).submit_tx(body.model_dump())
