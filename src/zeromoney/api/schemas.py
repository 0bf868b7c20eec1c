from __future__ import annotations

"""Pydantic request schemas for the public API.

These exist only for HTTP input validation; the executor re-validates the
envelope and its payload on its own terms.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., description="One of CLAIM, TRANSFER, TRANSFER_FROM, APPROVE, BURN, ...")
    signer: str = Field(..., description="Signer account id (Ed25519 public key, hex)")
    nonce: int = Field(..., description="Signer's last applied nonce + 1")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(..., description="Ed25519 signature over the canonical tx message")

    model_config = {"extra": "ignore"}
