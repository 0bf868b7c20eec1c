from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet

from zeromoney.runtime.errors import InvalidArgument

TX_TYPES: FrozenSet[str] = frozenset(
    {
        "CLAIM",
        "TRANSFER",
        "TRANSFER_FROM",
        "APPROVE",
        "BURN",
        "WITHDRAW_DIVIDEND",
        "START",
        "AUTHORITY_KEY_SET",
        "BLACKLIST_SET",
        "CONTROLLER_SET",
    }
)


@dataclass(frozen=True)
class TxEnvelope:
    tx_type: str
    signer: str
    nonce: int
    payload: Dict[str, Any]
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "TxEnvelope":
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            raise InvalidArgument("envelope_not_object", {"type": type(j).__name__})

        # Exact match: the signature covers tx_type as submitted.
        tx_type = str(j.get("tx_type") or "")
        if tx_type not in TX_TYPES:
            raise InvalidArgument("unknown_tx_type", {"tx_type": tx_type})

        signer = str(j.get("signer") or "")
        if not signer.strip():
            raise InvalidArgument("missing_signer")
        if signer != signer.strip():
            raise InvalidArgument("bad_signer", {"signer": signer})

        nonce = j.get("nonce")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce <= 0:
            raise InvalidArgument("bad_nonce", {"nonce": repr(nonce)})

        payload = j.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise InvalidArgument("payload_not_object")

        return TxEnvelope(
            tx_type=tx_type,
            signer=signer,
            nonce=nonce,
            payload=dict(payload),
            sig=str(j.get("sig", "") or ""),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "tx_type": self.tx_type,
            "signer": self.signer,
            "nonce": self.nonce,
            "payload": self.payload,
            "sig": self.sig,
        }
