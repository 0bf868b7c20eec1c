# src/zeromoney/crypto/sig.py
from __future__ import annotations

import base64
import binascii
import hashlib
import json
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

Json = Dict[str, Any]

# Fields covered by a tx signature, in addition to chain_id.
TX_SIGNED_FIELDS = ("tx_type", "signer", "nonce", "payload")


def _decode_bytes(s: str) -> bytes:
    """Hex (optionally 0x-prefixed) first, then base64 / base64url."""
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    hex_part = s[2:] if s[:2] in ("0x", "0X") else s
    try:
        return bytes.fromhex(hex_part)
    except ValueError:
        pass
    try:
        padded = s + "=" * (-len(s) % 4)
        return base64.b64decode(padded.replace("-", "+").replace("_", "/"), validate=True)
    except binascii.Error as e:
        raise ValueError("not hex or base64") from e


def _private_key(privkey: str) -> Ed25519PrivateKey:
    raw = _decode_bytes(privkey)
    # Expanded 64-byte keys carry the seed in the first half.
    seed = raw[:32] if len(raw) == 64 else raw
    if len(seed) != 32:
        raise ValueError("ed25519 privkey must be a 32-byte seed (or 64-byte expanded key)")
    return Ed25519PrivateKey.from_private_bytes(seed)


def _encode_sig(sig: bytes, encoding: str) -> str:
    if encoding == "hex":
        return sig.hex()
    if encoding in {"b64", "base64"}:
        return base64.b64encode(sig).decode("ascii")
    raise ValueError(f"unsupported encoding: {encoding!r}")


def claim_digest(identifier: int, claimant: str) -> bytes:
    """sha256(identifier as 32 big-endian bytes || claimant utf-8).

    Binding the claimant means an endorsement cannot be replayed by another
    caller.
    """
    return hashlib.sha256(int(identifier).to_bytes(32, "big") + str(claimant).encode("utf-8")).digest()


def canonical_tx_message(*, chain_id: str, tx_type: str, signer: str, nonce: int, payload: Json) -> bytes:
    msg = json.dumps(
        {
            "chain_id": str(chain_id),
            "tx_type": str(tx_type),
            "signer": str(signer),
            "nonce": int(nonce),
            "payload": payload if isinstance(payload, dict) else {},
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return msg.encode("utf-8")


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    """False for any malformed key or signature as well as a wrong one."""
    try:
        Ed25519PublicKey.from_public_bytes(_decode_bytes(pubkey)).verify(_decode_bytes(sig), message)
    except (InvalidSignature, ValueError):
        return False
    return True


def sign_ed25519(*, message: bytes, privkey: str, encoding: str = "hex") -> str:
    return _encode_sig(_private_key(privkey).sign(message), encoding)


def public_key_hex(privkey: str) -> str:
    """Account id (raw public key, hex) for an Ed25519 seed."""
    return _private_key(privkey).public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()


def sign_claim_endorsement(*, identifier: int, claimant: str, privkey: str, encoding: str = "hex") -> str:
    return sign_ed25519(message=claim_digest(identifier, claimant), privkey=privkey, encoding=encoding)


def verify_claim_endorsement(*, identifier: int, claimant: str, endorsement: str, authority_key: str) -> bool:
    if not authority_key or not isinstance(endorsement, str):
        return False
    return verify_ed25519_signature(message=claim_digest(identifier, claimant), sig=endorsement, pubkey=authority_key)


def sign_tx_envelope_dict(*, tx: Json, chain_id: str, privkey: str, encoding: str = "hex") -> Json:
    """Copy of `tx` with normalized signed fields and `sig` filled in.

    Extra keys are carried over unsigned.
    """
    payload = tx.get("payload")
    out = dict(tx)
    out.update(
        tx_type=str(tx.get("tx_type") or ""),
        signer=str(tx.get("signer") or ""),
        nonce=int(tx.get("nonce") or 0),
        payload=payload if isinstance(payload, dict) else {},
    )
    msg = canonical_tx_message(chain_id=chain_id, **{k: out[k] for k in TX_SIGNED_FIELDS})
    out["sig"] = sign_ed25519(message=msg, privkey=privkey, encoding=encoding)
    return out
