# src/zeromoney/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from zeromoney.crypto.sig import _decode_bytes

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class TokenConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    db_path: str

    # Genesis parameters; ignored once the ledger exists on disk.
    controller: str
    authority_key: str
    blacklist_controller_at_genesis: bool

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def _is_ed25519_pubkey(s: str) -> bool:
    try:
        return len(_decode_bytes(s)) == 32
    except ValueError:
        return False


def validate_token_config(cfg: TokenConfig) -> None:
    """Fail-fast validation for operator config."""
    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if not isinstance(cfg.controller, str) or not cfg.controller.strip():
        raise ValueError("controller must be a non-empty string")

    if not _is_ed25519_pubkey(str(cfg.authority_key or "")):
        raise ValueError("authority_key must be a 32-byte Ed25519 public key (hex or base64)")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")


def default_token_config() -> TokenConfig:
    # controller/authority_key have no safe default: a node started without
    # a config file or env overrides fails validation.
    return TokenConfig(
        chain_id="zeromoney-dev",
        mode="prod",
        db_path="./data/zeromoney.db",
        controller="",
        authority_key="",
        blacklist_controller_at_genesis=True,
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def _from_mapping(raw: Json, d: TokenConfig) -> TokenConfig:
    return TokenConfig(
        chain_id=_as_str(raw.get("chain_id"), d.chain_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        controller=_as_str(raw.get("controller"), d.controller),
        authority_key=_as_str(raw.get("authority_key"), d.authority_key),
        blacklist_controller_at_genesis=_as_bool(
            raw.get("blacklist_controller_at_genesis"), d.blacklist_controller_at_genesis
        ),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )


def read_token_config_file(path: str) -> TokenConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("token config must be a JSON object")

    cfg = _from_mapping(raw, default_token_config())
    validate_token_config(cfg)
    return cfg


def _env_overrides() -> Json:
    env = {
        "chain_id": "ZEROMONEY_CHAIN_ID",
        "mode": "ZEROMONEY_MODE",
        "db_path": "ZEROMONEY_DB_PATH",
        "controller": "ZEROMONEY_CONTROLLER",
        "authority_key": "ZEROMONEY_AUTHORITY_KEY",
        "blacklist_controller_at_genesis": "ZEROMONEY_BLACKLIST_CONTROLLER",
        "api_host": "ZEROMONEY_API_HOST",
        "api_port": "ZEROMONEY_API_PORT",
        "log_level": "ZEROMONEY_LOG_LEVEL",
    }
    return {k: os.environ[v] for k, v in env.items() if os.environ.get(v)}


def load_token_config(*, config_path: Optional[str] = None) -> TokenConfig:
    """Config file (ZEROMONEY_CONFIG_PATH) wins; otherwise defaults plus env overrides."""
    p = config_path or os.environ.get("ZEROMONEY_CONFIG_PATH")
    if p:
        return read_token_config_file(p)

    cfg = _from_mapping(_env_overrides(), default_token_config())
    validate_token_config(cfg)
    return cfg


def apply_token_config_to_env(cfg: TokenConfig) -> None:
    validate_token_config(cfg)
    os.environ["ZEROMONEY_CHAIN_ID"] = cfg.chain_id
    os.environ["ZEROMONEY_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["ZEROMONEY_DB_PATH"] = cfg.db_path
    os.environ["ZEROMONEY_CONTROLLER"] = cfg.controller
    os.environ["ZEROMONEY_AUTHORITY_KEY"] = cfg.authority_key
    os.environ["ZEROMONEY_BLACKLIST_CONTROLLER"] = "1" if cfg.blacklist_controller_at_genesis else "0"
    os.environ["ZEROMONEY_API_HOST"] = cfg.api_host
    os.environ["ZEROMONEY_API_PORT"] = str(int(cfg.api_port))
    os.environ["ZEROMONEY_LOG_LEVEL"] = cfg.log_level
