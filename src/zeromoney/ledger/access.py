# src/zeromoney/ledger/access.py
from __future__ import annotations

from typing import Any, Dict, Optional

from zeromoney.ledger.journal import StateJournal
from zeromoney.runtime.errors import Forbidden, InvalidArgument

Json = Dict[str, Any]


def _nonempty(v: Any, *, field: str) -> str:
    if not isinstance(v, str) or not v.strip():
        raise InvalidArgument(f"bad_{field}", {field: repr(v)})
    return v.strip()


def controller_of(state: Json) -> str:
    return str((state.get("params") or {}).get("controller") or "")


def is_controller(state: Json, caller: str) -> bool:
    ctl = controller_of(state)
    return bool(ctl) and str(caller) == ctl


def require_controller(state: Json, caller: str) -> None:
    if not is_controller(state, caller):
        raise Forbidden(details={"caller": str(caller)})


def is_blacklisted(state: Json, account: str) -> bool:
    bl = state.get("blacklist")
    if not isinstance(bl, dict):
        return False
    return bool(bl.get(str(account), False))


def set_blacklisted(
    state: Json, caller: str, account: str, flag: bool, *, journal: Optional[StateJournal] = None
) -> None:
    require_controller(state, caller)
    acct = _nonempty(account, field="account")
    j = journal if journal is not None else StateJournal(state)
    if flag:
        j.set("blacklist", acct, True)
    else:
        j.delete("blacklist", acct)


def change_authority_key(
    state: Json, caller: str, authority_key: str, *, journal: Optional[StateJournal] = None
) -> None:
    require_controller(state, caller)
    key = _nonempty(authority_key, field="authority_key")
    j = journal if journal is not None else StateJournal(state)
    j.set("params", "authority_key", key)


def transfer_control(
    state: Json, caller: str, new_controller: str, *, journal: Optional[StateJournal] = None
) -> None:
    require_controller(state, caller)
    ctl = _nonempty(new_controller, field="controller")
    j = journal if journal is not None else StateJournal(state)
    j.set("params", "controller", ctl)


__all__ = [
    "controller_of",
    "is_controller",
    "require_controller",
    "is_blacklisted",
    "set_blacklisted",
    "change_authority_key",
    "transfer_control",
]
