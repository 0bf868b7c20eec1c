from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from zeromoney.api.errors import ApiError
from zeromoney.runtime.token import ZeroToken

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _token(request: Request) -> ZeroToken:
    return _executor(request).token
