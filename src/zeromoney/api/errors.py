from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from zeromoney.runtime.errors import TokenError


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


_TOKEN_ERROR_STATUS: Dict[str, int] = {
    "INVALID_ID": 400,
    "INVALID_ARGUMENT": 400,
    "UNAUTHORIZED": 403,
    "FORBIDDEN": 403,
    "CLAIMED": 409,
    "ALREADY_STARTED": 409,
    "ZERO_DIVIDEND": 409,
    "INSUFFICIENT_BALANCE": 409,
    "INSUFFICIENT_ALLOWANCE": 409,
    "BAD_NONCE": 409,
}


def status_for_token_error(e: TokenError) -> int:
    return _TOKEN_ERROR_STATUS.get(e.code, 400)


def _error_body(code: str, message: str, details: Any) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message, "details": details or {}}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


async def token_error_handler(request: Request, exc: TokenError) -> JSONResponse:
    request.state.error_code = exc.code
    return JSONResponse(
        status_code=status_for_token_error(exc),
        content=_error_body(exc.code, exc.reason, exc.details),
    )
