from __future__ import annotations

import os
from typing import Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from zeromoney.runtime.metrics import inc_counter

TX_SUBMIT_PATH = "/v1/tx/submit"

# A CLAIM envelope (identifier, endorsement, signer, sig) is well under 1 KiB.
DEFAULT_MAX_TX_BYTES = 16 * 1024
DEFAULT_MAX_REQUEST_BYTES = 64 * 1024


def _env_limit(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        v = int(raw)
    except ValueError:
        return default
    return v if v > 0 else default


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject oversized bodies with 413 before they reach the JSON parser.

    Tx submissions have their own, tighter cap. Both limits apply to the
    declared Content-Length and, for writes, to the buffered body (chunked
    uploads declare none).

    Configure:
      ZEROMONEY_MAX_TX_BYTES (default: 16 KiB, capped by the request limit)
      ZEROMONEY_MAX_REQUEST_BYTES (default: 64 KiB)
      ZEROMONEY_SIZE_LIMIT_DISABLE=1 to disable
    """

    def __init__(
        self,
        app,
        *,
        max_bytes: Optional[int] = None,
        max_tx_bytes: Optional[int] = None,
        exempt_prefixes: Tuple[str, ...] = ("/docs", "/openapi.json", "/v1/health"),
    ):
        super().__init__(app)
        flag = (os.environ.get("ZEROMONEY_SIZE_LIMIT_DISABLE") or "").strip().lower()
        self._enabled = flag not in {"1", "true", "yes", "y", "on"}
        self._max_bytes = int(max_bytes) if max_bytes is not None else _env_limit(
            "ZEROMONEY_MAX_REQUEST_BYTES", DEFAULT_MAX_REQUEST_BYTES
        )
        tx_cap = int(max_tx_bytes) if max_tx_bytes is not None else _env_limit(
            "ZEROMONEY_MAX_TX_BYTES", DEFAULT_MAX_TX_BYTES
        )
        self._max_tx_bytes = min(tx_cap, self._max_bytes)
        self._exempt_prefixes = exempt_prefixes

    def limit_for(self, path: str) -> int:
        return self._max_tx_bytes if path == TX_SUBMIT_PATH else self._max_bytes

    def _too_large(self, path: str, size: int, limit: int) -> JSONResponse:
        inc_counter("requests_too_large_total")
        return JSONResponse(
            status_code=413,
            content={
                "ok": False,
                "error": {
                    "code": "tx_too_large",
                    "message": "Request body too large",
                    "details": {"path": path, "size": size, "limit": limit},
                },
            },
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path or ""
        if not self._enabled or path.startswith(self._exempt_prefixes):
            return await call_next(request)

        limit = self.limit_for(path)

        declared = request.headers.get("content-length") or ""
        if declared.isdigit() and int(declared) > limit:
            return self._too_large(path, int(declared), limit)

        if (request.method or "").upper() in {"POST", "PUT", "PATCH"}:
            body = await request.body()
            if len(body) > limit:
                return self._too_large(path, len(body), limit)

        return await call_next(request)
