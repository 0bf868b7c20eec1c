from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional, Tuple

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from zeromoney.structured_logging import log_event

# Polled endpoints; logged at DEBUG so scrapes do not drown tx traffic.
_QUIET_PATHS: Tuple[str, ...] = ("/v1/health", "/v1/metrics")


def _level_for(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path in _QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` JSON line per request.

    Rejected txs carry the ledger error code (`error_code`), which the
    TokenError handler leaves on `request.state`. Responses get an
    `x-request-id` header, echoing the caller's when supplied.

    ZEROMONEY_LOG_REQUESTS=0 disables it (default on).
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("ZEROMONEY_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("zeromoney.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        path = str(request.url.path or "")

        status = 500
        err: Optional[str] = None
        try:
            response = await call_next(request)
            status = int(response.status_code)
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception as e:
            err = f"{type(e).__name__}: {e}"
            raise
        finally:
            log_event(
                self._logger,
                "http_request",
                level=_level_for(path, status),
                request_id=request_id,
                method=request.method,
                path=path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error_code=getattr(request.state, "error_code", None),
                error=err,
            )
