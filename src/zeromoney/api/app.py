from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from zeromoney.api.errors import ApiError, api_error_handler, token_error_handler
from zeromoney.api.routes_public import public_router
from zeromoney.api.security import RequestSizeLimitMiddleware
from zeromoney.api.structured_logging import RequestLogMiddleware
from zeromoney.runtime.chain_config import apply_token_config_to_env, load_token_config
from zeromoney.runtime.errors import TokenError
from zeromoney.runtime.executor import build_executor as _build_executor
from zeromoney.structured_logging import configure_structured_logging


def build_executor():
    """Build a TokenExecutor for API runtime.

    Tests monkeypatch `zeromoney.api.app.build_executor` instead of reaching
    into runtime modules.
    """
    return _build_executor()


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": {"code": "bad_request", "message": "invalid request body", "details": {"errors": exc.errors()}},
        },
    )


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load token config, export it to env, attach the executor
      - False: no executor; tests attach their own to app.state.executor
    """
    mode = os.environ.get("ZEROMONEY_MODE", "prod").strip().lower()

    if mode == "prod":
        app = FastAPI(title="ZeroMoney API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="ZeroMoney API")

    if boot_runtime:
        apply_token_config_to_env(load_token_config())
        configure_structured_logging()
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(TokenError, token_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    # Added last runs first: size limit gates before anything is logged or parsed.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.include_router(public_router)
    return app
