from __future__ import annotations

from fastapi import APIRouter

from zeromoney.api.routes_public_parts.accounts import router as accounts_router
from zeromoney.api.routes_public_parts.claims import router as claims_router
from zeromoney.api.routes_public_parts.health import router as health_router
from zeromoney.api.routes_public_parts.metrics import router as metrics_router
from zeromoney.api.routes_public_parts.token import router as token_router
from zeromoney.api.routes_public_parts.tx import router as tx_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(token_router, prefix="/v1", tags=["token"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(claims_router, prefix="/v1", tags=["claims"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
