from __future__ import annotations

from fastapi import APIRouter, Request

from zeromoney.api.routes_public_parts.common import Json, _executor

router = APIRouter()


@router.get("/accounts/{account}")
def account_get(account: str, request: Request) -> Json:
    ex = _executor(request)
    tok = ex.token
    return {
        "ok": True,
        "account": account,
        "balance": tok.balance_of(account),
        "withdrawable_dividend": tok.withdrawable_dividend_of(account),
        "withdrawn_dividend": tok.withdrawn_dividend_of(account),
        "accumulative_dividend": tok.accumulative_dividend_of(account),
        "blacklisted": tok.is_blacklisted(account),
        "nonce": ex.nonce_of(account),
    }


@router.get("/accounts/{owner}/allowance/{spender}")
def allowance_get(owner: str, spender: str, request: Request) -> Json:
    tok = _executor(request).token
    return {"ok": True, "owner": owner, "spender": spender, "allowance": tok.allowance(owner, spender)}
