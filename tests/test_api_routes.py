from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from zeromoney.api.app import create_app
from zeromoney.ledger.constants import ONE_ZERO, UNBOUNDED_ERA
from zeromoney.runtime.executor import TokenExecutor
from zeromoney.testing.sigtools import account_id, endorse_claim, signed_tx

CHAIN = "zeromoney-api-test"


@pytest.fixture
def ex(tmp_path: Path) -> TokenExecutor:
    return TokenExecutor(
        db_path=str(tmp_path / "zeromoney.db"),
        chain_id=CHAIN,
        controller=account_id("controller"),
        authority_key=account_id("authority"),
    )


@pytest.fixture
def client(ex: TokenExecutor, monkeypatch) -> TestClient:
    monkeypatch.delenv("ZEROMONEY_MAX_TX_BYTES", raising=False)
    monkeypatch.delenv("ZEROMONEY_SIZE_LIMIT_DISABLE", raising=False)
    monkeypatch.delenv("ZEROMONEY_MAX_REQUEST_BYTES", raising=False)
    app = create_app(boot_runtime=False)
    app.state.executor = ex
    return TestClient(app)


def _claim(label: str, identifier: int, nonce: int = 1) -> dict:
    endorsement = endorse_claim(authority_label="authority", identifier=identifier, claimant=account_id(label))
    return signed_tx(
        label=label,
        chain_id=CHAIN,
        tx_type="CLAIM",
        nonce=nonce,
        payload={"identifier": str(identifier), "endorsement": endorsement},
    )


def test_health_reports_readiness() -> None:
    c = TestClient(create_app(boot_runtime=False))
    r = c.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["ready"] is False

    # Data routes need an executor.
    r = c.get("/v1/token")
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "not_ready"


def test_token_info_before_start(client: TestClient) -> None:
    j = client.get("/v1/token").json()
    assert j["ok"] is True
    assert j["symbol"] == "ZERO"
    assert j["decimals"] == 18
    assert j["total_supply"] == 0
    assert j["started_at"] is None
    assert j["current_era"] == UNBOUNDED_ERA
    assert j["emitting"] is False
    assert j["controller"] == account_id("controller")


def test_submit_claim_then_read_account(client: TestClient) -> None:
    alice = account_id("alice")
    r = client.post("/v1/tx/submit", json=_claim("alice", 1))
    assert r.status_code == 200, r.text
    assert r.json()["receipt"]["account"] == alice

    acct = client.get(f"/v1/accounts/{alice}").json()
    assert acct["balance"] == ONE_ZERO
    assert acct["nonce"] == 1
    assert acct["withdrawable_dividend"] == 0
    assert acct["blacklisted"] is False

    claim = client.get("/v1/claims/1").json()
    assert claim["claimed"] is True
    assert claim["claimant"] == alice

    assert client.get("/v1/claims/2").json()["claimed"] is False


def test_error_status_mapping(client: TestClient) -> None:
    client.post("/v1/tx/submit", json=_claim("alice", 1))

    # Replayed nonce
    r = client.post("/v1/tx/submit", json=_claim("alice", 1))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "BAD_NONCE"

    # Identifier already claimed
    r = client.post("/v1/tx/submit", json=_claim("alice", 1, nonce=2))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "CLAIMED"

    # Non-controller START
    r = client.post("/v1/tx/submit", json=signed_tx(label="alice", chain_id=CHAIN, tx_type="START", nonce=2, payload={}))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"

    # Nothing to withdraw
    r = client.post(
        "/v1/tx/submit",
        json=signed_tx(label="alice", chain_id=CHAIN, tx_type="WITHDRAW_DIVIDEND", nonce=2, payload={}),
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ZERO_DIVIDEND"

    # Invalid identifier in a read
    r = client.get("/v1/claims/not-a-number")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_ID"

    # Schema violation (missing sig)
    r = client.post("/v1/tx/submit", json={"tx_type": "BURN", "signer": "x", "nonce": 1})
    assert r.status_code == 400
    assert r.json()["ok"] is False

    # Bad signature
    tx = _claim("bob", 2)
    tx["sig"] = "00" * 64
    r = client.post("/v1/tx/submit", json=tx)
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "UNAUTHORIZED"


def test_allowance_route(client: TestClient) -> None:
    alice, bob = account_id("alice"), account_id("bob")
    client.post("/v1/tx/submit", json=_claim("alice", 1))
    r = client.post(
        "/v1/tx/submit",
        json=signed_tx(label="alice", chain_id=CHAIN, tx_type="APPROVE", nonce=2, payload={"spender": bob, "amount": 5}),
    )
    assert r.status_code == 200, r.text

    j = client.get(f"/v1/accounts/{alice}/allowance/{bob}").json()
    assert j["allowance"] == 5


def test_request_size_limit_returns_413(ex: TokenExecutor, monkeypatch) -> None:
    monkeypatch.setenv("ZEROMONEY_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("ZEROMONEY_SIZE_LIMIT_DISABLE", raising=False)

    app = create_app(boot_runtime=False)
    app.state.executor = ex
    c = TestClient(app)

    payload = {"tx_type": "BURN", "signer": "x", "nonce": 1, "payload": {"pad": "x" * 500}, "sig": ""}
    r = c.post("/v1/tx/submit", json=payload)
    assert r.status_code == 413
    err = r.json()["error"]
    assert err["code"] == "tx_too_large"
    assert err["details"]["limit"] == 128

    # Health is exempt.
    assert c.get("/v1/health").status_code == 200


def test_tx_submit_has_its_own_cap(ex: TokenExecutor, monkeypatch) -> None:
    monkeypatch.delenv("ZEROMONEY_MAX_REQUEST_BYTES", raising=False)
    monkeypatch.delenv("ZEROMONEY_SIZE_LIMIT_DISABLE", raising=False)
    monkeypatch.setenv("ZEROMONEY_MAX_TX_BYTES", "300")

    app = create_app(boot_runtime=False)
    app.state.executor = ex
    c = TestClient(app)

    payload = {"tx_type": "BURN", "signer": "x", "nonce": 1, "payload": {"pad": "x" * 400}, "sig": ""}
    r = c.post("/v1/tx/submit", json=payload)
    assert r.status_code == 413
    assert r.json()["error"]["details"] == {"path": "/v1/tx/submit", "size": len(r.request.content), "limit": 300}


def test_metrics_are_opt_in(client: TestClient, monkeypatch) -> None:
    monkeypatch.delenv("ZEROMONEY_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("ZEROMONEY_METRICS_ENABLED", "1")
    client.post("/v1/tx/submit", json=_claim("alice", 1))
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "zeromoney_claims_total 1" in r.text
    assert f"zeromoney_total_supply {ONE_ZERO}" in r.text
    assert "# TYPE zeromoney_claims_total counter" in r.text
    assert 'zeromoney_tx_applied_total{tx_type="CLAIM"} 1' in r.text


def test_boot_runtime_uses_config(monkeypatch, tmp_path: Path) -> None:
    import zeromoney.api.app as app_mod

    monkeypatch.setenv("ZEROMONEY_CONTROLLER", account_id("controller"))
    monkeypatch.setenv("ZEROMONEY_AUTHORITY_KEY", account_id("authority"))
    monkeypatch.setenv("ZEROMONEY_DB_PATH", str(tmp_path / "boot.db"))
    monkeypatch.setenv("ZEROMONEY_MODE", "dev")
    monkeypatch.delenv("ZEROMONEY_CONFIG_PATH", raising=False)

    sentinel = object()
    monkeypatch.setattr(app_mod, "build_executor", lambda: sentinel)

    app = create_app(boot_runtime=True)
    assert app.state.executor is sentinel


def test_request_log_carries_rejection_code(client: TestClient, caplog) -> None:
    client.post("/v1/tx/submit", json=_claim("alice", 1))

    with caplog.at_level(logging.DEBUG, logger="zeromoney.http"):
        r = client.post("/v1/tx/submit", json=_claim("alice", 1), headers={"x-request-id": "req-42"})

    assert r.status_code == 409
    assert r.headers["x-request-id"] == "req-42"

    http = [rec for rec in caplog.records if rec.name == "zeromoney.http"]
    assert http, "no http_request line logged"
    last = json.loads(http[-1].getMessage())
    assert last["event"] == "http_request"
    assert last["request_id"] == "req-42"
    assert last["status"] == 409
    assert last["error_code"] == "BAD_NONCE"
    assert http[-1].levelno == logging.WARNING
