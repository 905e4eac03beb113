"""Shared fixtures for all test modules."""
import json
import os

import httpx
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("API_KEY", "TEST-KEY-2026")
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("GATEWAY_ACCESS_TOKEN", "TEST-ACCESS-TOKEN")

from app.config import GatewayConfig
from app.dependencies import get_engine
from app.gateway.client import GatewayRefundClient
from app.main import app
from app.repository.store import InMemoryStore, store
from app.services.reconciliation_service import ReconciliationEngine
from seed_data import load_seed_data


class FakeProvider:
    """
    Stand-in for the payment provider's refund endpoint.

    Honors X-Idempotency-Key: a repeated key returns the original refund
    instead of creating a new one. Set ``failure`` to ``(status, payload)`` or
    ``error`` to an httpx exception to simulate provider problems.
    """

    def __init__(self):
        self.calls: list[httpx.Request] = []
        self.refunds_by_key: dict[str, dict] = {}
        self.failure: tuple[int, object] | None = None
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if self.failure is not None:
            status_code, payload = self.failure
            return httpx.Response(status_code, json=payload)

        key = request.headers["X-Idempotency-Key"]
        if key in self.refunds_by_key:
            return httpx.Response(201, json=self.refunds_by_key[key])

        body = json.loads(request.content or b"{}")
        refund = {"id": 900000 + len(self.refunds_by_key), "status": "approved"}
        if "amount" in body:
            refund["amount"] = body["amount"]
        self.refunds_by_key[key] = refund
        return httpx.Response(201, json=refund)

    @property
    def provider_refund_count(self) -> int:
        return len(self.refunds_by_key)

    def bodies(self) -> list[dict]:
        return [json.loads(c.content or b"{}") for c in self.calls]


@pytest.fixture(autouse=True)
def reset_store():
    """Reset in-memory store before each test to ensure isolation."""
    # Swap in fresh tables on the shared singleton
    store.__dict__.update(InMemoryStore().__dict__)
    load_seed_data()
    yield


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def gateway_config():
    return GatewayConfig(provider="MERCADOPAGO", base_url="https://gateway.test", access_token="TEST-ACCESS-TOKEN")


@pytest.fixture
def gateway(provider, gateway_config):
    return GatewayRefundClient(gateway_config, transport=httpx.MockTransport(provider.handler))


@pytest.fixture
def alerts():
    return []


@pytest.fixture
def engine(gateway, alerts):
    return ReconciliationEngine(
        gateway=gateway,
        ledger_write_attempts=3,
        ledger_write_backoff_seconds=0,
        on_unreconciled=alerts.append,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-API-Key": "TEST-KEY-2026", "X-Operator-ID": "ops@example.com"}
