"""
Pytest configuration and fixtures for Turvo connector tests.
"""

import threading
from collections import defaultdict

import httpx
import pytest

from turvo_connector.auth import TokenManager
from turvo_connector.client import TurvoClient
from turvo_connector.config import TurvoConfig

TOKEN_PATH = "/v1/oauth/token"
LIST_PATH = "/v1/shipments/list"


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TurvoStub:
    """
    MockTransport handler that routes by URL path.

    Each path holds a queue of responders (callables taking the request).
    Responders are consumed in order; the last one is reused for any
    further requests to that path.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, list] = defaultdict(list)
        self._lock = threading.Lock()

    def add(self, path: str, *responders) -> None:
        self._routes[path].extend(responders)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            queue = self._routes.get(request.url.path)
            if not queue:
                return httpx.Response(500, text=f"no stub for {request.url.path}")
            responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def respond(status_code: int = 200, **kwargs):
    """Responder returning a fresh httpx.Response on every call."""
    return lambda request: httpx.Response(status_code, **kwargs)


def token_body(access_token: str = "tok-1", refresh_token: str = "ref-1", expires_in=3600) -> dict:
    body = {"access_token": access_token, "refresh_token": refresh_token, "token_type": "bearer"}
    if expires_in is not None:
        body["expires_in"] = expires_in
    return body


def list_envelope(shipments: list[dict], start: int = 0, more_available: bool = False) -> dict:
    return {
        "Status": "SUCCESS",
        "details": {
            "shipments": shipments,
            "pagination": {
                "start": start,
                "pageSize": len(shipments),
                "totalRecordsInPage": len(shipments),
                "moreAvailable": more_available,
                "lastObjectKey": "key-" + str(start),
            },
        },
    }


@pytest.fixture
def config():
    """Fully configured password-grant settings."""
    return TurvoConfig(
        base_url="https://api.turvo.test",
        client_id="client-abc",
        client_secret="secret-xyz",
        api_key="key-123",
        username="ops@example.com",
        password="hunter2",
        tenant="acme",
        default_customer_id=777,
        timeout=10.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub():
    """Stub Turvo with a working token endpoint."""
    turvo = TurvoStub()
    turvo.add(TOKEN_PATH, respond(200, json=token_body()))
    return turvo


@pytest.fixture
def http_client(stub):
    client = httpx.Client(transport=httpx.MockTransport(stub))
    yield client
    client.close()


@pytest.fixture
def tokens(config, http_client, clock):
    return TokenManager(config, http_client, clock=clock)


@pytest.fixture
def client(config, http_client, tokens):
    return TurvoClient(config, http_client=http_client, token_manager=tokens)


@pytest.fixture
def sample_shipment_data():
    """Full shipment record as returned by GET shipments/:id."""
    return {
        "id": 5001,
        "customId": "PO-1001",
        "ltlShipment": False,
        "startDate": {"date": "2024-03-01T14:00:00Z", "timeZone": "UTC"},
        "endDate": {"date": "2024-03-02T18:00:00Z", "timeZone": "UTC"},
        "createdDate": "2024-02-28T09:15:00Z",
        "status": {"code": {"key": "2102", "value": "Tendered"}},
        "lane": {"start": "Chicago, IL", "end": "Detroit, MI"},
        "customerOrder": [
            {
                "id": 91,
                "customer": {"id": 3001, "name": "Acme Foods"},
                "totalMiles": 283.5,
            }
        ],
        "phase": {"key": "100", "value": "Planning"},
        "transportation": {
            "mode": {"key": "24105", "value": "TL"},
            "serviceType": {"key": "24304", "value": "Standard"},
        },
        "equipment": [{"type": {"key": "1200", "value": "Van"}}],
        "services": [{"key": "2001", "value": "Liftgate"}],
        "margin": {"amount": 350.0, "value": 12.5},
        "someFutureField": {"ignored": True},
    }


@pytest.fixture
def sample_summary_data():
    """List summary: identity and status but no lane."""
    return {
        "id": 5002,
        "customId": "PO-1002",
        "status": {"code": {"key": "2101", "value": "Covered"}},
    }
