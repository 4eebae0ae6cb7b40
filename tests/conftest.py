"""
Shared fixtures.

The fulfillment service is faked with ``httpx.MockTransport`` and timings are
shrunk so auto-revert can be observed within a test.
"""
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from fieldscan.config import MemorySettingsStore, Settings, TimingSettings

ENDPOINT = "https://fulfil.example.org/api"

COMPLETE_STORE = {
    "endpointUrl": ENDPOINT,
    "credential": "secret-key",
    "category": "101-G",
    "volunteerCode": "4242",
}


class FakeService:
    """Records every request and answers per path from a routing table."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def route(self, path: str, response: Any) -> None:
        if callable(response):
            self.routes[path] = response
        else:
            # Fresh copy per request; a response body can only be read once
            status_code, headers, content = response.status_code, response.headers, response.content
            self.routes[path] = lambda request: httpx.Response(status_code, headers=headers, content=content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get(request.url.path)
        if responder is None:
            return httpx.Response(404, json={"message": f"no route {request.url.path}"})
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def make_settings(tmp_path):
    def _make(protocol: str = "two_step", cooldown_ms: int = 100, revert_ms: int = 20, **overrides) -> Settings:
        return Settings(
            _env_file=None,
            protocol=protocol,
            settings_store_path=tmp_path / "operator-settings.json",
            log_directory=tmp_path / "logs",
            timing=TimingSettings(scan_cooldown_ms=cooldown_ms, status_revert_ms=revert_ms),
            **overrides,
        )

    return _make


@pytest.fixture
def complete_store() -> MemorySettingsStore:
    return MemorySettingsStore(dict(COMPLETE_STORE))


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def lookup_reply(orders: Optional[List[Dict[str, Any]]] = None) -> httpx.Response:
    return httpx.Response(200, json={"orders": orders if orders is not None else []})
