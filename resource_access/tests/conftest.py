"""
Shared fixtures for resource access tests.
"""

import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from resource_access.app.adapters.transport import TransportAdapter
from resource_access.app.auth.storage import AuthStore


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier:
    """Collects notifications instead of showing them."""

    def __init__(self):
        self.successes: List[Tuple[str, str]] = []
        self.errors: List[Tuple[str, str]] = []

    def success(self, title: str, description: str) -> None:
        self.successes.append((title, description))

    def error(self, title: str, description: str) -> None:
        self.errors.append((title, description))


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays routes."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def add(self, method: str, path: str, response: Any) -> None:
        if callable(response):
            self.routes[(method, path)] = response
        else:
            # a fresh response per request; httpx binds each one to its request
            self.routes[(method, path)] = lambda request: httpx.Response(
                response.status_code,
                headers=response.headers,
                content=response.content
            )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        return route(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def json_body(self, index: int = -1) -> Any:
        return json.loads(self.requests[index].content)


def envelope(data: Any, status_code: int = 200, **extra: Any) -> httpx.Response:
    body = {"success": True, "data": data}
    body.update(extra)
    return httpx.Response(status_code, json=body)


@pytest.fixture
def clock():
    return FakeClock(1000.0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def auth_store():
    store = AuthStore()
    store.set_auth_data("test-token", {"id": 7, "name": "Operator"})
    return store


@pytest.fixture
def transport(handler, auth_store):
    return TransportAdapter(
        "http://dashboard.test/api",
        auth_store=auth_store,
        transport=httpx.MockTransport(handler)
    )
