from __future__ import annotations

from typing import Any, Callable, Union

import httpx
import pytest

from homekeeper_client.client import AsyncHomeKeeperClient, HomeKeeperClient


BASE_URL = "https://api.homekeeper.test"

Reply = Union[dict[str, Any], Callable[[httpx.Request], httpx.Response]]


class FakeBackend:
    """Scripted stand-in for the HomeKeeper API.

    Each route holds a queue of replies; the last reply repeats once the
    queue is down to one entry.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []
        self.route("GET", "/auth/csrf-token", {"status": 200, "json": {"csrfToken": "csrf-token-1"}})

    def route(self, method: str, path: str, *replies: Reply) -> None:
        self.routes[(method.upper(), path)] = list(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": f"No route for {request.method} {request.url.path}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        spec = dict(reply)
        return httpx.Response(spec.pop("status", 200), **spec)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def client(self, **kwargs: Any) -> HomeKeeperClient:
        transport = httpx.MockTransport(self.handler)
        return HomeKeeperClient(
            base_url=BASE_URL,
            httpx_client=httpx.Client(base_url=BASE_URL, transport=transport),
            **kwargs,
        )

    def async_client(self, **kwargs: Any) -> AsyncHomeKeeperClient:
        transport = httpx.MockTransport(self.handler)
        return AsyncHomeKeeperClient(
            base_url=BASE_URL,
            httpx_client=httpx.AsyncClient(base_url=BASE_URL, transport=transport),
            **kwargs,
        )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
