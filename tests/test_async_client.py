from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from homekeeper_client.csrf import CsrfTokenCache
from homekeeper_client.exceptions import ApiError, SessionExpiredError
from homekeeper_client.request_options import RequestOptions


def test_async_request_unwraps_and_attaches_csrf(backend) -> None:
    backend.route("POST", "/households", {"json": {"data": {"id": "h1"}}})

    async def run() -> object:
        async with backend.async_client() as client:
            return await client.request("/households", RequestOptions(method="POST"))

    assert asyncio.run(run()) == {"id": "h1"}
    assert backend.calls("POST", "/households")[0].headers["x-csrf-token"] == "csrf-token-1"


def test_async_refresh_and_retry(backend) -> None:
    backend.route(
        "POST",
        "/protected",
        {"status": 401, "json": {"error": "Unauthorized"}},
        {"json": {"data": "success"}},
    )
    backend.route("POST", "/auth/refresh", {"json": {}})

    async def run() -> object:
        async with backend.async_client() as client:
            return await client.request("/protected", RequestOptions(method="POST"))

    assert asyncio.run(run()) == "success"
    assert len(backend.calls("POST", "/auth/refresh")) == 1
    assert len(backend.calls("POST", "/protected")) == 2
    assert len(backend.calls("GET", "/auth/csrf-token")) == 1


def test_async_session_expired(backend) -> None:
    backend.route("GET", "/protected", {"status": 401, "json": {"error": "Unauthorized"}})
    backend.route("POST", "/auth/refresh", {"status": 205})

    async def run() -> None:
        async with backend.async_client() as client:
            await client.request("/protected")

    with pytest.raises(SessionExpiredError) as exc_info:
        asyncio.run(run())

    assert exc_info.value.status_code == 205
    assert len(backend.calls("GET", "/protected")) == 1


def test_async_failed_refresh_keeps_original_message(backend) -> None:
    backend.route("GET", "/protected", {"status": 401, "json": {"error": "Token expired"}})
    backend.route("POST", "/auth/refresh", {"status": 400})

    async def run() -> None:
        async with backend.async_client() as client:
            await client.request("/protected")

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(run())

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Token expired"


def test_async_transport_error_propagates(backend) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    backend.route("GET", "/test", refuse)

    async def run() -> None:
        async with backend.async_client() as client:
            await client.request("/test")

    with pytest.raises(httpx.ConnectError):
        asyncio.run(run())


def test_async_resource_methods(backend) -> None:
    backend.route(
        "GET",
        "/households",
        {"json": {"data": [{"id": "h1", "name": "Home", "memberCount": 2, "userRole": "owner"}]}},
    )
    backend.route("POST", "/invitations/redeem", {
        "json": {"data": {"householdId": "h1", "householdName": "Home", "role": "member"}},
    })

    async def run():
        async with backend.async_client() as client:
            households = await client.list_households()
            redeemed = await client.redeem_invitation(" abc123 ")
            return households, redeemed

    households, redeemed = asyncio.run(run())
    assert households[0].member_count == 2
    assert redeemed.household_name == "Home"
    assert json.loads(backend.calls("POST", "/invitations/redeem")[0].content) == {"code": "abc123"}


class RecordingCache(CsrfTokenCache):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    def set(self, token: str) -> None:
        self.writes.append(token)
        super().set(token)


def test_overlapping_requests_each_fetch_and_last_write_wins(backend) -> None:
    backend.route("POST", "/households", {"json": {"data": {}}})
    cache = RecordingCache()

    async def run() -> None:
        both_fetching = asyncio.Event()
        issued: list[str] = []

        async def issue_token(request: httpx.Request) -> httpx.Response:
            issued.append(f"csrf-token-{len(issued) + 1}")
            token = issued[-1]
            if len(issued) == 2:
                both_fetching.set()
            else:
                await asyncio.wait_for(both_fetching.wait(), timeout=1)
            return httpx.Response(200, json={"csrfToken": token})

        backend.route("GET", "/auth/csrf-token", issue_token)
        async with backend.async_client(csrf_cache=cache) as client:
            await asyncio.gather(
                client.request("/households", RequestOptions(method="POST")),
                client.request("/households", RequestOptions(method="POST")),
            )

    asyncio.run(run())

    assert len(backend.calls("GET", "/auth/csrf-token")) == 2
    assert sorted(cache.writes) == ["csrf-token-1", "csrf-token-2"]
    assert cache.token == cache.writes[-1]
    sent = sorted(r.headers["x-csrf-token"] for r in backend.calls("POST", "/households"))
    assert sent == ["csrf-token-1", "csrf-token-2"]
