from __future__ import annotations

import hashlib
import json

import httpx

from boulder_console.api.auth import password_digest
from boulder_console.net.session import InMemoryNavigator


def test_password_digest_matches_server_scheme() -> None:
    expected = hashlib.md5(b"s3cret:admin").hexdigest()
    assert password_digest("admin", "s3cret") == expected
    assert len(password_digest("", "")) == 32


async def test_login_sends_digest_and_reports_success(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/login"
        body = json.loads(request.content)
        assert body == {"username": "admin", "password": password_digest("admin", "s3cret")}
        return httpx.Response(
            200,
            json={"code": 0, "msg": "success"},
            headers={"set-cookie": "access_token=tok; Path=/"},
            request=request,
        )

    async with make_client(handler, path="/login") as client:
        envelope = await client.login("  admin ", "s3cret")
        assert client.transport.cookies.get("access_token") == "tok"

    assert envelope == {"success": True, "message": "success"}


async def test_login_with_nonzero_code_is_a_failure(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": 1, "msg": "invalid credentials"}, request=request)

    async with make_client(handler, path="/login") as client:
        envelope = await client.login("admin", "wrong")

    assert envelope == {"success": False, "message": "invalid credentials"}


async def test_login_401_on_login_page_returns_message_without_navigation(make_client) -> None:
    navigator = InMemoryNavigator("/login")
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(401, json={"code": 401, "msg": "username or password incorrect"}, request=request)

    async with make_client(handler, navigator=navigator) as client:
        envelope = await client.login("admin", "wrong")

    assert envelope == {"success": False, "message": "username or password incorrect"}
    assert navigator.history == []
    assert calls == ["/api/login"]


async def test_login_unreachable_backend_uses_default_message(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler, path="/login") as client:
        envelope = await client.login("admin", "s3cret")

    assert envelope == {"success": False, "message": "Login failed"}


async def test_check_auth_status(make_client) -> None:
    status = {"code": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/auth/status"
        return httpx.Response(status["code"], json={"code": 0}, request=request)

    async with make_client(handler, path="/login") as client:
        assert await client.check_auth_status() is True
        status["code"] = 401
        assert await client.check_auth_status() is False


async def test_check_auth_status_false_on_network_error(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with make_client(handler) as client:
        assert await client.check_auth_status() is False


async def test_explicit_logout_clears_cookies_and_navigates(make_client) -> None:
    navigator = InMemoryNavigator("/buckets")
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"code": 0, "msg": "success"}, request=request)

    async with make_client(handler, navigator=navigator) as client:
        client.transport.cookies.set("access_token", "tok", domain="example.local")
        await client.logout()
        assert not client.transport.cookies

    assert calls == ["/api/logout"]
    assert navigator.current_path() == "/login"


async def test_check_auth_status_401_does_not_log_out(make_client) -> None:
    navigator = InMemoryNavigator("/buckets")
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(401, json={"code": 401, "msg": "unauthorized"}, request=request)

    async with make_client(handler, navigator=navigator) as client:
        client.transport.cookies.set("access_token", "tok", domain="example.local")
        assert await client.check_auth_status() is False
        assert client.transport.cookies.get("access_token") == "tok"

    assert calls == ["/api/auth/status"]
    assert navigator.history == []
