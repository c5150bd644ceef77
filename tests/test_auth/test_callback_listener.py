"""Tests for the local OAuth redirect listener.

The listener binds real sockets on 127.0.0.1; port ``0`` lets the OS pick
a free port so tests never collide with each other or with a running
sign-in.
"""

from __future__ import annotations

import asyncio
import errno
import socket
from typing import Iterator

import httpx
import pytest

from ocalogin.auth.callback_listener import CallbackListener
from ocalogin.exceptions import CallbackServerError, NoAvailablePortError

REDIRECT_BASE = "https://backend.example.test/auth/oca"


@pytest.fixture
def occupied_port() -> Iterator[int]:
    """A port held by a listening socket for the duration of the test."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


async def _request(method: str, port: int, path: str) -> httpx.Response:
    async with httpx.AsyncClient(trust_env=False, timeout=5.0) as client:
        return await client.request(method, f"http://127.0.0.1:{port}{path}")


# ---------------------------------------------------------------------------
# Start-up and port selection
# ---------------------------------------------------------------------------


class TestStartup:
    @pytest.mark.asyncio
    async def test_binds_and_returns_localhost_uri(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        try:
            uri = await listener.get_callback_uri()
            assert listener.is_running
            assert listener.port > 0
            assert uri == f"http://localhost:{listener.port}"
        finally:
            listener.stop()

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_listener(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        try:
            uris = await asyncio.gather(*(listener.get_callback_uri() for _ in range(8)))
            assert len(set(uris)) == 1
            assert uris[0].endswith(f":{listener.port}")
        finally:
            listener.stop()

    @pytest.mark.asyncio
    async def test_running_listener_returns_same_uri(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        try:
            first = await listener.get_callback_uri()
            second = await listener.get_callback_uri()
            assert first == second
        finally:
            listener.stop()

    @pytest.mark.asyncio
    async def test_skips_port_in_use(self, occupied_port: int) -> None:
        listener = CallbackListener([occupied_port, 0], REDIRECT_BASE, idle_timeout=None)
        try:
            await listener.get_callback_uri()
            assert listener.port not in (0, occupied_port)
        finally:
            listener.stop()

    @pytest.mark.asyncio
    async def test_all_ports_in_use(self, occupied_port: int) -> None:
        listener = CallbackListener([occupied_port], REDIRECT_BASE, idle_timeout=None)
        with pytest.raises(NoAvailablePortError, match=f"tried: {occupied_port}"):
            await listener.get_callback_uri()
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_other_bind_error_is_fatal(self, monkeypatch: pytest.MonkeyPatch) -> None:
        attempts: list[int] = []

        def _refuse(address: tuple[str, int], listener: CallbackListener) -> None:
            attempts.append(address[1])
            raise OSError(errno.EACCES, "Permission denied")

        monkeypatch.setattr("ocalogin.auth.callback_listener._CallbackServer", _refuse)
        listener = CallbackListener([80, 0], REDIRECT_BASE, idle_timeout=None)
        with pytest.raises(CallbackServerError) as exc_info:
            await listener.get_callback_uri()
        assert not isinstance(exc_info.value, NoAvailablePortError)
        assert attempts == [80]

    @pytest.mark.asyncio
    async def test_failed_start_can_be_retried(self, occupied_port: int) -> None:
        listener = CallbackListener([occupied_port], REDIRECT_BASE, idle_timeout=None)
        with pytest.raises(NoAvailablePortError):
            await listener.get_callback_uri()
        listener.ports = [0]
        try:
            await listener.get_callback_uri()
            assert listener.is_running
        finally:
            listener.stop()


# ---------------------------------------------------------------------------
# Stop and idle timeout
# ---------------------------------------------------------------------------


class TestStop:
    def test_stop_before_start_is_noop(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE)
        listener.stop()
        listener.dispose()
        assert listener.port == 0
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        await listener.get_callback_uri()
        listener.stop()
        listener.stop()
        assert listener.port == 0
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_stop_releases_port(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        await listener.get_callback_uri()
        port = listener.port
        listener.stop()
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)

        again = CallbackListener([port], REDIRECT_BASE, idle_timeout=None)
        try:
            await again.get_callback_uri()
            assert again.port == port
        finally:
            again.stop()

    @pytest.mark.asyncio
    async def test_stop_during_startup(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        task = asyncio.create_task(listener.get_callback_uri())
        await asyncio.sleep(0)
        listener.stop()
        with pytest.raises(CallbackServerError, match="stopped while starting"):
            await task
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_idle_timeout_stops_listener(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=0.05)
        await listener.get_callback_uri()
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)
        assert not listener.is_running
        assert listener.port == 0

    @pytest.mark.asyncio
    async def test_stop_does_not_block_the_loop(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        await listener.get_callback_uri()
        loop = asyncio.get_running_loop()

        started = loop.time()
        listener.stop()
        assert loop.time() - started < 0.05
        assert listener.port == 0

        await asyncio.wait_for(listener.wait_stopped(), timeout=5)

    @pytest.mark.asyncio
    async def test_new_request_for_uri_resets_idle_timer(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=0.4)
        try:
            await listener.get_callback_uri()
            await asyncio.sleep(0.3)
            await listener.get_callback_uri()
            await asyncio.sleep(0.3)
            assert listener.is_running
            await asyncio.wait_for(listener.wait_stopped(), timeout=5)
            assert not listener.is_running
        finally:
            listener.stop()


# ---------------------------------------------------------------------------
# Request handling
# ---------------------------------------------------------------------------


class TestRedirect:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST"])
    async def test_redirects_and_stops(self, method: str) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        await listener.get_callback_uri()
        port = listener.port

        response = await _request(method, port, "/callback?code=abc&state=xyz")

        assert response.status_code == 302
        assert response.headers["location"] == (
            "https://backend.example.test/callback?code=abc&state=xyz"
        )
        assert response.headers["cache-control"] == "no-store, no-cache, must-revalidate"
        assert response.headers["pragma"] == "no-cache"

        await asyncio.wait_for(listener.wait_stopped(), timeout=5)
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_root_path_with_query(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE + "/", idle_timeout=None)
        await listener.get_callback_uri()

        response = await _request("GET", listener.port, "/?code=1")

        assert response.headers["location"] == "https://backend.example.test/?code=1"
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)

    @pytest.mark.asyncio
    async def test_redirect_base_is_resolved_per_request(self) -> None:
        bases = iter(["https://first.example.test/", "https://second.example.test/"])
        listener = CallbackListener([0], lambda: next(bases), idle_timeout=None)
        await listener.get_callback_uri()

        response = await _request("GET", listener.port, "/cb")

        assert response.headers["location"] == "https://first.example.test/cb"
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)

    @pytest.mark.asyncio
    async def test_failure_returns_500_and_still_stops(self) -> None:
        def _broken() -> str:
            raise RuntimeError("no callback configured")

        listener = CallbackListener([0], _broken, idle_timeout=None)
        await listener.get_callback_uri()

        response = await _request("GET", listener.port, "/callback")

        assert response.status_code == 500
        assert response.text == "Internal Server Error"
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_restarts_after_one_shot(self) -> None:
        listener = CallbackListener([0], REDIRECT_BASE, idle_timeout=None)
        await listener.get_callback_uri()
        await _request("GET", listener.port, "/")
        await asyncio.wait_for(listener.wait_stopped(), timeout=5)

        try:
            uri = await listener.get_callback_uri()
            assert listener.is_running
            assert uri == f"http://localhost:{listener.port}"
        finally:
            listener.stop()
