"""Shared test fixtures for ocalogin.

Provides an in-memory backend (configuration store plus RPC client with a
controllable auth status stream), a fake model catalog, isolated config
directories, output and logging resets, and a CLI runner. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from ocalogin.auth.fields import build_partial_update
from ocalogin.backend.base import AuthStatusStream, ConfigurationStore, RpcClient
from ocalogin.exceptions import StateStoreError
from ocalogin.models import (
    AuthStatusEvent,
    ModelInfo,
    PartialUpdate,
    Provider,
    ProviderUpdates,
    UserInfo,
    VectorStoreInfo,
)
from ocalogin.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output and logging state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and the ``ocalogin`` logger after every test.

    Both cache references to sys.stdout/sys.stderr. When Typer's CliRunner
    redirects those streams and the test finishes, the cached references
    become stale ("I/O operation on closed file").
    """
    yield
    reset_output()
    logger = logging.getLogger("ocalogin")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


_END = object()


class FakeStatusStream(AuthStatusStream):
    """Auth status stream fed by the test through :meth:`push`."""

    def __init__(self) -> None:
        self._items: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def push(self, item: AuthStatusEvent | BaseException) -> None:
        self._items.put_nowait(item)

    def end(self) -> None:
        self._items.put_nowait(_END)

    async def __anext__(self) -> AuthStatusEvent:
        item = await self._items.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend(RpcClient, ConfigurationStore):
    """Configuration store and RPC client kept in memory.

    Partial updates honour the update mask. Keys listed in
    ``drop_fields`` are silently not persisted. ``on_login`` is called with
    the status stream right after :meth:`login_initiate`, which lets a test
    script what the backend reports.
    """

    def __init__(self, state: Optional[dict[str, Any]] = None) -> None:
        self.state: dict[str, Any] = dict(state or {})
        self.updates: list[tuple[PartialUpdate, bool]] = []
        self.calls: list[str] = []
        self.login_args: dict[str, Any] = {}
        self.login_url = "https://idp.example.test/authorize?client_id=ocalogin"
        self.drop_fields: set[str] = set()
        self.fail_reads = False
        self.subscribe_error: Optional[Exception] = None
        self.on_login: Optional[Callable[[FakeStatusStream], None]] = None
        self.stream = FakeStatusStream()
        self.entered = False

    async def __aenter__(self) -> FakeBackend:
        self.entered = True
        return self

    async def __aexit__(self, *args: object) -> None:
        self.entered = False

    async def login_initiate(
        self,
        callback_uri: Optional[str] = None,
        *,
        state: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        self.calls.append("login")
        self.login_args = {
            "callback_uri": callback_uri,
            "state": state,
            "code_challenge": code_challenge,
        }
        if self.on_login is not None:
            self.on_login(self.stream)
        return self.login_url

    async def subscribe_auth_status(self) -> AuthStatusStream:
        self.calls.append("subscribe")
        if self.subscribe_error is not None:
            raise self.subscribe_error
        return self.stream

    async def logout(self) -> None:
        self.calls.append("logout")
        self.state.pop("ocaApiKey", None)
        self.state.pop("ocaUserInfo", None)

    async def update_partial(
        self,
        provider: Provider,
        updates: ProviderUpdates,
        set_as_active: bool = False,
    ) -> None:
        self.calls.append("update")
        partial = build_partial_update(provider, updates, set_as_active)
        self.updates.append((partial, set_as_active))
        for key in partial.update_mask:
            if key not in self.drop_fields:
                self.state[key] = partial.values[key]

    async def get_latest_state(self) -> str:
        if self.fail_reads:
            raise StateStoreError("state unavailable")
        return json.dumps(self.state)


class FakeCatalog:
    """Model catalog answering from ``models`` and ``vector_stores``.

    Set ``error`` to make every call raise it.
    """

    def __init__(self) -> None:
        self.models: dict[str, ModelInfo] = {
            "oca/llama4": ModelInfo(model_name="oca/llama4"),
            "oca/gpt-4.1": ModelInfo(model_name="oca/gpt-4.1", context_window=128000),
        }
        self.vector_stores: dict[str, VectorStoreInfo] = {
            "vs-1": VectorStoreInfo(id="vs-1", name="Docs", description="Product docs"),
        }
        self.error: Optional[Exception] = None
        self.calls: list[tuple[str, Optional[str]]] = []

    async def fetch_models(
        self, credential: str, *, base_url: Optional[str] = None
    ) -> dict[str, ModelInfo]:
        self.calls.append((credential, base_url))
        if self.error is not None:
            raise self.error
        return dict(self.models)

    async def list_vector_stores(
        self, credential: str, *, base_url: Optional[str] = None
    ) -> dict[str, VectorStoreInfo]:
        self.calls.append((credential, base_url))
        if self.error is not None:
            raise self.error
        return dict(self.vector_stores)


@pytest.fixture
def backend() -> FakeBackend:
    """A fresh in-memory backend with empty state."""
    return FakeBackend()


@pytest.fixture
def catalog() -> FakeCatalog:
    """A model catalog offering ``oca/llama4`` and ``oca/gpt-4.1``."""
    return FakeCatalog()


@pytest.fixture
def authenticated_event() -> AuthStatusEvent:
    """A status event carrying both a user and an API key."""
    return AuthStatusEvent(
        user=UserInfo(uid="u-42", email="dev@example.test"), api_key="oca-key-123"
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config, and clears all OCALOGIN_*
    environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("ocalogin.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "OCALOGIN_BACKEND_URL",
        "OCALOGIN_CALLBACK_BASE_URL",
        "OCALOGIN_CALLBACK_PORTS",
        "NO_COLOR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
