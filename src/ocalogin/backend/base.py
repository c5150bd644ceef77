"""Abstract interfaces to the backend process.

The sign-in flow talks to the backend through two narrow interfaces:

- :class:`RpcClient` -- starts the provider login, streams auth status
  updates (:class:`AuthStatusStream`) and signs out.
- :class:`ConfigurationStore` -- applies partial provider updates and
  returns the latest state as JSON.

:class:`~ocalogin.backend.client.BackendClient` implements both over HTTP.
Tests substitute in-memory fakes.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from ocalogin.exceptions import StateStoreError
from ocalogin.models import AuthStatusEvent, Provider, ProviderUpdates


class AuthStatusStream(ABC):
    """Server-streamed sequence of :class:`~ocalogin.models.AuthStatusEvent`.

    Iteration ends with ``StopAsyncIteration`` when the backend closes the
    stream cleanly. Any other failure surfaces as an exception from
    ``__anext__``.
    """

    def __aiter__(self) -> AuthStatusStream:
        return self

    @abstractmethod
    async def __anext__(self) -> AuthStatusEvent:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        """Release the underlying connection. Must be idempotent."""
        ...


class RpcClient(ABC):
    """Account operations exposed by the backend."""

    @abstractmethod
    async def login_initiate(
        self,
        callback_uri: Optional[str] = None,
        *,
        state: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        """Ask the backend to start a provider login.

        Args:
            callback_uri: Local redirect target the provider should use.
            state: Opaque value echoed back by the provider.
            code_challenge: PKCE S256 challenge for the code exchange.

        Returns:
            The authorization URL the user opens in a browser.
        """
        ...

    @abstractmethod
    async def subscribe_auth_status(self) -> AuthStatusStream:
        """Open the auth status stream.

        Raises:
            OcaLoginError: If the subscription cannot be established.
        """
        ...

    @abstractmethod
    async def logout(self) -> None:
        ...


class ConfigurationStore(ABC):
    """Persistent provider configuration kept by the backend."""

    @abstractmethod
    async def update_partial(
        self,
        provider: Provider,
        updates: ProviderUpdates,
        set_as_active: bool = False,
    ) -> None:
        """Write only the fields set in *updates*; leave the rest untouched."""
        ...

    @abstractmethod
    async def get_latest_state(self) -> str:
        """Return the full current state serialised as a JSON object."""
        ...

    async def read_state(self) -> dict[str, Any]:
        """Return :meth:`get_latest_state` parsed into a dict.

        Raises:
            StateStoreError: If the state is not a JSON object.
        """
        raw = await self.get_latest_state()
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StateStoreError(f"Backend returned malformed state JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StateStoreError("Backend state is not a JSON object")
        return data
