"""HTTP implementation of the backend interfaces.

:class:`BackendClient` implements both
:class:`~ocalogin.backend.base.RpcClient` and
:class:`~ocalogin.backend.base.ConfigurationStore` on top of one long-lived
:class:`httpx.AsyncClient`. Unary calls exchange JSON; the auth status feed
is newline-delimited JSON kept open for the whole sign-in.

Routes (relative to the backend URL)::

    POST  /v1/oca-account/login          -> {"url": "..."}
    GET   /v1/oca-account/auth-status    -> NDJSON stream of status events
    POST  /v1/oca-account/logout
    PATCH /v1/state/api-configuration    <- {"provider", "setAsActive",
                                             "apiConfiguration", "updateMask"}
    GET   /v1/state/latest               -> {"stateJson": "..."}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ocalogin.auth.fields import build_partial_update
from ocalogin.backend.base import AuthStatusStream, ConfigurationStore, RpcClient
from ocalogin.exceptions import (
    AuthError,
    ConnectionError_,
    OcaLoginError,
    ServerError,
    StateStoreError,
)
from ocalogin.models import AuthStatusEvent, Provider, ProviderUpdates

logger = logging.getLogger(__name__)

LOGIN_PATH = "/v1/oca-account/login"
AUTH_STATUS_PATH = "/v1/oca-account/auth-status"
LOGOUT_PATH = "/v1/oca-account/logout"
UPDATE_PARTIAL_PATH = "/v1/state/api-configuration"
LATEST_STATE_PATH = "/v1/state/latest"

_TRANSPORT_ERRORS = (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError)


class _NdjsonAuthStatusStream(AuthStatusStream):
    """Auth status events read line by line from a streaming response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._lines = response.aiter_lines()
        self._closed = False

    async def __anext__(self) -> AuthStatusEvent:
        while True:
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                raise
            except _TRANSPORT_ERRORS as exc:
                raise ConnectionError_(f"Auth status stream interrupted: {exc}") from exc
            line = line.strip()
            if not line:
                continue
            try:
                return AuthStatusEvent.model_validate(json.loads(line))
            except (json.JSONDecodeError, ValidationError) as exc:
                raise ServerError(f"Malformed auth status message: {exc}") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class BackendClient(RpcClient, ConfigurationStore):
    """Backend RPC client and configuration store over HTTP.

    Must be used as an async context manager, which owns the underlying
    :class:`httpx.AsyncClient`.

    Args:
        base_url: Backend address, e.g. ``http://127.0.0.1:50052``.
        timeout: Timeout in seconds for unary calls. The status stream has
            no read timeout; the subscriber enforces its own deadline.
        transport: Optional transport override (tests pass
            :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def base_url(self) -> str:
        return self._base_url

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> BackendClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # RpcClient
    # ------------------------------------------------------------------ #

    async def login_initiate(
        self,
        callback_uri: Optional[str] = None,
        *,
        state: Optional[str] = None,
        code_challenge: Optional[str] = None,
    ) -> str:
        body: dict[str, Any] = {}
        if callback_uri:
            body["callbackUri"] = callback_uri
        if state:
            body["state"] = state
        if code_challenge:
            body["codeChallenge"] = code_challenge
            body["codeChallengeMethod"] = "S256"

        response = await self._request("POST", LOGIN_PATH, json_body=body)
        url = _json_object(response).get("url")
        if not isinstance(url, str) or not url:
            raise ServerError("Backend did not return an authorization URL")
        return url

    async def subscribe_auth_status(self) -> AuthStatusStream:
        client = self._require_client()
        request = client.build_request(
            "GET",
            AUTH_STATUS_PATH,
            headers={"Accept": "application/x-ndjson"},
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        try:
            response = await client.send(request, stream=True)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionError_(
                f"Cannot reach backend at {self._base_url}: {exc}"
            ) from exc

        if response.status_code >= 400:
            await response.aread()
            await response.aclose()
            _map_response_error(response)
        logger.debug("Auth status stream opened")
        return _NdjsonAuthStatusStream(response)

    async def logout(self) -> None:
        await self._request("POST", LOGOUT_PATH)

    # ------------------------------------------------------------------ #
    # ConfigurationStore
    # ------------------------------------------------------------------ #

    async def update_partial(
        self,
        provider: Provider,
        updates: ProviderUpdates,
        set_as_active: bool = False,
    ) -> None:
        partial = build_partial_update(provider, updates, set_as_active)
        if not partial.update_mask:
            logger.debug("Skipping empty partial update for %s", provider.value)
            return
        body = {
            "provider": provider.value,
            "setAsActive": set_as_active,
            "apiConfiguration": partial.values,
            "updateMask": partial.update_mask,
        }
        try:
            await self._request("PATCH", UPDATE_PARTIAL_PATH, json_body=body)
        except (ServerError, AuthError) as exc:
            raise StateStoreError(f"Failed to update configuration: {exc}") from exc
        logger.debug("Updated %s", ", ".join(partial.update_mask))

    async def get_latest_state(self) -> str:
        try:
            response = await self._request("GET", LATEST_STATE_PATH)
        except (ServerError, AuthError) as exc:
            raise StateStoreError(f"Failed to read configuration state: {exc}") from exc
        data = _json_object(response)
        state_json = data.get("stateJson")
        if isinstance(state_json, str):
            return state_json
        return json.dumps(data)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _require_client(self) -> httpx.AsyncClient:
        assert self._client is not None, "Client not initialised -- use as async context manager"
        return self._client

    async def _request(
        self, method: str, path: str, json_body: Optional[Any] = None
    ) -> httpx.Response:
        client = self._require_client()
        kwargs: dict[str, Any] = {}
        if json_body is not None:
            kwargs["json"] = json_body
        try:
            response = await client.request(method, path, **kwargs)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectionError_(
                f"Cannot reach backend at {self._base_url}: {exc}"
            ) from exc
        logger.debug("%s %s -> %d", method, path, response.status_code)
        _map_response_error(response)
        return response


def _json_object(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError as exc:
        raise ServerError(f"Backend returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ServerError("Backend returned a non-object JSON response")
    return data


def _map_response_error(response: httpx.Response) -> None:
    """Raise a typed exception for error HTTP status codes."""
    status = response.status_code
    if status < 400:
        return

    try:
        detail = response.json()
        if isinstance(detail, dict):
            msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
        else:
            msg = str(detail)
    except Exception:
        msg = response.text[:200] if response.text else ""

    prefix = f"HTTP {status}"
    full_msg = f"{prefix}: {msg}" if msg else prefix

    if status in (401, 403):
        raise AuthError(full_msg)
    if status >= 500:
        raise ServerError(full_msg)
    raise OcaLoginError(full_msg)
