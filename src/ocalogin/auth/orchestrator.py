"""Sign-in flow for Oracle Code Assist.

:class:`AuthOrchestrator` sequences one sign-in attempt::

    UNAUTHENTICATED -> MODE_SELECTION -> STATE_PERSISTED
                    -> AWAITING_BROWSER_AUTH -> AUTHENTICATED

or, when a session already exists::

    UNAUTHENTICATED -> ALREADY_AUTHENTICATED -> SIGNED_OUT | STILL_AUTHENTICATED

The selected mode and base URL are written to the configuration store and
read back before the login starts, because the backend builds the
authorization URL from that stored state. The status subscription is
opened before the login is triggered so a fast round trip cannot be
missed. Errors propagate to the caller; persisted mode and base URL are
left in place.

User interaction goes through a :class:`Prompter`, so the flow runs the
same under the Typer CLI and in tests.
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ocalogin.auth.callback_listener import CallbackListener
from ocalogin.auth.fields import get_provider_fields
from ocalogin.auth.status_subscriber import AuthStatusSubscriber
from ocalogin.backend.base import ConfigurationStore, RpcClient
from ocalogin.catalog import DEFAULT_MODEL_ID, ModelCatalog, choose_default_model
from ocalogin.exceptions import (
    AuthError,
    InvalidUsageError,
    ModelCatalogError,
    OcaLoginError,
    StateVerificationError,
)
from ocalogin.models import (
    AuthSession,
    AuthStatusEvent,
    ModelInfo,
    OcaMode,
    Provider,
    ProviderUpdates,
)

logger = logging.getLogger(__name__)

DEFAULT_AUTH_TIMEOUT = 300.0

_FIELDS = get_provider_fields(Provider.OCA)


class AuthFlowState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    MODE_SELECTION = "mode_selection"
    STATE_PERSISTED = "state_persisted"
    AWAITING_BROWSER_AUTH = "awaiting_browser_auth"
    AUTHENTICATED = "authenticated"
    ALREADY_AUTHENTICATED = "already_authenticated"
    SIGNED_OUT = "signed_out"
    STILL_AUTHENTICATED = "still_authenticated"


class SessionCache:
    """In-process record of a confirmed sign-in.

    Owned by whoever runs the flow and shared between orchestrators, so a
    second entry check in the same process skips the store round trip.
    """

    def __init__(self) -> None:
        self.authenticated = False

    def mark_authenticated(self) -> None:
        self.authenticated = True

    def clear(self) -> None:
        self.authenticated = False


class Prompter(ABC):
    """Interactive decisions and notices needed by the flow."""

    @abstractmethod
    def select_mode(self) -> OcaMode:
        """Ask for the account type. There is no default."""
        ...

    @abstractmethod
    def prompt_base_url(self, mode: OcaMode) -> Optional[str]:
        """Ask for an optional base URL override. Empty means none."""
        ...

    @abstractmethod
    def confirm_sign_out(self) -> bool:
        ...

    @abstractmethod
    def announce_login(self, url: str, mode: OcaMode) -> None:
        """Show the authorization URL while the flow waits for the browser."""
        ...

    @abstractmethod
    def select_model(self, model_ids: list[str]) -> str:
        ...

    def info(self, message: str) -> None:
        logger.info(message)

    def warn(self, message: str) -> None:
        logger.warning(message)


class AuthOrchestrator:
    """Run the OCA sign-in, sign-out and model selection flows.

    Args:
        store: Configuration store holding provider fields.
        rpc: Backend account operations.
        prompter: Source of user decisions.
        listener: Local redirect listener. When given, its URI is passed to
            the login call as the callback.
        session: Shared :class:`SessionCache`; a private one is created
            when omitted.
        catalog: Model catalog used after sign-in and by
            :meth:`change_model`.
        auth_timeout: Seconds to wait for the browser sign-in.
        open_browser: Called with the authorization URL, e.g.
            :func:`webbrowser.open`.
        default_model_id: Model configured after sign-in when offered.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        rpc: RpcClient,
        prompter: Prompter,
        *,
        listener: Optional[CallbackListener] = None,
        session: Optional[SessionCache] = None,
        catalog: Optional[ModelCatalog] = None,
        auth_timeout: float = DEFAULT_AUTH_TIMEOUT,
        open_browser: Optional[Callable[[str], Any]] = None,
        default_model_id: str = DEFAULT_MODEL_ID,
    ) -> None:
        self._store = store
        self._rpc = rpc
        self._prompter = prompter
        self._listener = listener
        self._session = session if session is not None else SessionCache()
        self._catalog = catalog
        self._auth_timeout = auth_timeout
        self._open_browser = open_browser
        self._default_model_id = default_model_id
        self._state = AuthFlowState.UNAUTHENTICATED

    @property
    def state(self) -> AuthFlowState:
        return self._state

    @property
    def session(self) -> SessionCache:
        return self._session

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def is_authenticated(self) -> bool:
        """Return True if a sign-in is cached or recorded in the store.

        A stored user id or a stored API key counts. Store failures are
        treated as "not signed in".
        """
        if self._session.authenticated:
            logger.debug("OCA session already authenticated in this process")
            return True

        try:
            state = await self._store.read_state()
        except OcaLoginError as exc:
            logger.debug("Could not read state for auth check: %s", exc)
            return False

        user_info = state.get(_FIELDS.user_info_field)
        if isinstance(user_info, dict) and _non_empty(user_info.get("uid")):
            logger.debug("Stored OCA user info found")
            self._session.mark_authenticated()
            return True
        if _non_empty(state.get(_FIELDS.api_key_field)):
            logger.debug("Stored OCA API key found")
            self._session.mark_authenticated()
            return True
        return False

    async def run(self) -> AuthFlowState:
        """Run the interactive flow and return the terminal state.

        Raises:
            AuthError: Sign-in timed out, was cancelled or failed.
            StateStoreError: Mode or base URL could not be persisted.
            CallbackServerError: The local listener could not start.
        """
        self._state = AuthFlowState.UNAUTHENTICATED
        if await self.is_authenticated():
            self._state = AuthFlowState.ALREADY_AUTHENTICATED
            if self._prompter.confirm_sign_out():
                await self.sign_out()
                self._state = AuthFlowState.SIGNED_OUT
            else:
                self._state = AuthFlowState.STILL_AUTHENTICATED
            return self._state

        self._state = AuthFlowState.MODE_SELECTION
        mode = self._prompter.select_mode()
        base_url = self._prompter.prompt_base_url(mode)
        event = await self.sign_in(mode, base_url)
        self._prompter.info(f"You are signed in to Oracle Code Assist ({mode.value} mode).")

        if self._catalog is not None:
            try:
                model_id = await self.configure_default_model(mode, credential=event.api_key)
            except OcaLoginError as exc:
                logger.debug("Default model configuration failed", exc_info=True)
                self._prompter.warn(f"Could not configure default OCA model: {exc}")
                self._prompter.warn(
                    "You can pick a model later with 'ocalogin auth model'."
                )
            else:
                self._prompter.info(f"Default model set to {model_id}.")
        return self._state

    async def sign_in(
        self, mode: OcaMode | str, base_url: Optional[str] = None
    ) -> AuthStatusEvent:
        """Persist *mode* and *base_url*, start the login and wait for it.

        Returns:
            The authenticated status event.
        """
        try:
            mode = OcaMode(mode)
        except ValueError:
            raise InvalidUsageError(
                f"Unknown OCA mode '{mode}'. Use 'internal' or 'external'."
            ) from None
        session = AuthSession.begin(mode, (base_url or "").strip())

        try:
            await self._persist_selection(session)
            self._state = AuthFlowState.STATE_PERSISTED

            callback_uri = None
            if self._listener is not None:
                callback_uri = await self._listener.get_callback_uri()
                logger.debug("Callback URI: %s", callback_uri)

            async with AuthStatusSubscriber(self._rpc) as subscriber:
                self._state = AuthFlowState.AWAITING_BROWSER_AUTH
                logger.debug(
                    "Initiating OCA login (mode: %s, base URL: %s)",
                    mode.value,
                    session.base_url or "default",
                )
                url = await self._rpc.login_initiate(
                    callback_uri,
                    state=session.state,
                    code_challenge=session.code_challenge,
                )
                self._prompter.announce_login(url, mode)
                if self._open_browser is not None:
                    self._open_browser(url)
                event = await subscriber.wait_for_authentication(self._auth_timeout)
        except OcaLoginError:
            self._state = AuthFlowState.UNAUTHENTICATED
            raise

        self._session.mark_authenticated()
        self._state = AuthFlowState.AUTHENTICATED
        logger.info("OCA login successful")
        return event

    async def sign_out(self) -> None:
        await self._rpc.logout()
        self._session.clear()
        logger.info("Signed out of Oracle Code Assist")

    async def get_mode_from_state(self) -> Optional[OcaMode]:
        """Return the stored mode, or ``None`` if missing or unrecognised."""
        state = await self._store.read_state()
        value = state.get(_FIELDS.mode_field)
        if not _non_empty(value):
            return None
        try:
            return OcaMode(value)
        except ValueError:
            logger.debug("Ignoring unknown stored OCA mode %r", value)
            return None

    # ------------------------------------------------------------------ #
    # Model selection
    # ------------------------------------------------------------------ #

    async def configure_default_model(
        self, mode: OcaMode, credential: Optional[str] = None
    ) -> str:
        """Pick and store a default model after sign-in.

        If the catalog cannot be queried, the default model id is stored
        without model info. If the default is not offered, the first
        offered model is used.

        Returns:
            The configured model id.

        Raises:
            ModelCatalogError: The catalog offered no models at all.
        """
        catalog = self._require_catalog()
        logger.debug("Configuring default OCA model (mode: %s)", mode.value)
        state = await self._store.read_state()
        credential = credential or state.get(_FIELDS.api_key_field)
        base_url = state.get(_FIELDS.base_url_field) or None

        try:
            if not _non_empty(credential):
                raise ModelCatalogError("No OCA credential available")
            models = await catalog.fetch_models(credential, base_url=base_url)
        except ModelCatalogError as exc:
            self._prompter.warn(f"Could not fetch OCA models: {exc}")
            self._prompter.warn(f"Using default model: {self._default_model_id}")
            await self._apply_model(self._default_model_id, None)
            return self._default_model_id

        model_id = choose_default_model(models, self._default_model_id)
        if model_id != self._default_model_id:
            self._prompter.warn(
                f"Default model {self._default_model_id} not found; using {model_id}"
            )
        await self._apply_model(model_id, models[model_id])
        return model_id

    async def change_model(self) -> str:
        """Let a signed-in user pick a different model.

        Returns:
            The selected model id.

        Raises:
            AuthError: Not signed in, or no credential in the store.
            ModelCatalogError: The catalog failed or offered no models.
        """
        if not await self.is_authenticated():
            raise AuthError(
                "You must be signed in to Oracle Code Assist to change models. "
                "Run 'ocalogin auth login' to sign in."
            )
        catalog = self._require_catalog()

        mode = await self.get_mode_from_state()
        if mode is None:
            logger.debug("No OCA mode stored, asking")
            mode = self._prompter.select_mode()

        state = await self._store.read_state()
        credential = state.get(_FIELDS.api_key_field)
        if not _non_empty(credential):
            raise AuthError("No OCA credential stored. Run 'ocalogin auth login' again.")

        logger.debug("Fetching OCA models (mode: %s)", mode.value)
        models = await catalog.fetch_models(
            credential, base_url=state.get(_FIELDS.base_url_field) or None
        )
        if not models:
            raise ModelCatalogError("No OCA models available")

        model_id = self._prompter.select_model(sorted(models))
        if model_id not in models:
            raise InvalidUsageError(f"Unknown model '{model_id}'")
        await self._apply_model(model_id, models[model_id])
        return model_id

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _persist_selection(self, session: AuthSession) -> None:
        logger.debug("Storing OCA mode: %s", session.mode.value)
        await self._store.update_partial(
            Provider.OCA, ProviderUpdates(mode=session.mode.value), set_as_active=False
        )
        if session.base_url:
            logger.debug("Storing OCA base URL: %s", session.base_url)
            await self._store.update_partial(
                Provider.OCA, ProviderUpdates(base_url=session.base_url), set_as_active=False
            )
        await self._verify_selection(session.mode, session.base_url)

    async def _verify_selection(self, mode: OcaMode, base_url: Optional[str]) -> None:
        state = await self._store.read_state()
        stored_mode = state.get(_FIELDS.mode_field)
        if stored_mode != mode.value:
            raise StateVerificationError(
                f"OCA mode not properly stored (expected: {mode.value}, got: {stored_mode!r})"
            )
        if base_url:
            stored_url = state.get(_FIELDS.base_url_field)
            if stored_url != base_url:
                raise StateVerificationError(
                    f"OCA base URL not properly stored (expected: {base_url}, got: {stored_url!r})"
                )
        logger.debug("OCA state verified - mode: %s, base URL: %s", mode.value, base_url)

    async def _apply_model(self, model_id: str, model_info: Optional[ModelInfo]) -> None:
        await self._store.update_partial(
            Provider.OCA,
            ProviderUpdates(model_id=model_id, model_info=model_info),
            set_as_active=True,
        )
        logger.debug("Applied OCA model %s", model_id)

    def _require_catalog(self) -> ModelCatalog:
        if self._catalog is None:
            raise ModelCatalogError("No model catalog configured")
        return self._catalog


def _non_empty(value: Any) -> bool:
    return isinstance(value, str) and value != ""
