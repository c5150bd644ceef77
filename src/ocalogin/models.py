"""Canonical Pydantic models shared across all ocalogin modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`BackendConfig`, :class:`CallbackConfig`, :class:`AuthConfig`,
    :class:`CatalogConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

**Sign-in models** -- exchanged with the backend or owned by one sign-in
attempt:
    :class:`OcaMode`, :class:`Provider`, :class:`UserInfo`,
    :class:`AuthStatusEvent`, :class:`AuthSession`, :class:`ProviderFieldSet`,
    :class:`ProviderUpdates`, :class:`PartialUpdate`, :class:`ModelInfo` and
    :class:`VectorStoreInfo`.

All models use Pydantic v2. Models that mirror backend payloads accept the
backend's camelCase keys through aliases and keep unknown keys in
``model_extra``.
"""

from __future__ import annotations

import enum
import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- Configuration ---


class BackendConfig(BaseModel):
    """Where the backend process listens and how long unary calls may take."""

    url: str = Field(
        default="http://127.0.0.1:50052", description="Base URL of the backend process"
    )
    timeout: float = Field(default=30.0, description="Unary call timeout in seconds")


class CallbackConfig(BaseModel):
    """Settings for the local redirect listener.

    ``redirect_base_url`` is the externally reachable callback the listener
    forwards the provider's redirect to. When unset, the backend's own
    ``/auth/oca`` route is used.
    """

    ports: list[int] = Field(
        default_factory=lambda: [48801, 48802, 48803, 48804, 48805],
        description="Candidate local ports, tried in order",
    )
    idle_timeout_seconds: float = Field(
        default=600.0, description="Tear the listener down after this much idle time"
    )
    redirect_base_url: Optional[str] = Field(
        default=None, description="External callback the provider redirect is forwarded to"
    )


class AuthConfig(BaseModel):
    """Sign-in behaviour."""

    timeout_seconds: float = Field(
        default=300.0, description="How long to wait for the browser sign-in"
    )
    open_browser: bool = Field(
        default=True, description="Open the authorization URL in the default browser"
    )


class CatalogConfig(BaseModel):
    """Model catalog endpoint and default model selection."""

    base_url: str = Field(
        default="https://oca.oracle.com",
        description="Catalog base URL used when no base URL is stored",
    )
    default_model_id: str = Field(default="oca/gpt-4.1")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/ocalogin/config.json``.

    Loaded and saved by :func:`~ocalogin.config.load_global_config` and
    :func:`~ocalogin.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by environment variables or CLI
    flags. See :func:`~ocalogin.config.resolve_config` for the full
    precedence chain.
    """

    backend: BackendConfig = Field(default_factory=BackendConfig)
    callback: CallbackConfig = Field(default_factory=CallbackConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Sign-in ---


class OcaMode(str, enum.Enum):
    """Account type selected before sign-in.

    The backend builds a different authorization URL for each mode, so the
    value is always chosen by the user and never defaulted locally.
    """

    INTERNAL = "internal"
    EXTERNAL = "external"


class Provider(str, enum.Enum):
    """API providers whose fields live in the configuration store."""

    OCA = "oca"


class UserInfo(BaseModel):
    """Identity fields reported by the backend for a signed-in user."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uid: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    email: Optional[str] = None


class AuthStatusEvent(BaseModel):
    """One message from the backend's auth status stream.

    The provider may emit intermediate states (no user yet, or a user
    without a key) before the final one. Only an event that carries both
    an identity and a non-empty credential counts as authenticated.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    user: Optional[UserInfo] = None
    api_key: Optional[str] = Field(default=None, alias="apiKey")

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and bool(self.api_key)


class AuthSession(BaseModel):
    """State owned by the orchestrator for one sign-in attempt.

    Created with :meth:`begin` and discarded when the attempt succeeds,
    fails, or times out.
    """

    mode: OcaMode
    base_url: Optional[str] = None
    state: str
    code_verifier: str
    code_challenge: str
    started_at: float = Field(default_factory=time.time)

    @classmethod
    def begin(cls, mode: OcaMode, base_url: Optional[str] = None) -> AuthSession:
        """Start a session with a fresh state value and PKCE pair."""
        from ocalogin.auth.pkce import generate_pkce_pair, generate_state

        verifier, challenge = generate_pkce_pair()
        return cls(
            mode=mode,
            base_url=base_url or None,
            state=generate_state(),
            code_verifier=verifier,
            code_challenge=challenge,
        )


class ProviderFieldSet(BaseModel):
    """Physical configuration-store keys for one provider's logical fields."""

    model_config = ConfigDict(frozen=True)

    api_key_field: str
    base_url_field: str
    refresh_token_field: str
    mode_field: str
    plan_mode_model_id_field: str
    act_mode_model_id_field: str
    plan_mode_model_info_field: str
    act_mode_model_info_field: str
    user_info_field: str


class ProviderUpdates(BaseModel):
    """Logical field values for a partial provider update.

    Only fields that are set (not ``None``) end up in the update mask, so
    unrelated values in the store are never overwritten.
    """

    model_config = ConfigDict(protected_namespaces=())

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    refresh_token: Optional[str] = None
    mode: Optional[str] = None
    model_id: Optional[str] = None
    model_info: Optional[ModelInfo] = None


class PartialUpdate(BaseModel):
    """Wire form of a partial update: values keyed by store field plus the mask."""

    values: dict[str, Any] = Field(default_factory=dict)
    update_mask: list[str] = Field(default_factory=list)


class ModelInfo(BaseModel):
    """Metadata for one model offered by the catalog.

    Prices are per million tokens. Serialises with camelCase keys, which is
    how the configuration store keeps model info.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        protected_namespaces=(),
    )

    model_name: str
    max_tokens: int = -1
    context_window: Optional[int] = None
    supports_images: bool = False
    supports_prompt_cache: bool = False
    input_price: float = 0.0
    output_price: float = 0.0
    cache_writes_price: float = 0.0
    cache_reads_price: float = 0.0
    description: Optional[str] = None
    thinking_config: Optional[dict[str, Any]] = None
    survey_content: Optional[str] = None
    survey_id: Optional[str] = None
    temperature: float = 0.0
    banner_content: Optional[str] = None


class VectorStoreInfo(BaseModel):
    """A knowledge base listed by the catalog."""

    id: str
    name: Optional[str] = None
    description: Optional[str] = None


ProviderUpdates.model_rebuild()
