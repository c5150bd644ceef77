"""OCA model catalog and knowledge-base listing.

The catalog is a LiteLLM-style proxy: ``GET <base>/v1/model/info`` lists
the models the signed-in user is entitled to, ``GET <base>/vector_store/list``
lists knowledge bases. Both calls carry the headers from
:func:`~ocalogin.auth.pkce.build_request_headers`; failures report the
``opc-request-id`` so support can trace the request.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx
from pydantic import ValidationError

from ocalogin.auth.pkce import build_request_headers
from ocalogin.exceptions import ModelCatalogError
from ocalogin.models import ModelInfo, VectorStoreInfo

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://oca.oracle.com"
DEFAULT_MODEL_ID = "oca/gpt-4.1"
REFRESH_SESSION_ID = "models-refresh"

_PRICE_SCALE = 1_000_000


def _price(value: Any) -> float:
    """Per-token price (number or numeric string) to per-million-token price."""
    if value in (None, ""):
        return 0.0
    try:
        return float(value) * _PRICE_SCALE
    except (TypeError, ValueError):
        return 0.0


def parse_model_entry(entry: Mapping[str, Any]) -> Optional[ModelInfo]:
    """Build a :class:`~ocalogin.models.ModelInfo` from one ``data[]`` entry.

    Returns ``None`` for entries without a string model id, or whose
    ``litellm_params`` or ``model_info`` is not an object.
    """
    params = entry.get("litellm_params") or {}
    info = entry.get("model_info") or {}
    if not isinstance(params, dict) or not isinstance(info, dict):
        return None
    model_id = params.get("model")
    if not isinstance(model_id, str) or not model_id:
        return None

    return ModelInfo(
        model_name=model_id,
        max_tokens=params.get("max_tokens") or -1,
        context_window=info.get("context_window"),
        supports_images=bool(info.get("supports_vision")),
        supports_prompt_cache=bool(info.get("supports_caching")),
        input_price=_price(info.get("input_price")),
        output_price=_price(info.get("output_price")),
        cache_writes_price=_price(info.get("caching_price")),
        cache_reads_price=_price(info.get("cached_price")),
        description=info.get("description"),
        thinking_config=info.get("thinking_config"),
        survey_content=info.get("survey_content"),
        survey_id=info.get("survey_id"),
        temperature=info.get("temperature") or 0.0,
        banner_content=info.get("banner"),
    )


def choose_default_model(
    models: Mapping[str, ModelInfo], preferred: str = DEFAULT_MODEL_ID
) -> str:
    """Return *preferred* when offered, otherwise the first available model.

    Raises:
        ModelCatalogError: If *models* is empty.
    """
    if preferred in models:
        return preferred
    for model_id in models:
        logger.debug("Default model %s not offered, using %s", preferred, model_id)
        return model_id
    raise ModelCatalogError(
        "No models found. Did you set up your OCA access (possibly through entitlements)?"
    )


class ModelCatalog:
    """Client for the catalog endpoints.

    Args:
        base_url: Catalog base URL. Falls back to :data:`DEFAULT_BASE_URL`.
        timeout: Request timeout in seconds.
        transport: Optional transport override for tests.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def fetch_models(
        self, credential: str, *, base_url: Optional[str] = None
    ) -> dict[str, ModelInfo]:
        """Return the offered models keyed by model id, in catalog order.

        *base_url* overrides the catalog base URL for this call (the user's
        stored OCA base URL, for instance).

        Raises:
            ModelCatalogError: On network failure, an error status, or a
                response without a ``data`` list.
        """
        data = await self._get_data("/v1/model/info", credential, base_url)
        models: dict[str, ModelInfo] = {}
        for entry in data:
            if not isinstance(entry, dict):
                continue
            try:
                model = parse_model_entry(entry)
            except ValidationError as exc:
                logger.warning("Skipping malformed catalog entry: %s", exc)
                continue
            if model is not None:
                models[model.model_name] = model
        logger.debug("Fetched %d models from %s", len(models), base_url or self._base_url)
        return models

    async def list_vector_stores(
        self, credential: str, *, base_url: Optional[str] = None
    ) -> dict[str, VectorStoreInfo]:
        """Return the user's knowledge bases keyed by vector store id."""
        data = await self._get_data("/vector_store/list", credential, base_url)
        stores: dict[str, VectorStoreInfo] = {}
        for entry in data:
            if not isinstance(entry, dict):
                continue
            store_id = entry.get("vector_store_id")
            if not isinstance(store_id, str) or not store_id:
                continue
            try:
                stores[store_id] = VectorStoreInfo(
                    id=store_id,
                    name=entry.get("vector_store_name"),
                    description=entry.get("vector_store_description"),
                )
            except ValidationError as exc:
                logger.warning("Skipping malformed vector store entry: %s", exc)
        return stores

    async def _get_data(
        self, path: str, credential: str, base_url: Optional[str] = None
    ) -> list[Any]:
        base = base_url.rstrip("/") if base_url else self._base_url
        headers = build_request_headers(credential, REFRESH_SESSION_ID)
        request_id = headers["opc-request-id"]
        url = f"{base}{path}"
        logger.debug("GET %s (opc-request-id: %s)", url, request_id)

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.get(url, headers=headers)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
            raise ModelCatalogError(
                f"Cannot reach the OCA service at {base}. Check your "
                f"network or proxy configuration. (opc-request-id: {request_id})"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ModelCatalogError(
                f"Request to {url} failed: {exc} (opc-request-id: {request_id})"
            ) from exc

        if response.status_code >= 400:
            raise ModelCatalogError(
                f"OCA service returned {response.status_code} {response.reason_phrase}. "
                f"Verify your access token and entitlements. (opc-request-id: {request_id})"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ModelCatalogError(
                f"Invalid response from {base} (opc-request-id: {request_id})"
            ) from exc
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list):
            raise ModelCatalogError(
                f"Invalid response from {base} (opc-request-id: {request_id})"
            )
        return data
