"""Provider field registry and partial-update construction.

The configuration store keeps every provider's settings in one flat
namespace, so each provider's logical fields (API key, base URL, mode,
per-mode model id, ...) map to physical key names. Partial updates carry
an explicit mask of the keys they touch; everything else in the store is
left alone.
"""

from __future__ import annotations

from typing import Any

from ocalogin.exceptions import InvalidUsageError
from ocalogin.models import PartialUpdate, Provider, ProviderFieldSet, ProviderUpdates

PLAN_MODE_PROVIDER_FIELD = "planModeApiProvider"
ACT_MODE_PROVIDER_FIELD = "actModeApiProvider"

_PROVIDER_FIELDS: dict[Provider, ProviderFieldSet] = {
    Provider.OCA: ProviderFieldSet(
        api_key_field="ocaApiKey",
        base_url_field="ocaBaseUrl",
        refresh_token_field="ocaRefreshToken",
        mode_field="ocaMode",
        plan_mode_model_id_field="planModeApiModelId",
        act_mode_model_id_field="actModeApiModelId",
        plan_mode_model_info_field="planModeOcaModelInfo",
        act_mode_model_info_field="actModeOcaModelInfo",
        user_info_field="ocaUserInfo",
    ),
}

_DISPLAY_NAMES: dict[Provider, str] = {
    Provider.OCA: "Oracle Code Assist",
}


def get_provider_fields(provider: Provider) -> ProviderFieldSet:
    """Return the store keys for *provider*.

    Raises:
        InvalidUsageError: If the provider has no registered field set.
    """
    fields = _PROVIDER_FIELDS.get(provider)
    if fields is None:
        raise InvalidUsageError(f"No field mapping for provider '{provider.value}'")
    return fields


def provider_id(provider: Provider) -> str:
    return provider.value


def provider_from_id(value: str) -> Provider:
    """Map a provider id string (``"oca"``) to :class:`~ocalogin.models.Provider`.

    Raises:
        InvalidUsageError: If the id is unknown.
    """
    try:
        return Provider(value.strip().lower())
    except ValueError:
        known = ", ".join(p.value for p in Provider)
        raise InvalidUsageError(
            f"Unknown provider '{value}'. Known providers: {known}"
        ) from None


def provider_display_name(provider: Provider) -> str:
    return _DISPLAY_NAMES.get(provider, provider.value)


def build_partial_update(
    provider: Provider, updates: ProviderUpdates, set_as_active: bool = False
) -> PartialUpdate:
    """Translate logical *updates* into store values plus an update mask.

    A model id (and model info) is written to both the plan-mode and
    act-mode fields. With *set_as_active*, the provider also becomes the
    active provider for both modes.
    """
    fields = get_provider_fields(provider)
    values: dict[str, Any] = {}

    if updates.api_key is not None:
        values[fields.api_key_field] = updates.api_key
    if updates.base_url is not None:
        values[fields.base_url_field] = updates.base_url
    if updates.refresh_token is not None:
        values[fields.refresh_token_field] = updates.refresh_token
    if updates.mode is not None:
        values[fields.mode_field] = updates.mode
    if updates.model_id is not None:
        values[fields.plan_mode_model_id_field] = updates.model_id
        values[fields.act_mode_model_id_field] = updates.model_id
    if updates.model_info is not None:
        info = updates.model_info.model_dump(mode="json", by_alias=True)
        values[fields.plan_mode_model_info_field] = info
        values[fields.act_mode_model_info_field] = info
    if set_as_active:
        values[PLAN_MODE_PROVIDER_FIELD] = provider.value
        values[ACT_MODE_PROVIDER_FIELD] = provider.value

    return PartialUpdate(values=values, update_mask=list(values))
