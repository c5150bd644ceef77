"""Catalog commands -- list OCA models and knowledge bases.

Both commands use the credential and base URL stored by ``ocalogin auth
login``; ``--base-url`` overrides the stored base URL.
"""

from __future__ import annotations

from typing import Optional

import typer

from ocalogin.auth.fields import get_provider_fields
from ocalogin.commands._support import create_backend, create_catalog, get_config, run_flow
from ocalogin.exceptions import AuthError
from ocalogin.models import GlobalConfig, ModelInfo, Provider, VectorStoreInfo
from ocalogin.output import info, print_table, suggest


catalog_app = typer.Typer(no_args_is_help=True)


@catalog_app.command("models")
def catalog_models(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Catalog base URL."),
) -> None:
    """List the models offered to the signed-in user.

    Prices are per million tokens.

    Example::

        ocalogin catalog models
        ocalogin catalog models --json
    """
    config = get_config(ctx)

    async def _fetch() -> dict[str, ModelInfo]:
        credential, stored_url = await _stored_credential(config)
        return await create_catalog(config).fetch_models(
            credential, base_url=base_url or stored_url
        )

    models = run_flow(_fetch())
    if not models:
        info("No models found. Did you set up your OCA access (possibly through entitlements)?")
        return

    headers = ["Model", "Context", "Max Tokens", "Images", "Input $/M", "Output $/M"]
    rows = [
        [
            model_id,
            str(model.context_window or "-"),
            str(model.max_tokens),
            "yes" if model.supports_images else "no",
            f"{model.input_price:g}",
            f"{model.output_price:g}",
        ]
        for model_id, model in models.items()
    ]
    print_table(headers, rows, title="OCA Models")


@catalog_app.command("vectors")
def catalog_vectors(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Catalog base URL."),
) -> None:
    """List the knowledge bases (vector stores) available to the user.

    Example::

        ocalogin catalog vectors
    """
    config = get_config(ctx)

    async def _fetch() -> dict[str, VectorStoreInfo]:
        credential, stored_url = await _stored_credential(config)
        return await create_catalog(config).list_vector_stores(
            credential, base_url=base_url or stored_url
        )

    stores = run_flow(_fetch())
    if not stores:
        info("No knowledge bases found.")
        return

    rows = [[s.id, s.name or "-", s.description or "-"] for s in stores.values()]
    print_table(["ID", "Name", "Description"], rows, title="OCA Knowledge Bases")


async def _stored_credential(config: GlobalConfig) -> tuple[str, Optional[str]]:
    """Read the OCA API key and base URL from the backend state."""
    fields = get_provider_fields(Provider.OCA)
    async with create_backend(config) as backend:
        state = await backend.read_state()
    credential = state.get(fields.api_key_field)
    if not isinstance(credential, str) or not credential:
        suggest("Sign in first: ocalogin auth login")
        raise AuthError("Not signed in to Oracle Code Assist")
    return credential, state.get(fields.base_url_field) or None
