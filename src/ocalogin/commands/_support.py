"""Shared plumbing for the command modules.

Commands are synchronous Typer callbacks; the flows they drive are
coroutines. :func:`run_flow` bridges the two and turns an
:class:`~ocalogin.exceptions.OcaLoginError` into an error message and
exit code.
"""

from __future__ import annotations

import asyncio
import threading
import webbrowser
from typing import Any, Coroutine, Optional, TypeVar

import typer

from ocalogin.backend.client import BackendClient
from ocalogin.catalog import ModelCatalog
from ocalogin.exceptions import OcaLoginError
from ocalogin.models import GlobalConfig
from ocalogin.output import error, suggest

T = TypeVar("T")


def get_config(ctx: typer.Context) -> GlobalConfig:
    """Return the configuration resolved in the root callback."""
    config = ctx.obj.get("config") if ctx.obj else None
    if config is None:
        from ocalogin.config import resolve_config

        config = resolve_config()
    return config


def get_flag(ctx: typer.Context, name: str) -> bool:
    return bool(ctx.obj.get(name, False)) if ctx.obj else False


def run_flow(coro: Coroutine[Any, Any, T], retry_hint: Optional[str] = None) -> T:
    """Run *coro* to completion, mapping ocalogin errors to an exit code.

    Args:
        coro: The flow to run.
        retry_hint: Suggestion printed after any failure.

    Raises:
        typer.Exit: With the error's exit code on failure.
    """
    try:
        return asyncio.run(coro)
    except OcaLoginError as exc:
        error(str(exc))
        if retry_hint:
            suggest(retry_hint)
        raise typer.Exit(code=exc.exit_code) from None


def open_in_browser(url: str) -> None:
    """Open *url* in the default browser without blocking the caller."""
    threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()


def create_backend(config: GlobalConfig) -> BackendClient:
    """Build the backend client for *config*. Use it as an async context manager."""
    return BackendClient(config.backend.url, timeout=config.backend.timeout)


def create_catalog(config: GlobalConfig) -> ModelCatalog:
    return ModelCatalog(config.catalog.base_url, timeout=config.catalog.timeout)
