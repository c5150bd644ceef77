"""Callback commands -- run the local redirect listener by itself.

``ocalogin callback serve`` binds the first free callback port, prints the
callback URI to stdout and forwards exactly one browser redirect to the
configured redirect base. It exits after that request or when the idle
timeout expires. Useful when a sign-in is driven by another tool.
"""

from __future__ import annotations

from typing import Optional

import typer

from ocalogin.commands._support import get_config, run_flow
from ocalogin.output import info, print_data


callback_app = typer.Typer(no_args_is_help=True)


@callback_app.command("serve")
def callback_serve(
    ctx: typer.Context,
    port: Optional[list[int]] = typer.Option(
        None, "--port", "-p", help="Candidate port (repeatable). Defaults to the configured list."
    ),
    idle_timeout: Optional[float] = typer.Option(
        None, "--idle-timeout", help="Seconds before the listener stops unused."
    ),
) -> None:
    """Serve one OAuth redirect on a local port.

    Example::

        ocalogin callback serve
        ocalogin callback serve --port 48801 --port 48802 --idle-timeout 120
    """
    from ocalogin.auth.callback_listener import CallbackListener
    from ocalogin.config import callback_redirect_base

    config = get_config(ctx)
    redirect_base = callback_redirect_base(config)
    listener = CallbackListener(
        port or config.callback.ports,
        redirect_base,
        idle_timeout=idle_timeout if idle_timeout is not None else config.callback.idle_timeout_seconds,
    )

    async def _serve() -> None:
        try:
            uri = await listener.get_callback_uri()
            print_data(uri)
            info(f"Forwarding the next request to {redirect_base}")
            await listener.wait_stopped()
        finally:
            listener.stop()

    run_flow(_serve())
    info("Callback listener stopped.")
