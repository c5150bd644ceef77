"""Config commands -- view and modify global configuration.

Provides the ``ocalogin config`` sub-command group for reading,
updating, and resetting the user's global configuration file
(:class:`~ocalogin.models.GlobalConfig`). Settings control the backend
address, callback ports and redirect base, sign-in timeout and catalog
defaults.
"""

from __future__ import annotations

from typing import Any

import typer

from ocalogin.commands._support import get_config
from ocalogin.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Prints the config directory path followed by the configuration after
    environment variables and CLI flags are applied.

    Example::

        ocalogin config show
        ocalogin config show --json
    """
    from ocalogin.config import get_config_dir

    config = get_config(ctx)
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'backend.url')."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to the
    existing field's type (bool, int, float, port list or str) and the
    result is validated against :class:`~ocalogin.models.GlobalConfig`
    before saving.

    Example::

        ocalogin config set backend.url http://127.0.0.1:50052
        ocalogin config set callback.ports 48801,48802
        ocalogin config set auth.open_browser false
    """
    from ocalogin.config import load_global_config, save_global_config
    from ocalogin.models import GlobalConfig

    config = load_global_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    try:
        coerced = _coerce(target[final_key], value)
    except ValueError as exc:
        error(f"Invalid value for {key}: {exc}")
        raise typer.Exit(code=2) from None

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except Exception as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        ocalogin config reset --force
    """
    from ocalogin.config import save_global_config
    from ocalogin.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")


def _coerce(current: Any, value: str) -> Any:
    """Convert *value* to the type of the *current* setting."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        from ocalogin.config import parse_ports
        from ocalogin.exceptions import ConfigError

        try:
            return parse_ports(value)
        except ConfigError as exc:
            raise ValueError(str(exc)) from None
    if current is None and value.lower() in ("", "none", "null"):
        return None
    return value
