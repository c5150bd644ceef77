"""Auth commands -- sign in to Oracle Code Assist and manage the session.

Provides the ``ocalogin auth`` sub-command group:

    ocalogin auth login      # browser sign-in, then default model setup
    ocalogin auth status     # show the stored session
    ocalogin auth model      # pick a different model
    ocalogin auth logout     # sign out

``login`` asks for the account type (internal or external) and an optional
base URL unless they are given as options, starts the local callback
listener, opens the browser and waits for the backend to report the
signed-in user.
"""

from __future__ import annotations

from typing import Optional

import typer

from ocalogin.auth.orchestrator import AuthFlowState, AuthOrchestrator, Prompter
from ocalogin.commands._support import (
    create_backend,
    create_catalog,
    get_config,
    get_flag,
    open_in_browser,
    run_flow,
)
from ocalogin.exceptions import InvalidUsageError
from ocalogin.models import OcaMode
from ocalogin.output import format_response, info, success, suggest, warning


auth_app = typer.Typer(no_args_is_help=True)

RETRY_HINT = "Please try again with 'ocalogin auth login'"

_MODE_LABELS = {
    OcaMode.INTERNAL: "Internal (Oracle internal users)",
    OcaMode.EXTERNAL: "External (Oracle Cloud customers)",
}


class TyperPrompter(Prompter):
    """Terminal prompts for the sign-in flow.

    Values passed to the constructor answer the corresponding prompt
    without asking. With *no_input*, a question that has no preset answer
    is an error (or, for sign-out, a "no").
    """

    def __init__(
        self,
        mode: Optional[OcaMode] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        no_input: bool = False,
        sign_out: bool = False,
        timeout: float = 300.0,
    ) -> None:
        self._mode = mode
        self._base_url = base_url
        self._model = model
        self._no_input = no_input
        self._sign_out = sign_out
        self._timeout = timeout

    def select_mode(self) -> OcaMode:
        if self._mode is not None:
            return self._mode
        if self._no_input:
            raise InvalidUsageError("--mode is required with --no-input")

        modes = list(OcaMode)
        info("Select Oracle Code Assist mode (based on your Oracle account type):")
        for i, mode in enumerate(modes, 1):
            info(f"  {i}. {_MODE_LABELS[mode]}")
        choice = typer.prompt("Mode").strip().lower()
        if choice.isdigit() and 1 <= int(choice) <= len(modes):
            return modes[int(choice) - 1]
        try:
            return OcaMode(choice)
        except ValueError:
            raise InvalidUsageError(f"Invalid mode selection: {choice}") from None

    def prompt_base_url(self, mode: OcaMode) -> Optional[str]:
        if self._base_url is not None or self._no_input:
            return self._base_url or None
        if mode is OcaMode.INTERNAL:
            label = "Internal OCA base URL (press Enter for the default Oracle internal endpoint)"
        else:
            label = "OCA base URL (optional, press Enter to use the default)"
        value = typer.prompt(label, default="", show_default=False)
        return value.strip() or None

    def confirm_sign_out(self) -> bool:
        if self._sign_out:
            return True
        if self._no_input:
            return False
        return typer.confirm(
            "You are already signed in to Oracle Code Assist. Would you like to sign out?",
            default=False,
        )

    def announce_login(self, url: str, mode: OcaMode) -> None:
        info(f"Opening browser for Oracle Code Assist authentication ({mode.value} mode)...")
        info(f"If the browser does not open, visit: {url}")
        info("Waiting for you to complete authentication in your browser...")
        info(f"(This may take a few moments. Timeout: {self._timeout / 60:g} minutes)")

    def select_model(self, model_ids: list[str]) -> str:
        if self._model is not None:
            return self._model
        if self._no_input:
            raise InvalidUsageError("--model is required with --no-input")

        info("Available models:")
        for i, model_id in enumerate(model_ids, 1):
            info(f"  {i}. {model_id}")
        choice = typer.prompt("Select model number", default="1").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(model_ids):
            return model_ids[int(choice) - 1]
        if choice in model_ids:
            return choice
        raise InvalidUsageError(f"Selection must be between 1 and {len(model_ids)}.")

    def info(self, message: str) -> None:
        info(message)

    def warn(self, message: str) -> None:
        warning(message)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    mode: Optional[OcaMode] = typer.Option(
        None, "--mode", "-m", help="Account type: internal or external."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="OCA base URL override."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the sign-in URL instead of opening a browser."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser sign-in."
    ),
) -> None:
    """Sign in to Oracle Code Assist in the browser.

    When already signed in, offers to sign out instead (``--force``
    answers yes). After signing in, the default model is configured; a
    failure there is reported as a warning only.

    Example::

        ocalogin auth login
        ocalogin auth login --mode external --base-url https://oca.example.com
    """
    from ocalogin.auth.callback_listener import CallbackListener
    from ocalogin.config import callback_redirect_base

    config = get_config(ctx)
    auth_timeout = timeout if timeout is not None else config.auth.timeout_seconds
    prompter = TyperPrompter(
        mode=mode,
        base_url=base_url,
        no_input=get_flag(ctx, "no_input"),
        sign_out=get_flag(ctx, "force"),
        timeout=auth_timeout,
    )
    listener = CallbackListener(
        config.callback.ports,
        lambda: callback_redirect_base(config),
        idle_timeout=config.callback.idle_timeout_seconds,
    )
    browser = None if no_browser or not config.auth.open_browser else open_in_browser

    async def _login() -> AuthFlowState:
        async with create_backend(config) as backend:
            orchestrator = AuthOrchestrator(
                backend,
                backend,
                prompter,
                listener=listener,
                catalog=create_catalog(config),
                auth_timeout=auth_timeout,
                open_browser=browser,
                default_model_id=config.catalog.default_model_id,
            )
            try:
                return await orchestrator.run()
            finally:
                listener.stop()

    state = run_flow(_login(), retry_hint=RETRY_HINT)
    if state is AuthFlowState.SIGNED_OUT:
        success("You have been signed out of Oracle Code Assist.")
    elif state is AuthFlowState.STILL_AUTHENTICATED:
        info("You are still signed in to Oracle Code Assist.")
    else:
        suggest("Change the model any time: ocalogin auth model")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Sign out of Oracle Code Assist.

    Asks for confirmation unless ``--force`` is active.

    Example::

        ocalogin auth logout --force
    """
    config = get_config(ctx)
    if not get_flag(ctx, "force"):
        if not typer.confirm("Sign out of Oracle Code Assist?"):
            info("Cancelled.")
            raise typer.Exit()

    async def _logout() -> None:
        async with create_backend(config) as backend:
            await AuthOrchestrator(backend, backend, TyperPrompter(no_input=True)).sign_out()

    run_flow(_logout())
    success("You have been signed out of Oracle Code Assist.")


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether a session exists, with the stored mode, base URL and model.

    Example::

        ocalogin auth status --json
    """
    from ocalogin.auth.fields import get_provider_fields
    from ocalogin.models import Provider

    config = get_config(ctx)
    fields = get_provider_fields(Provider.OCA)

    async def _status() -> dict:
        async with create_backend(config) as backend:
            orchestrator = AuthOrchestrator(backend, backend, TyperPrompter(no_input=True))
            authenticated = await orchestrator.is_authenticated()
            state = await backend.read_state()
        user = state.get(fields.user_info_field)
        if not isinstance(user, dict):
            user = {}
        return {
            "authenticated": authenticated,
            "mode": state.get(fields.mode_field),
            "baseUrl": state.get(fields.base_url_field),
            "user": user.get("email") or user.get("displayName") or user.get("uid"),
            "model": state.get(fields.act_mode_model_id_field),
        }

    format_response(run_flow(_status()))


@auth_app.command("model")
def auth_model(
    ctx: typer.Context,
    model: Optional[str] = typer.Option(
        None, "--model", help="Model id to select without prompting."
    ),
) -> None:
    """Select a different OCA model for plan and act modes.

    Example::

        ocalogin auth model
        ocalogin auth model --model oca/gpt-4.1
    """
    config = get_config(ctx)
    prompter = TyperPrompter(model=model, no_input=get_flag(ctx, "no_input"))

    async def _change() -> str:
        async with create_backend(config) as backend:
            orchestrator = AuthOrchestrator(
                backend, backend, prompter, catalog=create_catalog(config)
            )
            return await orchestrator.change_model()

    model_id = run_flow(_change())
    success(f"Model set to {model_id}.")
