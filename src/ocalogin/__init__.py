"""ocalogin -- browser sign-in for Oracle Code Assist from the terminal.

The CLI drives the OAuth handshake that a local backend process brokers:
it records the chosen mode and base URL in the backend's configuration
store, keeps a short-lived local callback listener for the identity
provider's redirect, subscribes to the backend's auth status feed, and
blocks until the backend reports an authenticated session. Once signed in,
a default model is picked from the provider's model catalog.

Typical workflow::

    ocalogin auth login      # pick a mode, sign in through the browser
    ocalogin auth status     # check whether the session is authenticated
    ocalogin auth model      # change the configured model

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration with precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    auth: PKCE helpers, callback listener, status subscriber, orchestrator.
    backend: RPC client and configuration store collaborators.
    catalog: Model catalog HTTP client.
"""

__version__ = "0.3.0"
