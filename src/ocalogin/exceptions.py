"""Exception hierarchy for ocalogin.

All exceptions inherit from :class:`OcaLoginError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`ocalogin.exit_codes`.
The top-level error handler in :func:`ocalogin.app.main` catches
``OcaLoginError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    OcaLoginError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- AuthError                (exit 3)
    |   +-- AuthTimeoutError
    |   +-- AuthCancelledError
    |   +-- AuthStreamError
    +-- ServerError              (exit 5)
    +-- ConnectionError_         (exit 6)
    +-- CallbackServerError      (exit 8)
    |   +-- NoAvailablePortError
    +-- StateStoreError          (exit 9)
    |   +-- StateVerificationError
    +-- ModelCatalogError        (exit 1)
    +-- ConfigError              (exit 1)
"""

from ocalogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CALLBACK_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
    EXIT_STATE_ERROR,
)


class OcaLoginError(Exception):
    """Base exception for all ocalogin errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`ocalogin.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(OcaLoginError):
    """Raised for invalid CLI arguments or unusable interactive answers."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(OcaLoginError):
    """Raised when sign-in fails or the backend rejects the session."""

    exit_code = EXIT_AUTH_FAILURE


class AuthTimeoutError(AuthError):
    """Raised when no authenticated status arrives before the deadline."""


class AuthCancelledError(AuthError):
    """Raised when the status subscription is stopped while a caller waits."""


class AuthStreamError(AuthError):
    """Raised when the auth status stream fails with anything but a clean end."""


class ServerError(OcaLoginError):
    """Raised when the backend or catalog returns an HTTP 5xx error."""

    exit_code = EXIT_SERVER_ERROR


class ConnectionError_(OcaLoginError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class CallbackServerError(OcaLoginError):
    """Raised when the local callback listener cannot bind or start."""

    exit_code = EXIT_CALLBACK_ERROR


class NoAvailablePortError(CallbackServerError):
    """Raised when every candidate callback port is already in use."""


class StateStoreError(OcaLoginError):
    """Raised when the configuration store fails to persist or return state."""

    exit_code = EXIT_STATE_ERROR


class StateVerificationError(StateStoreError):
    """Raised when persisted values do not read back exactly as written."""


class ModelCatalogError(OcaLoginError):
    """Raised when the model catalog cannot be queried or has no usable models."""

    exit_code = EXIT_GENERIC_FAILURE


class ConfigError(OcaLoginError):
    """Raised for configuration problems (invalid JSON, bad values, missing redirect base)."""

    exit_code = EXIT_GENERIC_FAILURE
