"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~ocalogin.exceptions.OcaLoginError` subclass.
Shell wrappers can inspect the exit code to tell a timed-out sign-in from
an unreachable backend without parsing stderr.

Example::

    $ ocalogin auth login
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- sign-in failed or timed out
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Sign-in failed, was cancelled, or timed out."""

EXIT_SERVER_ERROR = 5
"""The backend or the model catalog returned an HTTP 5xx error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CALLBACK_ERROR = 8
"""The local callback listener could not be started."""

EXIT_STATE_ERROR = 9
"""The configuration store rejected an update or returned unexpected state."""
