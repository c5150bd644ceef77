"""Browser sign-in for Oracle Code Assist.

This package holds the pieces of the OCA sign-in handshake:

- :mod:`~ocalogin.auth.pkce` -- state, PKCE and request-id generation.
- :mod:`~ocalogin.auth.fields` -- provider field names and partial updates.
- :class:`CallbackListener` -- one-shot local redirect listener.
- :class:`AuthStatusSubscriber` -- turns the auth status stream into a
  single wait with a deadline.
- :mod:`~ocalogin.auth.orchestrator` -- the sign-in state machine. Import it
  from its module; it depends on :mod:`ocalogin.catalog`, which in turn
  uses :mod:`~ocalogin.auth.pkce`.

Typical usage::

    from ocalogin.auth import CallbackListener
    from ocalogin.auth.orchestrator import AuthOrchestrator

    listener = CallbackListener([48801, 48802], redirect_base)
    orchestrator = AuthOrchestrator(backend, backend, prompter, listener=listener)
    await orchestrator.run()
"""

from ocalogin.auth.callback_listener import CallbackListener
from ocalogin.auth.pkce import generate_pkce_pair, generate_request_id, generate_state
from ocalogin.auth.status_subscriber import AuthStatusSubscriber, SubscriberState

__all__ = [
    "AuthStatusSubscriber",
    "CallbackListener",
    "SubscriberState",
    "generate_pkce_pair",
    "generate_request_id",
    "generate_state",
]
