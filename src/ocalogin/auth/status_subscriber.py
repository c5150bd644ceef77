"""Turn the backend's auth status stream into a single blocking wait.

:class:`AuthStatusSubscriber` opens the stream, consumes it in a
background task and lets one caller wait for the first *authenticated*
event (identity plus non-empty credential), a timeout, a cancellation or a
stream failure, whichever comes first.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Optional

from ocalogin.backend.base import AuthStatusStream, RpcClient
from ocalogin.exceptions import (
    AuthCancelledError,
    AuthError,
    AuthStreamError,
    AuthTimeoutError,
)
from ocalogin.models import AuthStatusEvent

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 10


class SubscriberState(str, enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class AuthStatusSubscriber:
    """Consume auth status updates until the user is signed in.

    Open the subscription *before* starting the login so that no update
    is missed::

        async with AuthStatusSubscriber(rpc) as subscriber:
            url = await rpc.login_initiate()
            event = await subscriber.wait_for_authentication(300)

    Args:
        rpc: Client used to open the status stream.
        buffer_size: Capacity of the event buffer between the consumer
            task and the waiter.
    """

    def __init__(self, rpc: RpcClient, *, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._rpc = rpc
        self._events: asyncio.Queue[AuthStatusEvent] = asyncio.Queue(maxsize=buffer_size)
        self._stream: Optional[AuthStatusStream] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._failure: Optional[asyncio.Future[BaseException]] = None
        self._stopped = asyncio.Event()
        self._state = SubscriberState.IDLE

    @property
    def state(self) -> SubscriberState:
        return self._state

    async def __aenter__(self) -> AuthStatusSubscriber:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def start(self) -> None:
        """Open the stream and start consuming it.

        Raises:
            AuthError: If the subscription cannot be established.
        """
        if self._state is not SubscriberState.IDLE:
            raise AuthError(f"Auth status subscriber already started ({self._state.value})")
        try:
            self._stream = await self._rpc.subscribe_auth_status()
        except Exception as exc:
            self._state = SubscriberState.ERRORED
            raise AuthError(f"Failed to subscribe to auth status updates: {exc}") from exc

        self._failure = asyncio.get_running_loop().create_future()
        self._state = SubscriberState.LISTENING
        self._task = asyncio.create_task(self._consume(self._stream))
        logger.debug("Subscribed to auth status updates")

    async def wait_for_authentication(self, timeout: float) -> AuthStatusEvent:
        """Wait for the first authenticated event.

        Events without a user or without a credential are discarded. A clean
        end of stream is not a result; the wait continues until one of the
        other outcomes.

        Raises:
            AuthTimeoutError: Nothing qualifying arrived within *timeout*.
            AuthCancelledError: :meth:`stop` was called.
            AuthStreamError: The stream failed.
            AuthError: :meth:`start` has not been called.
        """
        if self._failure is None:
            raise AuthError("Auth status subscriber has not been started")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        stopped_task = asyncio.ensure_future(self._stopped.wait())
        try:
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise self._timeout_error(timeout)
                if self._stopped.is_set():
                    self._state = SubscriberState.CANCELLED
                    raise AuthCancelledError("Authentication cancelled")

                # Events buffered before a stream failure still count.
                try:
                    event = self._events.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                else:
                    if self._accept(event):
                        return event
                    continue

                getter = asyncio.ensure_future(self._events.get())
                try:
                    done, _ = await asyncio.wait(
                        {getter, stopped_task, self._failure},
                        timeout=remaining,
                        return_when=asyncio.FIRST_COMPLETED,
                    )
                finally:
                    if not getter.done():
                        getter.cancel()

                if stopped_task in done:
                    self._state = SubscriberState.CANCELLED
                    raise AuthCancelledError("Authentication cancelled")

                if getter in done and not getter.cancelled():
                    event = getter.result()
                    if self._accept(event):
                        return event
                    continue

                if self._failure in done:
                    self._state = SubscriberState.ERRORED
                    cause = self._failure.result()
                    raise AuthStreamError(f"Auth status stream failed: {cause}") from cause

                # Nothing done: the deadline check above decides.
        finally:
            stopped_task.cancel()

    def _accept(self, event: AuthStatusEvent) -> bool:
        if not event.is_authenticated:
            logger.debug("Ignoring auth status without user or credential")
            return False
        self._state = SubscriberState.SUCCEEDED
        logger.debug("Authenticated status received")
        return True

    def stop(self) -> None:
        """Stop consuming and release any waiter. Idempotent."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Stop and wait for the consumer task to finish closing the stream."""
        self.stop()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        # The task may have been cancelled before it ever ran.
        if self._stream is not None:
            await self._stream.aclose()
            self._stream = None

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _timeout_error(self, timeout: float) -> AuthTimeoutError:
        self._state = SubscriberState.TIMED_OUT
        return AuthTimeoutError(
            f"Authentication timeout after {timeout:g}s - please try again"
        )

    async def _consume(self, stream: AuthStatusStream) -> None:
        try:
            async for event in stream:
                await self._events.put(event)
            logger.debug("Auth status stream ended")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Auth status stream failed: %s", exc)
            if self._failure is not None and not self._failure.done():
                self._failure.set_result(exc)
        finally:
            await stream.aclose()
