"""Local HTTP listener that forwards the provider's OAuth redirect.

The provider redirects the browser to ``http://localhost:<port>/...``.
:class:`CallbackListener` accepts that one request and answers with a
``302`` to the same path and query on the external callback (the redirect
base), where the backend completes the code exchange. The listener then
shuts itself down.

The HTTP server runs in a daemon thread; creation, the idle timer and
shutdown are driven from the asyncio event loop that first asked for the
callback URI.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Iterable, Optional, Union
from urllib.parse import urljoin

from ocalogin.exceptions import CallbackServerError, NoAvailablePortError

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 600.0

RedirectBase = Union[str, Callable[[], str]]


class _CallbackServer(ThreadingHTTPServer):
    daemon_threads = True
    # A port held by another process counts as taken.
    allow_reuse_port = False

    def __init__(self, address: tuple[str, int], listener: CallbackListener) -> None:
        self.listener = listener
        super().__init__(address, _RedirectHandler)


class _RedirectHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    def _handle(self) -> None:
        listener = self.server.listener
        try:
            target = urljoin(listener.redirect_base(), self.path)
            self.send_response(302)
            self.send_header("Location", target)
            self.send_header("Cache-Control", "no-store, no-cache, must-revalidate")
            self.send_header("Pragma", "no-cache")
            self.send_header("Content-Length", "0")
            self.end_headers()
            logger.debug("Redirected %s %s to %s", self.command, self.path, target)
        except Exception:
            logger.exception("Failed to build callback redirect for %s", self.path)
            body = b"Internal Server Error"
            self.send_response(500)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(body)
        finally:
            listener._schedule_stop()

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = do_HEAD = do_OPTIONS = _handle

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback %s - %s", self.address_string(), format % args)


class CallbackListener:
    """One-shot redirect listener bound to the first free candidate port.

    Args:
        ports: Candidate local ports, tried in order. ``0`` lets the OS pick.
        redirect_base: External callback URL, or a callable returning it.
            Called per request, so a changed configuration is picked up.
        host: Interface to bind.
        idle_timeout: Seconds without a :meth:`get_callback_uri` call
            before the listener stops itself. ``None`` or ``0`` disables it.

    Example::

        listener = CallbackListener([48801, 48802], "https://backend.test/auth/oca")
        uri = await listener.get_callback_uri()   # "http://localhost:48801"
        ...
        listener.stop()
    """

    def __init__(
        self,
        ports: Iterable[int],
        redirect_base: RedirectBase,
        *,
        host: str = "127.0.0.1",
        idle_timeout: Optional[float] = DEFAULT_IDLE_TIMEOUT,
    ) -> None:
        self._ports = list(ports)
        self._redirect_base = redirect_base
        self._host = host
        self._idle_timeout = idle_timeout

        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._port = 0
        self._creating: Optional[asyncio.Task[int]] = None
        self._generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._idle_handle: Optional[asyncio.TimerHandle] = None
        self._stopped: Optional[asyncio.Event] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def port(self) -> int:
        """Bound port, or ``0`` when not running."""
        return self._port

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def ports(self) -> list[int]:
        """Candidate ports used the next time the listener starts."""
        return list(self._ports)

    @ports.setter
    def ports(self, value: Iterable[int]) -> None:
        self._ports = list(value)

    def redirect_base(self) -> str:
        if callable(self._redirect_base):
            return self._redirect_base()
        return self._redirect_base

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def get_callback_uri(self) -> str:
        """Return ``http://localhost:<port>``, starting the listener if needed.

        Concurrent callers share a single start-up. Every call re-arms the
        idle timer.

        Raises:
            NoAvailablePortError: Every candidate port is in use.
            CallbackServerError: Binding failed for another reason, or the
                listener was stopped while starting.
        """
        if self._server is not None:
            self._arm_idle_timer()
            return self._uri(self._port)

        if self._creating is None:
            self._loop = asyncio.get_running_loop()
            self._creating = asyncio.ensure_future(self._create(self._generation))
        port = await asyncio.shield(self._creating)
        self._arm_idle_timer()
        return self._uri(port)

    def stop(self) -> None:
        """Stop the listener. Safe to call repeatedly and before start-up.

        State is reset at once. On a running event loop the server shutdown
        runs in the default executor; :meth:`wait_stopped` returns once the
        port is released.
        """
        self._generation += 1
        self._creating = None
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
            self._port = 0

        if server is None:
            return
        logger.debug("Stopping callback listener on port %d", server.server_address[1])
        stopped = self._stopped

        def _shutdown() -> None:
            if thread is not None and thread is not threading.current_thread():
                server.shutdown()
                thread.join(timeout=5)
            server.server_close()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _shutdown()
            if stopped is not None:
                stopped.set()
            return
        future = loop.run_in_executor(None, _shutdown)
        if stopped is not None:
            future.add_done_callback(lambda _: stopped.set())

    dispose = stop

    async def wait_stopped(self) -> None:
        """Block until the listener has stopped and released its port."""
        if self._stopped is None:
            return
        await self._stopped.wait()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _create(self, generation: int) -> int:
        try:
            server = await asyncio.to_thread(self._bind, list(self._ports))
        finally:
            if generation == self._generation:
                self._creating = None

        if generation != self._generation:
            server.server_close()
            raise CallbackServerError("Callback listener was stopped while starting")

        port = server.server_address[1]
        thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name=f"ocalogin-callback-{port}",
            daemon=True,
        )
        with self._lock:
            self._server = server
            self._thread = thread
            self._port = port
        self._stopped = asyncio.Event()
        thread.start()
        logger.info("Callback listener started on %s:%d", self._host, port)
        return port

    def _bind(self, ports: list[int]) -> _CallbackServer:
        for port in ports:
            try:
                return _CallbackServer((self._host, port), self)
            except OSError as exc:
                if exc.errno == errno.EADDRINUSE:
                    logger.debug("Callback port %d is in use, trying next", port)
                    continue
                raise CallbackServerError(
                    f"Could not start callback listener on port {port}: {exc}"
                ) from exc
        tried = ", ".join(str(p) for p in ports) or "none"
        raise NoAvailablePortError(f"No available callback port (tried: {tried})")

    def _arm_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None
        if not self._idle_timeout or self._loop is None:
            return
        self._idle_handle = self._loop.call_later(self._idle_timeout, self._on_idle)

    def _on_idle(self) -> None:
        logger.info("Callback listener idle for %ss, stopping", self._idle_timeout)
        self._idle_handle = None
        self.stop()

    def _schedule_stop(self) -> None:
        loop = self._loop
        if loop is not None:
            try:
                loop.call_soon_threadsafe(self.stop)
                return
            except RuntimeError:
                # Loop already closed.
                pass
        self.stop()

    def _uri(self, port: int) -> str:
        return f"http://localhost:{port}"
