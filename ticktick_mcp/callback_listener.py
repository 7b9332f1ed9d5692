"""
Ephemeral local HTTP endpoint that captures the OAuth redirect.

The listener is a one-route Starlette app served by uvicorn on a background
thread. The first request to the callback path resolves a single-slot future
with either the authorization code or an error; the caller blocks on that
future with a deadline. Later requests get an "already completed" page and
their payload is discarded.
"""

import html
import logging
import socket
import threading
from concurrent.futures import CancelledError, Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from types import TracebackType

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, PlainTextResponse, Response
from starlette.routing import Route

from .errors import AuthFlowError

logger = logging.getLogger(__name__)

MISSING_CODE = "missing authorization code"
STATE_MISMATCH = "state mismatch"

SUCCESS_PAGE = """
<html>
<head>
    <title>TickTick MCP Server - Authentication Successful</title>
    <style>
        body { font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;
               padding: 20px; text-align: center; }
        h1 { color: #4CAF50; }
    </style>
</head>
<body>
    <h1>Authentication Successful!</h1>
    <p>You have successfully authenticated with TickTick.</p>
    <p>You can close this window and return to the terminal.</p>
</body>
</html>
"""

FAILURE_PAGE = """
<html>
<head><title>TickTick MCP Server - Authorization Failed</title></head>
<body>
    <h1>Authorization Failed</h1>
    <p>Error: {error}</p>
    <p>You can close this window and return to the terminal.</p>
</body>
</html>
"""

ALREADY_COMPLETED_PAGE = """
<html>
<head><title>TickTick MCP Server</title></head>
<body>
    <h1>Authorization Already Completed</h1>
    <p>This authorization attempt has already finished. You can close this window.</p>
</body>
</html>
"""


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CODE_RECEIVED = "code_received"
    ERROR_RECEIVED = "error_received"
    GRACE_PERIOD = "grace_period"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class CallbackResult:
    code: str | None = None
    error: str | None = None
    state: str | None = None

    @property
    def ok(self) -> bool:
        return self.code is not None and self.error is None


def _bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        # Accept into the backlog right away; uvicorn picks the socket up once
        # its loop is running.
        sock.listen(16)
    except OSError:
        sock.close()
        raise
    return sock


def _bind_sockets(host: str, port: int) -> list[socket.socket]:
    """Bind the callback port.

    "localhost" binds the IPv4 loopback and, where available, the IPv6 one, so
    the redirect URI works whichever address the browser resolves it to.
    """
    if host != "localhost":
        return [_bind_socket(host, port)]

    sockets = [_bind_socket("127.0.0.1", port)]
    if socket.has_ipv6:
        try:
            sockets.append(_bind_socket("::1", port))
        except OSError as e:
            logger.debug(f"IPv6 loopback not available for the callback listener: {e}")
    return sockets


class CallbackListener:
    """Accepts exactly one OAuth redirect and surfaces its result."""

    def __init__(
        self,
        port: int = 8000,
        path: str = "/callback",
        host: str = "localhost",
        expected_state: str | None = None,
        grace_period: float = 10.0,
    ):
        """
        Args:
            port: Local port to bind
            path: Callback path registered as the redirect URI path
            host: Interface to bind ("localhost" binds 127.0.0.1)
            expected_state: State nonce the callback must echo back. ``None``
                            disables the check.
            grace_period: Seconds after the first callback before the
                          listener shuts itself down
        """
        self.port = port
        self.path = path
        self.host = host
        self.expected_state = expected_state
        self.grace_period = grace_period

        self._result: Future[CallbackResult] = Future()
        self._lock = threading.Lock()
        self._state = ListenerState.IDLE
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._sockets: list[socket.socket] = []
        self._shutdown_timer: threading.Timer | None = None

        self.app = Starlette(routes=[Route(path, endpoint=self._handle_callback, methods=["GET"])])

    @property
    def state(self) -> ListenerState:
        return self._state

    def start(self) -> None:
        """
        Bind the port and start serving on a background thread.

        Raises:
            AuthFlowError: If the port cannot be bound
        """
        with self._lock:
            if self._state is not ListenerState.IDLE:
                raise AuthFlowError(f"callback listener already {self._state.value}")

            try:
                self._sockets = _bind_sockets(self.host, self.port)
            except OSError as e:
                logger.error(f"Failed to bind callback listener on port {self.port}: {e}")
                raise AuthFlowError(f"cannot listen on port {self.port}: {e}") from e

            config = uvicorn.Config(
                self.app,
                log_config=None,
                log_level="warning",
                lifespan="off",
                access_log=False,
                timeout_graceful_shutdown=2,
            )
            self._server = uvicorn.Server(config)
            self._thread = threading.Thread(
                target=self._server.run,
                kwargs={"sockets": self._sockets},
                name="oauth-callback-listener",
                daemon=True,
            )
            self._thread.start()
            self._state = ListenerState.LISTENING

        logger.info(f"Waiting for authentication callback on port {self.port}...")

    def wait_for_result(self, timeout: float | None) -> CallbackResult | None:
        """
        Block until the first callback arrives.

        Returns:
            The callback result, or ``None`` if ``timeout`` elapsed first. An
            expired wait closes the attempt: later callbacks only get the
            "already completed" page.
        """
        try:
            return self._result.result(timeout=timeout)
        except CancelledError:
            return None
        except FutureTimeoutError:
            pass

        with self._lock:
            if self._result.cancel():
                return None
        # A callback landed between the deadline and the cancel
        return self._result.result()

    def stop(self, force: bool = False) -> None:
        """
        Shut the listener down and release the port.

        Safe to call more than once and from any thread, including the
        grace-period timer.

        Args:
            force: Drop in-flight connections instead of letting them finish
        """
        with self._lock:
            if self._state in (ListenerState.IDLE, ListenerState.SHUTDOWN):
                self._state = ListenerState.SHUTDOWN
                return
            self._state = ListenerState.SHUTDOWN
            self._result.cancel()
            timer, self._shutdown_timer = self._shutdown_timer, None
            server, thread, sockets = self._server, self._thread, self._sockets

        if timer is not None and timer is not threading.current_thread():
            timer.cancel()

        if server is not None:
            server.should_exit = True
            if force:
                server.force_exit = True
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
            if thread.is_alive():
                logger.warning("Callback listener thread did not exit within 5 seconds")
        for sock in sockets:
            sock.close()

        logger.debug(f"Callback listener on port {self.port} stopped")

    def _deliver(self, result: CallbackResult) -> bool:
        """Hand the result to the waiting caller. Returns False if one was already delivered."""
        with self._lock:
            if self._result.done():
                return False
            try:
                self._result.set_result(result)
            except InvalidStateError:
                return False
            if self._state is ListenerState.LISTENING:
                self._state = (
                    ListenerState.CODE_RECEIVED if result.ok else ListenerState.ERROR_RECEIVED
                )
            return True

    def _schedule_shutdown(self) -> None:
        with self._lock:
            if self._state is ListenerState.SHUTDOWN or self._shutdown_timer is not None:
                return
            self._state = ListenerState.GRACE_PERIOD
            self._shutdown_timer = threading.Timer(self.grace_period, self.stop)
            self._shutdown_timer.daemon = True
            self._shutdown_timer.start()

    async def _handle_callback(self, request: Request) -> Response:
        """Handle the OAuth redirect from the authorization server."""
        if self._result.done():
            logger.info("Ignoring callback received after the attempt completed")
            return HTMLResponse(ALREADY_COMPLETED_PAGE)

        code = request.query_params.get("code")
        error = request.query_params.get("error")
        state = request.query_params.get("state")

        if error:
            logger.error(f"OAuth callback error: {error}")
            result = CallbackResult(error=error, state=state)
            response: Response = HTMLResponse(
                FAILURE_PAGE.format(error=html.escape(error)), status_code=400
            )
        elif not code:
            logger.error("Missing authorization code in OAuth callback")
            result = CallbackResult(error=MISSING_CODE, state=state)
            response = PlainTextResponse("Missing authorization code", status_code=400)
        elif self.expected_state is not None and state != self.expected_state:
            logger.error("OAuth callback state does not match the authorization attempt")
            result = CallbackResult(error=STATE_MISMATCH, state=state)
            response = PlainTextResponse("Invalid state parameter", status_code=400)
        else:
            logger.info("Received authorization code")
            result = CallbackResult(code=code, state=state)
            response = HTMLResponse(SUCCESS_PAGE)

        if not self._deliver(result):
            return HTMLResponse(ALREADY_COMPLETED_PAGE)

        self._schedule_shutdown()
        return response

    def __enter__(self) -> "CallbackListener":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop(force=exc_type is not None)
