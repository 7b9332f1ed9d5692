"""
OAuth 2.0 Authorization Code flow for TickTick.

Flow overview:
1. Authorization Request: build the authorize URL with a fresh state nonce
2. Local Listener: start the callback listener on the redirect URI port
3. User Consent: open the URL in the browser (the user can also paste it)
4. Callback: wait for exactly one of code, OAuth error, or timeout
5. Access Token Request: exchange the code at the token endpoint
6. Persistence: write the token pair and client credentials to the token store
"""

import logging
import secrets
import threading
import time
import webbrowser
from collections.abc import Callable
from urllib.parse import urlencode

from .callback_listener import CallbackListener
from .errors import AuthFlowError, ConfigError
from .models import AuthorizationAttempt, ClientCredentials, TokenPair
from .settings import TickTickSettings
from .token_endpoint import TokenEndpointClient
from .token_store import TokenStore

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "timeout"


def _default_open_browser(url: str) -> bool:
    return webbrowser.open(url)


class AuthorizationFlowController:
    """
    Drives the Authorization Code grant to completion.

    One controller owns at most one live authorization attempt. Calling
    ``start_flow`` again after an attempt finished creates a new attempt with
    a new state nonce, which makes any earlier nonce useless.
    """

    def __init__(
        self,
        token_store: TokenStore,
        token_client: TokenEndpointClient,
        auth_url: str,
        scopes: list[str],
        callback_host: str = "localhost",
        callback_port: int = 8000,
        callback_path: str = "/callback",
        callback_timeout: float = 30.0,
        grace_period: float = 10.0,
        open_browser: Callable[[str], bool] = _default_open_browser,
        announce: Callable[[str], None] | None = None,
        listener_factory: Callable[..., CallbackListener] = CallbackListener,
    ):
        self.token_store = token_store
        self.token_client = token_client
        self.auth_url = auth_url
        self.scopes = scopes
        self.callback_host = callback_host
        self.callback_port = callback_port
        self.callback_path = callback_path
        self.callback_timeout = callback_timeout
        self.grace_period = grace_period
        self._open_browser = open_browser
        self._announce = announce
        self._listener_factory = listener_factory

        self._flow_lock = threading.Lock()
        self._attempt: AuthorizationAttempt | None = None

    @classmethod
    def from_settings(
        cls,
        settings: TickTickSettings,
        token_store: TokenStore,
        token_client: TokenEndpointClient | None = None,
        announce: Callable[[str], None] | None = None,
    ) -> "AuthorizationFlowController":
        return cls(
            token_store=token_store,
            token_client=token_client
            or TokenEndpointClient(settings.token_url, timeout=settings.request_timeout),
            auth_url=settings.auth_url,
            scopes=settings.scopes,
            callback_host=settings.callback_host,
            callback_port=settings.callback_port,
            callback_path=settings.callback_path,
            callback_timeout=settings.callback_timeout,
            grace_period=settings.shutdown_grace_period,
            announce=announce,
        )

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.callback_host}:{self.callback_port}{self.callback_path}"

    @property
    def current_attempt(self) -> AuthorizationAttempt | None:
        return self._attempt

    def get_authorization_url(self, credentials: ClientCredentials) -> str:
        """
        Build an authorization URL for manual navigation.

        No listener is started; the URL carries a fresh state nonce.

        Raises:
            ConfigError: If the client ID or secret is empty
        """
        self._check_credentials(credentials)
        return self._build_authorization_url(credentials, self._new_state())

    def start_flow(self, credentials: ClientCredentials) -> TokenPair:
        """
        Run the Authorization Code grant and persist the resulting tokens.

        Args:
            credentials: OAuth client credentials

        Returns:
            The token pair obtained from the token endpoint

        Raises:
            ConfigError: If the client ID or secret is empty
            AuthFlowError: On listener bind failure, an OAuth ``error``
                callback, a state mismatch, or timeout (reason ``"timeout"``)
            TokenExchangeError: If the token endpoint rejects the code
        """
        self._check_credentials(credentials)

        if not self._flow_lock.acquire(blocking=False):
            raise AuthFlowError("an authorization attempt is already in progress")

        try:
            now = time.time()
            attempt = AuthorizationAttempt(
                state_nonce=self._new_state(),
                redirect_uri=self.redirect_uri,
                created_at=now,
                expires_at=now + self.callback_timeout,
            )
            self._attempt = attempt
            auth_url = self._build_authorization_url(credentials, attempt.state_nonce)

            listener = self._listener_factory(
                port=self.callback_port,
                path=self.callback_path,
                host=self.callback_host,
                expected_state=attempt.state_nonce,
                grace_period=self.grace_period,
            )
            listener.start()

            result = None
            try:
                self._show_url(auth_url)
                self._launch_browser(auth_url)
                result = listener.wait_for_result(self.callback_timeout)
            finally:
                # Release the port whatever happened so a new attempt can bind it
                listener.stop(force=result is None)

            if result is None:
                logger.error(f"No authorization callback within {self.callback_timeout} seconds")
                raise AuthFlowError(TIMEOUT_REASON)
            if result.error is not None or not result.code:
                raise AuthFlowError(result.error or "missing authorization code")

            token_pair = self.token_client.exchange_code(
                credentials, result.code, attempt.redirect_uri
            )
            self.token_store.update_tokens(token_pair, credentials)
            logger.info("Authorization completed and tokens saved")
            return token_pair
        finally:
            self._attempt = None
            self._flow_lock.release()

    def _check_credentials(self, credentials: ClientCredentials) -> None:
        if not credentials.client_id:
            raise ConfigError("TICKTICK_CLIENT_ID is required")
        if not credentials.client_secret:
            raise ConfigError("TICKTICK_CLIENT_SECRET is required")

    def _new_state(self) -> str:
        return secrets.token_urlsafe(32)

    def _build_authorization_url(self, credentials: ClientCredentials, state: str) -> str:
        auth_params = {
            "response_type": "code",
            "client_id": credentials.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(auth_params)}"

    def _show_url(self, auth_url: str) -> None:
        logger.info(f"Authorization URL: {auth_url}")
        if self._announce is not None:
            self._announce(auth_url)

    def _launch_browser(self, auth_url: str) -> None:
        try:
            opened = self._open_browser(auth_url)
        except webbrowser.Error as e:
            logger.warning(f"Failed to open browser: {e}. Please open the URL manually.")
            return
        if not opened:
            logger.warning("Failed to open browser. Please open the URL manually.")
