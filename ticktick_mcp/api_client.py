import json
import logging
from json import JSONDecodeError
from typing import Any

import requests

from .errors import (
    APIRequestError,
    APIResponseError,
    ConfigError,
    TokenExchangeError,
    TokenRefreshError,
)
from .models import ClientCredentials
from .settings import TickTickSettings
from .token_endpoint import TokenEndpointClient
from .token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.dida365.com/open/v1"
DEFAULT_USER_AGENT = "ticktick-mcp/0.1.0"


class AuthenticatedHTTPClient:
    """
    Executes TickTick API requests with bearer-token injection.

    The access token is read from the token store on every request, never
    cached here, so a refresh performed by one call is visible to the next.
    A 401 response triggers exactly one refresh and one retry.
    """

    def __init__(
        self,
        token_store: TokenStore,
        token_client: TokenEndpointClient,
        base_url: str = DEFAULT_BASE_URL,
        credentials: ClientCredentials | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.token_store = token_store
        self.token_client = token_client
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user_agent = user_agent

    @classmethod
    def from_settings(
        cls,
        settings: TickTickSettings,
        token_store: TokenStore,
        token_client: TokenEndpointClient | None = None,
    ) -> "AuthenticatedHTTPClient":
        credentials = settings.credentials()
        return cls(
            token_store=token_store,
            token_client=token_client
            or TokenEndpointClient(settings.token_url, timeout=settings.request_timeout),
            base_url=settings.base_url,
            credentials=credentials if credentials.is_complete() else None,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
        )

    def request(self, method: str, path: str, body: Any | None = None) -> bytes:
        """
        Send an authenticated request.

        Args:
            method: HTTP method
            path: Path relative to the API base URL (e.g. ``/project``)
            body: JSON-serializable request body, or None

        Returns:
            Raw response body

        Raises:
            ConfigError: If no tokens are stored or client credentials are missing
            TokenRefreshError: If the 401 recovery fails
            APIRequestError: On transport failures
            APIResponseError: On any other status >= 400
        """
        record = self.token_store.load()
        if record.is_empty():
            raise ConfigError("TICKTICK_ACCESS_TOKEN not set. Run ticktick-mcp-auth to authenticate.")

        response = self._send(method, path, body, record.access_token)

        if response.status_code == 401:
            logger.info(f"{method.upper()} {path} returned 401, refreshing access token")
            access_token = self._refresh(record.access_token)

            response = self._send(method, path, body, access_token)
            if response.status_code == 401:
                raise TokenRefreshError(
                    "request still unauthorized after token refresh",
                    status_code=401,
                    body=response.text,
                )

        if response.status_code >= 400:
            logger.error(f"{method.upper()} {path} failed with HTTP {response.status_code}")
            raise APIResponseError(response.status_code, response.text)

        return response.content

    do = request

    def get_json(self, method: str, path: str, body: Any | None = None) -> Any:
        content = self.request(method, path, body)
        if not content:
            return None
        try:
            return json.loads(content)
        except JSONDecodeError as e:
            raise APIResponseError(200, f"invalid JSON in response: {e}") from e

    def _send(
        self, method: str, path: str, body: Any | None, access_token: str
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        data = json.dumps(body) if body is not None else None

        try:
            response = self.session.request(
                method.upper(), url, headers=headers, data=data, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise APIRequestError(f"{method.upper()} {url} failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")
        return response

    def _refresh(self, rejected_token: str) -> str:
        """Return a usable access token after ``rejected_token`` got a 401.

        The store lock is held from the reload to the write, so concurrent
        401s refresh once and the others pick up the stored result.
        """
        with self.token_store.lock:
            record = self.token_store.load()
            if record.access_token and record.access_token != rejected_token:
                logger.info("Access token was already refreshed, retrying with the stored token")
                return record.access_token

            if not record.refresh_token:
                raise TokenRefreshError("no refresh token available")

            credentials = record.credentials
            if not credentials.is_complete() and self.credentials is not None:
                credentials = self.credentials
            if not credentials.is_complete():
                raise ConfigError("client ID or client secret missing")

            try:
                token_pair = self.token_client.refresh(credentials, record.refresh_token)
            except TokenExchangeError as e:
                raise TokenRefreshError(
                    f"token refresh failed: {e.message}", status_code=e.status_code, body=e.body
                ) from e

            updated = self.token_store.update_tokens(token_pair, credentials)
            return updated.access_token
