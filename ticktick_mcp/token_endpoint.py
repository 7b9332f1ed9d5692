import logging
from json import JSONDecodeError
from typing import Any

import requests
from requests.auth import HTTPBasicAuth

from .errors import APIRequestError, ConfigError, TokenExchangeError
from .models import ClientCredentials, TokenPair

logger = logging.getLogger(__name__)


class TokenEndpointClient:
    """Calls the OAuth token endpoint for code exchange and refresh grants."""

    def __init__(
        self,
        token_url: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ):
        self.token_url = token_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def exchange_code(
        self, credentials: ClientCredentials, code: str, redirect_uri: str
    ) -> TokenPair:
        logger.info("Exchanging authorization code for tokens")
        return self._request_token(
            credentials,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
        )

    def refresh(self, credentials: ClientCredentials, refresh_token: str) -> TokenPair:
        logger.info("Refreshing access token")
        return self._request_token(
            credentials,
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
        )

    def _request_token(self, credentials: ClientCredentials, data: dict[str, str]) -> TokenPair:
        if not credentials.is_complete():
            raise ConfigError("client ID or client secret missing")

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        try:
            response = self.session.post(
                self.token_url,
                data=data,
                headers=headers,
                auth=HTTPBasicAuth(credentials.client_id, credentials.client_secret),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise APIRequestError(f"Token request to {self.token_url} failed: {e}") from e

        logger.debug(f"Token endpoint response status: {response.status_code}")

        if not 200 <= response.status_code < 300:
            body = response.text
            logger.error(f"Token endpoint returned {response.status_code}: {body}")
            raise TokenExchangeError(
                f"token endpoint returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        try:
            payload: Any = response.json()
        except (JSONDecodeError, ValueError) as e:
            raise TokenExchangeError(
                f"token endpoint returned invalid JSON: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise TokenExchangeError(
                "token response missing access_token",
                status_code=response.status_code,
                body=response.text,
            )

        return TokenPair.from_token_response(payload)
