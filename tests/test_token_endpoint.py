"""Unit tests for the token endpoint client."""

import base64
from unittest.mock import Mock

import pytest
import requests

from ticktick_mcp.errors import APIRequestError, ConfigError, TokenExchangeError
from ticktick_mcp.models import ClientCredentials
from ticktick_mcp.token_endpoint import TokenEndpointClient

TOKEN_URL = "https://dida365.com/oauth/token"


def make_response(status_code: int = 200, payload: object = None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session: Mock) -> TokenEndpointClient:
    return TokenEndpointClient(TOKEN_URL, session=session, timeout=5.0)


class TestExchangeCode:
    def test_posts_form_with_basic_auth(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(
            payload={"access_token": "A", "refresh_token": "R", "expires_in": 3600}
        )

        pair = client.exchange_code(credentials, "code-123", "http://localhost:8000/callback")

        assert pair.access_token == "A"
        assert pair.refresh_token == "R"
        assert pair.expires_at == pair.issued_at + 3600

        args, kwargs = session.post.call_args
        assert args == (TOKEN_URL,)
        assert kwargs["data"] == {
            "grant_type": "authorization_code",
            "code": "code-123",
            "redirect_uri": "http://localhost:8000/callback",
        }
        assert kwargs["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
        assert kwargs["timeout"] == 5.0

        # Client ID is the Basic auth username, the secret the password
        prepared = requests.Request("POST", TOKEN_URL).prepare()
        kwargs["auth"](prepared)
        expected = base64.b64encode(b"test-client-id:test-client-secret").decode()
        assert prepared.headers["Authorization"] == f"Basic {expected}"

    def test_rejected_code_raises_with_status_and_body(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(400, text='{"error":"invalid_grant"}')

        with pytest.raises(TokenExchangeError) as exc_info:
            client.exchange_code(credentials, "bad", "http://localhost:8000/callback")

        assert exc_info.value.status_code == 400
        assert "invalid_grant" in exc_info.value.body
        assert exc_info.value.code == "TOKEN_EXCHANGE_FAILED"

    def test_missing_access_token_raises(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(payload={"token_type": "bearer"})

        with pytest.raises(TokenExchangeError, match="missing access_token"):
            client.exchange_code(credentials, "code", "http://localhost:8000/callback")

    def test_invalid_json_raises(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(200, text="<html>oops</html>")

        with pytest.raises(TokenExchangeError, match="invalid JSON"):
            client.exchange_code(credentials, "code", "http://localhost:8000/callback")

    def test_network_error_raises_request_error(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(APIRequestError):
            client.exchange_code(credentials, "code", "http://localhost:8000/callback")

    def test_incomplete_credentials_rejected_before_request(
        self, client: TokenEndpointClient, session: Mock
    ) -> None:
        with pytest.raises(ConfigError):
            client.exchange_code(ClientCredentials("id", ""), "code", "http://x/callback")

        session.post.assert_not_called()


class TestRefresh:
    def test_refresh_grant(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(payload={"access_token": "A2"})

        pair = client.refresh(credentials, "R1")

        assert pair.access_token == "A2"
        assert pair.refresh_token == ""
        assert session.post.call_args.kwargs["data"] == {
            "grant_type": "refresh_token",
            "refresh_token": "R1",
        }

    def test_refresh_rejected(
        self, client: TokenEndpointClient, session: Mock, credentials: ClientCredentials
    ) -> None:
        session.post.return_value = make_response(401, text="invalid refresh token")

        with pytest.raises(TokenExchangeError) as exc_info:
            client.refresh(credentials, "expired")

        assert exc_info.value.status_code == 401
