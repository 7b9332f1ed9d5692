"""Unit tests for the credential and token data types."""

from ticktick_mcp.models import (
    AuthorizationAttempt,
    ClientCredentials,
    PersistedAuthRecord,
    TokenPair,
)


class TestClientCredentials:
    def test_is_complete(self) -> None:
        assert ClientCredentials("id", "secret").is_complete()
        assert not ClientCredentials("id", "").is_complete()
        assert not ClientCredentials("", "secret").is_complete()

    def test_repr_hides_secret(self) -> None:
        text = repr(ClientCredentials("id", "super-secret"))
        assert "super-secret" not in text
        assert "id" in text


class TestAuthorizationAttempt:
    def test_is_expired(self) -> None:
        attempt = AuthorizationAttempt("nonce", "http://localhost:8000/callback", 100.0, 130.0)
        assert not attempt.is_expired(now=129.9)
        assert attempt.is_expired(now=130.0)


class TestTokenPair:
    def test_from_token_response_with_expiry(self) -> None:
        pair = TokenPair.from_token_response(
            {"access_token": "A", "refresh_token": "R", "expires_in": 3600}, now=1000
        )

        assert pair == TokenPair("A", "R", issued_at=1000, expires_at=4600)

    def test_from_token_response_without_refresh_or_expiry(self) -> None:
        pair = TokenPair.from_token_response({"access_token": "A"}, now=1000)

        assert pair.refresh_token == ""
        assert pair.expires_at is None

    def test_from_token_response_ignores_bad_expires_in(self) -> None:
        pair = TokenPair.from_token_response({"access_token": "A", "expires_in": "soon"}, now=1)
        assert pair.expires_at is None


class TestPersistedAuthRecord:
    def test_is_empty(self) -> None:
        assert PersistedAuthRecord().is_empty()
        assert PersistedAuthRecord(client_id="id").is_empty()
        assert not PersistedAuthRecord(refresh_token="R").is_empty()

    def test_merge_keeps_stored_refresh_token_and_credentials(self) -> None:
        stored = PersistedAuthRecord("old", "R1", "id", "secret", issued_at=1, expires_at=2)

        merged = stored.merged_with(PersistedAuthRecord(access_token="new"))

        assert merged.access_token == "new"
        assert merged.refresh_token == "R1"
        assert merged.credentials == ClientCredentials("id", "secret")
        assert merged.issued_at == 1
        assert merged.expires_at is None

    def test_merge_replaces_non_blank_values(self) -> None:
        stored = PersistedAuthRecord("old", "R1", "id", "secret")

        merged = stored.merged_with(PersistedAuthRecord("new", "R2", "id2", "secret2", 5, 10))

        assert merged == PersistedAuthRecord("new", "R2", "id2", "secret2", 5, 10)

    def test_with_tokens(self) -> None:
        stored = PersistedAuthRecord("old", "R1", "id", "secret")

        updated = stored.with_tokens(TokenPair("A", "", issued_at=100, expires_at=200))

        assert updated == PersistedAuthRecord("A", "R1", "id", "secret", 100, 200)

    def test_with_tokens_and_credentials(self) -> None:
        updated = PersistedAuthRecord().with_tokens(
            TokenPair("A", "R"), ClientCredentials("id", "secret")
        )

        assert updated.credentials == ClientCredentials("id", "secret")
        assert updated.token_pair == TokenPair("A", "R")
