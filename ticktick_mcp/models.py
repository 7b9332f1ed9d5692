import time
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str

    def is_complete(self) -> bool:
        return bool(self.client_id) and bool(self.client_secret)

    def __repr__(self) -> str:
        # Never render the secret in logs or tracebacks
        return f"ClientCredentials(client_id={self.client_id!r}, client_secret='***')"


@dataclass(frozen=True)
class AuthorizationAttempt:
    state_nonce: str
    redirect_uri: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str = ""
    issued_at: int = 0
    expires_at: int | None = None

    @classmethod
    def from_token_response(cls, payload: dict[str, Any], now: float | None = None) -> "TokenPair":
        """Build a token pair from a token endpoint JSON response.

        Args:
            payload: Decoded body with ``access_token`` and optionally
                ``refresh_token`` and ``expires_in``
            now: Issue time (epoch seconds), defaults to the current time

        Returns:
            TokenPair with ``expires_at`` derived from ``expires_in`` when present
        """
        issued_at = int(now if now is not None else time.time())
        expires_at = None
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            try:
                expires_at = issued_at + int(expires_in)
            except (TypeError, ValueError):
                expires_at = None

        return cls(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=str(payload.get("refresh_token") or ""),
            issued_at=issued_at,
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class PersistedAuthRecord:
    access_token: str = ""
    refresh_token: str = ""
    client_id: str = ""
    client_secret: str = ""
    issued_at: int | None = None
    expires_at: int | None = None

    @property
    def credentials(self) -> ClientCredentials:
        return ClientCredentials(self.client_id, self.client_secret)

    @property
    def token_pair(self) -> TokenPair:
        return TokenPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            issued_at=self.issued_at or 0,
            expires_at=self.expires_at,
        )

    def is_empty(self) -> bool:
        return not self.access_token and not self.refresh_token

    def merged_with(self, incoming: "PersistedAuthRecord") -> "PersistedAuthRecord":
        """Overlay ``incoming`` on this record.

        Blank refresh token and blank client credentials in ``incoming`` keep
        the values already held here.
        """
        return PersistedAuthRecord(
            access_token=incoming.access_token,
            refresh_token=incoming.refresh_token or self.refresh_token,
            client_id=incoming.client_id or self.client_id,
            client_secret=incoming.client_secret or self.client_secret,
            issued_at=incoming.issued_at if incoming.issued_at is not None else self.issued_at,
            expires_at=incoming.expires_at,
        )

    def with_tokens(
        self, pair: TokenPair, credentials: ClientCredentials | None = None
    ) -> "PersistedAuthRecord":
        updated = replace(
            self,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            issued_at=pair.issued_at or None,
            expires_at=pair.expires_at,
        )
        if credentials is not None:
            updated = replace(
                updated, client_id=credentials.client_id, client_secret=credentials.client_secret
            )
        return self.merged_with(updated)
