"""
Error taxonomy for the TickTick OAuth client.

Every error carries a stable ``code`` so callers (the MCP tool layer, the CLI)
can report failures without matching on message text.
"""


class TickTickError(Exception):
    """Base class for all errors raised by this package."""

    code = "TICKTICK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code}


class ConfigError(TickTickError):
    """Client credentials or stored tokens are missing or unreadable."""

    code = "INVALID_CREDENTIALS"


class AuthFlowError(TickTickError):
    """The authorization attempt failed (OAuth error, bind failure, timeout)."""

    code = "AUTH_FAILED"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class TokenExchangeError(TickTickError):
    """The token endpoint rejected a request or returned an unusable response."""

    code = "TOKEN_EXCHANGE_FAILED"

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenRefreshError(TickTickError):
    code = "TOKEN_REFRESH_FAILED"

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class APIRequestError(TickTickError):
    """Transport-level failure: connection refused, DNS, timeout."""

    code = "API_REQUEST_FAILED"


class APIResponseError(TickTickError):
    code = "API_RESPONSE_ERROR"

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP {status_code}: {body}" if body else f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body
