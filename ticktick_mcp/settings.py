"""
Settings for the TickTick OAuth client.

Values are read from ``TICKTICK_*`` environment variables (and a local
``.env`` file), so the same file the auth flow writes tokens into can also
carry the client credentials.
"""

import logging
import tempfile
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ClientCredentials, PersistedAuthRecord

DEFAULT_TOKEN_FILE = Path(tempfile.gettempdir()) / "ticktick-mcp" / ".env"


class TickTickSettings(BaseSettings):
    """
    Settings for the TickTick OAuth integration.

    Only the client credentials are required; every endpoint and timeout has
    a default that matches the dida365 open API.
    """

    model_config = SettingsConfigDict(
        env_prefix="TICKTICK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OAuth client credentials
    client_id: str = ""
    client_secret: str = ""

    # OAuth and API endpoints
    auth_url: str = "https://dida365.com/oauth/authorize"
    token_url: str = "https://dida365.com/oauth/token"
    base_url: str = "https://api.dida365.com/open/v1"
    scope: str = "tasks:read tasks:write"

    # Local redirect listener
    callback_host: str = "localhost"
    callback_port: int = 8000
    callback_path: str = "/callback"
    callback_timeout: float = 30.0
    shutdown_grace_period: float = 10.0

    # Outbound requests
    request_timeout: float = 30.0
    user_agent: str = "ticktick-mcp/0.1.0"

    # Persistence and logging
    token_file: Path = DEFAULT_TOKEN_FILE
    log_level: str = "INFO"
    log_file: Path | None = None

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.callback_host}:{self.callback_port}{self.callback_path}"

    @property
    def scopes(self) -> list[str]:
        return self.scope.split()

    def credentials(self) -> ClientCredentials:
        return ClientCredentials(self.client_id, self.client_secret)

    def resolve_credentials(self, record: PersistedAuthRecord) -> ClientCredentials:
        """Configured credentials, falling back per field to the persisted record."""
        return ClientCredentials(
            self.client_id or record.client_id,
            self.client_secret or record.client_secret,
        )


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure root logging on stderr, plus an optional log file.

    stdout stays untouched because the MCP server speaks over stdio.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers, force=True)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
