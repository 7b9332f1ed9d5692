"""TickTick MCP Server Package.

OAuth2-authenticated client and MCP server for the TickTick open API.
"""

from ticktick_mcp.api_client import AuthenticatedHTTPClient
from ticktick_mcp.auth_flow import AuthorizationFlowController
from ticktick_mcp.callback_listener import CallbackListener, CallbackResult, ListenerState
from ticktick_mcp.errors import (
    APIRequestError,
    APIResponseError,
    AuthFlowError,
    ConfigError,
    TickTickError,
    TokenExchangeError,
    TokenRefreshError,
)
from ticktick_mcp.models import (
    AuthorizationAttempt,
    ClientCredentials,
    PersistedAuthRecord,
    TokenPair,
)
from ticktick_mcp.settings import TickTickSettings
from ticktick_mcp.token_endpoint import TokenEndpointClient
from ticktick_mcp.token_store import TokenStore

__all__ = [
    "APIRequestError",
    "APIResponseError",
    "AuthFlowError",
    "AuthenticatedHTTPClient",
    "AuthorizationAttempt",
    "AuthorizationFlowController",
    "CallbackListener",
    "CallbackResult",
    "ClientCredentials",
    "ConfigError",
    "ListenerState",
    "PersistedAuthRecord",
    "TickTickError",
    "TickTickSettings",
    "TokenEndpointClient",
    "TokenExchangeError",
    "TokenPair",
    "TokenRefreshError",
    "TokenStore",
]

__version__ = "0.1.0"
