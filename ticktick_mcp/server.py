import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from mcp.server.fastmcp.server import FastMCP

from .api_client import AuthenticatedHTTPClient
from .auth_flow import AuthorizationFlowController
from .errors import TickTickError
from .settings import TickTickSettings, configure_logging
from .token_store import TokenStore

logger = logging.getLogger(__name__)


def check_status(api_client: AuthenticatedHTTPClient) -> dict[str, Any]:
    """Check connectivity to the TickTick API with the stored token.

    Args:
        api_client: Authenticated client holding the token store

    Returns:
        Dict with ``status`` ("healthy" or "unhealthy"), ``authenticated``,
        and either ``project_count`` or ``error``/``code``
    """
    record = api_client.token_store.load()
    result: dict[str, Any] = {"authenticated": not record.is_empty()}

    try:
        projects = api_client.get_json("GET", "/project")
    except TickTickError as e:
        logger.error(f"TickTick connectivity check failed: {e}")
        result.update({"status": "unhealthy", **e.to_dict()})
        return result

    if not isinstance(projects, list):
        logger.warning(f"Unexpected /project response format: {type(projects).__name__}")
        result.update({"status": "unhealthy", "error": "unexpected project list format"})
        return result

    logger.info(f"Successfully connected to TickTick API with {len(projects)} projects")
    result.update({"status": "healthy", "project_count": len(projects)})
    return result


def authorization_url(
    settings: TickTickSettings, token_store: TokenStore, flow: AuthorizationFlowController
) -> dict[str, Any]:
    credentials = settings.resolve_credentials(token_store.load())
    try:
        return {"authorization_url": flow.get_authorization_url(credentials)}
    except TickTickError as e:
        return e.to_dict()


def authenticate(
    settings: TickTickSettings, token_store: TokenStore, flow: AuthorizationFlowController
) -> dict[str, Any]:
    """Run the browser authorization flow and report the outcome."""
    credentials = settings.resolve_credentials(token_store.load())
    try:
        token_pair = flow.start_flow(credentials)
    except TickTickError as e:
        logger.error(f"Authentication failed: {e}")
        return e.to_dict()

    return {
        "status": "authenticated",
        "expires_at": token_pair.expires_at,
        "token_file": str(token_store.path),
    }


def logout(token_store: TokenStore) -> dict[str, Any]:
    """Forget the stored tokens. Client credentials stay in the token file."""
    try:
        token_store.clear_tokens()
    except TickTickError as e:
        logger.error(f"Logout failed: {e}")
        return e.to_dict()

    return {"status": "logged_out", "token_file": str(token_store.path)}


def create_server(
    settings: TickTickSettings,
    token_store: TokenStore,
    api_client: AuthenticatedHTTPClient,
    flow: AuthorizationFlowController,
) -> FastMCP:
    """
    Create the TickTick MCP server.

    The token store, API client and flow controller are built once by the
    caller and shared by every tool, so a token refreshed during one tool call
    is what the next call uses.
    """
    app = FastMCP(
        name="TickTick MCP Server",
        instructions="TickTick MCP Server with OAuth2 authentication tools",
    )

    @app.tool()
    async def get_auth_url() -> dict[str, Any]:
        """
        Get the TickTick OAuth authorization URL.

        Open the returned URL in a browser to grant access when automatic
        browser launch is not available.
        """
        return authorization_url(settings, token_store, flow)

    @app.tool()
    async def authenticate_ticktick() -> dict[str, Any]:
        """
        Authenticate with TickTick using the OAuth2 browser flow.

        Opens the authorization page, waits up to the configured timeout for
        the redirect, and stores the resulting tokens.
        """
        logger.info("=== authenticate_ticktick called ===")
        return await asyncio.to_thread(authenticate, settings, token_store, flow)

    @app.tool()
    async def check_ticktick_status() -> dict[str, Any]:
        """
        Check whether the stored TickTick credentials can reach the API.

        Returns:
            JSON object with status ("healthy" or "unhealthy"), whether a
            token is stored, and the number of projects visible to it
        """
        logger.info("=== check_ticktick_status called ===")
        return await asyncio.to_thread(check_status, api_client)

    @app.tool()
    async def logout_ticktick() -> dict[str, Any]:
        """
        Log out of TickTick by removing the stored access and refresh tokens.

        Run authenticate_ticktick again to reconnect.
        """
        logger.info("=== logout_ticktick called ===")
        return await asyncio.to_thread(logout, token_store)

    return app


@click.command()
@click.option(
    "--token-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="TICKTICK_TOKEN_FILE",
    help="Credential file written by ticktick-mcp-auth",
)
@click.option("--log-level", default=None, help="Logging level (default: TICKTICK_LOG_LEVEL or INFO)")
def main(token_file: Path | None = None, log_level: str | None = None) -> None:
    """Run the TickTick MCP server over stdio."""
    load_dotenv()
    settings = TickTickSettings()
    if token_file is not None:
        settings.token_file = token_file

    configure_logging(log_level or settings.log_level, settings.log_file)

    token_store = TokenStore(settings.token_file)
    api_client = AuthenticatedHTTPClient.from_settings(settings, token_store)
    flow = AuthorizationFlowController.from_settings(settings, token_store)

    try:
        if token_store.load().is_empty():
            logger.warning(
                f"No TickTick tokens in {token_store.path}. "
                "Run 'ticktick-mcp-auth' or call the authenticate_ticktick tool."
            )
    except TickTickError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        mcp_server = create_server(settings, token_store, api_client, flow)
        logger.info("=" * 60)
        logger.info("Starting TickTick MCP Server")
        logger.info(f"Token file: {token_store.path}")
        logger.info("=" * 60)
        mcp_server.run()
        logger.info("Server stopped")
    except Exception as e:
        logger.error(f"Server error: {e}")
        logger.exception("Exception details:")
        sys.exit(1)


if __name__ == "__main__":
    main()
