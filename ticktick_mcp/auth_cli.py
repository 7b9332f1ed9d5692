"""
Command-line authentication for the TickTick MCP server.

Runs the OAuth2 Authorization Code flow in the user's browser and stores the
resulting tokens (plus the client credentials) in the token file read by the
MCP server.

Usage:
    ticktick-mcp-auth --client-id ID --client-secret SECRET
    ticktick-mcp-auth --print-url
    ticktick-mcp-auth --logout
"""

import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from .auth_flow import AuthorizationFlowController
from .errors import TickTickError
from .settings import TickTickSettings, configure_logging
from .token_store import TokenStore

logger = logging.getLogger(__name__)

BANNER = """
╔════════════════════════════════════════════════╗
║       TickTick MCP Server Authentication       ║
╚════════════════════════════════════════════════╝

Before you begin, you will need:
1. A TickTick account (https://ticktick.com)
2. A registered TickTick API application (https://developer.ticktick.com)
3. Your Client ID and Client Secret from the TickTick Developer Center
"""


@click.command()
@click.option("--client-id", envvar="TICKTICK_CLIENT_ID", help="OAuth client ID")
@click.option("--client-secret", envvar="TICKTICK_CLIENT_SECRET", help="OAuth client secret")
@click.option(
    "--token-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="TICKTICK_TOKEN_FILE",
    help="Where to store the tokens (.env or .json)",
)
@click.option("--port", type=int, default=None, help="Local callback port (default 8000)")
@click.option("--timeout", type=float, default=None, help="Seconds to wait for the callback")
@click.option("--print-url", is_flag=True, help="Only print the authorization URL")
@click.option("--force", is_flag=True, help="Re-authenticate even if a token is already stored")
@click.option("--logout", is_flag=True, help="Remove the stored tokens and exit")
@click.option("--log-level", default=None, help="Logging level (default: TICKTICK_LOG_LEVEL or INFO)")
def main(
    client_id: str | None = None,
    client_secret: str | None = None,
    token_file: Path | None = None,
    port: int | None = None,
    timeout: float | None = None,
    print_url: bool = False,
    force: bool = False,
    logout: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Authenticate with TickTick and store the access and refresh tokens.

    Credentials come from the options, TICKTICK_* environment variables or a
    previously stored token file, in that order.
    """
    load_dotenv()
    overrides: dict[str, object] = {}
    if client_id:
        overrides["client_id"] = client_id
    if client_secret:
        overrides["client_secret"] = client_secret
    if token_file is not None:
        overrides["token_file"] = token_file
    if port is not None:
        overrides["callback_port"] = port
    if timeout is not None:
        overrides["callback_timeout"] = timeout
    settings = TickTickSettings(**overrides)  # type: ignore[arg-type]

    configure_logging(log_level or settings.log_level, settings.log_file)

    token_store = TokenStore(settings.token_file)
    flow = AuthorizationFlowController.from_settings(
        settings, token_store, announce=lambda url: click.echo(f"\n{url}\n")
    )

    try:
        if logout:
            token_store.clear_tokens()
            click.echo(f"Logged out. Tokens removed from {token_store.path}")
            return

        record = token_store.load()
        credentials = settings.resolve_credentials(record)

        if print_url:
            click.echo(flow.get_authorization_url(credentials))
            return

        if record.access_token and not force:
            click.echo(f"Credentials already stored in {token_store.path}, no need to authenticate.")
            click.echo("Use --force to authenticate again.")
            return

        click.echo(BANNER)
        click.echo("Open this URL if your browser does not start automatically:")
        flow.start_flow(credentials)
    except TickTickError as e:
        logger.debug("Authentication error details:", exc_info=True)
        click.echo(f"Authentication failed: {e}", err=True)
        sys.exit(1)

    click.echo("Authentication successful! You can now start the MCP server.")
    click.echo(f"Credentials saved to: {token_store.path}")


if __name__ == "__main__":
    main()
