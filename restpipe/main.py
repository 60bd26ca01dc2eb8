"""Main entry point for the restpipe application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Coroutine, Dict, List, Optional, Tuple

import typer
from typing_extensions import Annotated

logger = logging.getLogger(__name__)

# --- Core Layer ---
from restpipe.core.client import ApiClient
from restpipe.core.command_handler import CommandHandler
from restpipe.core.session import ClientConfig

# --- Domain Layer ---
from restpipe.domain.errors import RestPipeError
from restpipe.domain.interfaces.credential_store import CredentialStore
from restpipe.domain.models.auth import Credential, parse_scopes, utcnow
from restpipe.domain.models.common import ALL_SCOPES, AccessToken, Username

# --- Infrastructure Layer ---
# Config
from restpipe.infrastructure.config.settings import (
    get_app_credentials, get_config, get_log_settings, get_str,
    get_token_store_dir, load_configuration,
)
# UI
from restpipe.infrastructure.cli.display import ConsoleDisplay
# Auth
from restpipe.infrastructure.auth.credential_stores import DiskCredentialStore
from restpipe.infrastructure.auth.oauth_exchange import (
    DEFAULT_REVOKE_URL, DEFAULT_TOKEN_URL, HttpxAuthorizationExchange,
)
# HTTP
from restpipe.infrastructure.http.httpx_transport import HttpxTransport
from restpipe.infrastructure.monitoring.http_logger import NoopHttpLogger, SimpleHttpLogger
# Monitoring
from restpipe.infrastructure.monitoring.logger_setup import setup_logging

PLACEHOLDER_ACCESS_TOKEN = AccessToken("placeholder")
# Lifetime assumed for a configured access token without auth.expires_at
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


# --- Credential Bootstrap ---

def resolve_initial_credential(store: Optional[CredentialStore], username: Optional[str]) -> Tuple[Credential, bool]:
    """Picks the credential a new client starts with.

    The stored credential for `username` wins; otherwise the configured
    tokens are used. A refresh token alone yields a placeholder access
    token that must be renewed before first use.

    Returns:
        The credential and whether a forced renewal is needed.

    Raises:
        RestPipeError: If no credential is stored or configured.
    """
    if store is not None and username:
        stored = store.fetch_latest(Username(username))
        if stored is not None:
            refresh_token = stored.refresh_token or store.fetch_refresh_token(Username(username))
            logger.info(f"Using stored credential for '{username}'")
            return stored.with_refresh_token(refresh_token), False

    access_token = get_str('auth.access_token')
    refresh_token = get_str('auth.refresh_token')
    scopes = parse_scopes(get_config('auth.scopes', ALL_SCOPES))

    if access_token:
        expires_at = get_str('auth.expires_at')
        expiration = datetime.fromisoformat(expires_at) if expires_at else utcnow() + DEFAULT_TOKEN_LIFETIME
        return Credential(AccessToken(access_token), expiration, scopes, refresh_token or None), False
    if refresh_token:
        logger.info("Only a refresh token is configured; the first request will renew it")
        return Credential(PLACEHOLDER_ACCESS_TOKEN, utcnow(), scopes, refresh_token), True

    raise RestPipeError(
        "No credentials configured. Set auth.access_token or auth.refresh_token "
        "(e.g. AUTH_REFRESH_TOKEN in the environment or .env)."
    )


async def create_client() -> ApiClient:
    """Builds a ready ApiClient from configuration. Used as the CommandHandler's client factory."""
    config = ClientConfig.from_settings()
    app_credentials = get_app_credentials()
    username = get_str('auth.username')
    store = DiskCredentialStore(get_token_store_dir())

    try:
        credential, force_renew = resolve_initial_credential(store, username)
    except BaseException:
        # Once created, the client closes the store
        store.close()
        raise

    exchange = None
    if app_credentials['client_id']:
        exchange = HttpxAuthorizationExchange(
            client_id=app_credentials['client_id'],
            client_secret=app_credentials['client_secret'],
            user_agent=config.user_agent,
            token_url=get_str('auth.token_url', DEFAULT_TOKEN_URL),
            revoke_url=get_str('auth.revoke_url', DEFAULT_REVOKE_URL),
            timeout=config.request_timeout_seconds,
        )
    else:
        logger.warning("auth.client_id is not set; tokens cannot be renewed or revoked.")

    transport = HttpxTransport(timeout=config.request_timeout_seconds)
    http_logger = SimpleHttpLogger() if config.log_http else NoopHttpLogger()
    return await ApiClient.create(
        transport,
        credential,
        exchange=exchange,
        store=store,
        username=username,
        config=config,
        userless=app_credentials['userless'],
        force_renew=force_renew,
        http_logger=http_logger,
    )


# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    logger.info("Initializing application dependencies...")
    dependencies: Dict[str, Any] = {}
    dependencies['ui'] = ConsoleDisplay()
    dependencies['command_handler'] = CommandHandler(client_factory=create_client, ui=dependencies['ui'])
    logger.info("All dependencies initialized successfully.")
    return dependencies

# Built on first use so importing the module has no side effects
_dependencies: Optional[Dict[str, Any]] = None

def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies

# --- Typer App Definition ---
app = typer.Typer(
    name="restpipe",
    help="restpipe: authenticated, rate-limited REST API requests from the command line.",
    add_completion=False,
)

# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, bool]) -> None:
    """Runs an async command handler and exits non-zero if it failed."""
    succeeded = asyncio.run(coro)
    if not succeeded:
        raise typer.Exit(code=1)

def parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    """Parses repeated 'key=value' options."""
    pairs: Dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {item!r}", param_hint=option)
        pairs[key] = value
    return pairs

# --- CLI Commands ---

@app.command()
def request(
    method: Annotated[str, typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE).")],
    path: Annotated[str, typer.Argument(help="Path relative to api.base_url, e.g. /api/v1/me.")],
    query: Annotated[Optional[List[str]], typer.Option("--query", "-q", help="Query parameter as key=value. Repeatable.")] = None,
    form: Annotated[Optional[List[str]], typer.Option("--form", "-f", help="Form field as key=value. Repeatable.")] = None,
    raw: Annotated[bool, typer.Option("--raw/--no-raw", help="Ask the API for unescaped JSON (raw_json=1).")] = True,
    headers: Annotated[bool, typer.Option("--headers", help="Also show response headers.")] = False,
):
    """Send one request and print the response."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_request(
        method,
        path,
        query=parse_pairs(query, "--query"),
        form=parse_pairs(form, "--form"),
        raw_json=raw,
        show_headers=headers,
    ))

@app.command()
def whoami():
    """Show which user the configured credential belongs to."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_whoami())

@app.command(name="token-info")
def token_info_command():
    """Show scopes and expiry of the current credential (tokens masked)."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_token_info())

@app.command()
def logout():
    """Revoke the credential and remove it from the token store."""
    handler: CommandHandler = get_dependencies()['command_handler']
    run_async(handler.handle_logout())

@app.callback()
def main_callback(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Override logging.level (DEBUG, INFO, WARNING, ...).")
    ] = None,
):
    """Loads configuration and sets up logging before any command runs."""
    load_configuration()
    settings = get_log_settings()
    setup_logging(
        log_level=log_level or settings['level'],
        log_format=settings['format'],
        log_file=settings['file'],
    )
    logger.debug(f"Logging initialized at {log_level or settings['level']}")

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app() # Typer takes over

if __name__ == "__main__":
    cli_entry_point()
