"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), obtains a client
from the injected factory and reports results and failures through the
UserInterface.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from restpipe.core.client import ApiClient
from restpipe.domain.errors import RestPipeError
from restpipe.domain.interfaces.user_interface import UserInterface

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], Awaitable[ApiClient]]

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


class CommandHandler:
    """Handles incoming commands and delegates to the API client."""

    def __init__(self, client_factory: ClientFactory, ui: UserInterface):
        """Initializes the CommandHandler.

        Args:
            client_factory: Coroutine function returning a ready ApiClient.
                Each command gets its own client and closes it afterwards.
            ui: Where results and errors are shown.
        """
        self.client_factory = client_factory
        self.ui = ui

    async def handle_request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, str]] = None,
        form: Optional[Dict[str, str]] = None,
        raw_json: bool = True,
        show_headers: bool = False,
    ) -> bool:
        """Handles the 'request' command.

        Returns:
            True if the request succeeded.
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            self.ui.display_error(f"Unsupported method '{method}'. Choose one of {', '.join(SUPPORTED_METHODS)}.")
            return False
        if form and method == "GET":
            self.ui.display_error("Form fields cannot be sent with GET.")
            return False

        logger.info(f"Handling 'request' command: {method} {path}")

        def configure(builder):
            builder.path(path).query(query or {}).raw_json(raw_json)
            if method == "GET":
                return builder.get()
            return builder.method(method, form or None)

        try:
            async with await self.client_factory() as client:
                response = await client.request(configure)
            self.ui.display_response(response, show_headers=show_headers)
            return True
        except (RestPipeError, ValueError) as e:
            logger.error(f"Request command failed: {e}", exc_info=True)
            self.ui.display_error(f"Request failed: {e}")
            return False

    async def handle_whoami(self) -> bool:
        """Handles the 'whoami' command."""
        logger.info("Handling 'whoami' command.")
        try:
            async with await self.client_factory() as client:
                username = client.require_authenticated_user()
            self.ui.display_info(f"Authenticated as {username}")
            return True
        except (RestPipeError, ValueError) as e:
            logger.error(f"Whoami command failed: {e}", exc_info=True)
            self.ui.display_error(f"Could not determine user: {e}")
            return False

    async def handle_token_info(self) -> bool:
        """Handles the 'token-info' command. Tokens are never shown in full."""
        logger.info("Handling 'token-info' command.")
        try:
            async with await self.client_factory() as client:
                self.ui.display_credential(client.token_manager.current(), username=client.username)
            return True
        except (RestPipeError, ValueError) as e:
            logger.error(f"Token-info command failed: {e}", exc_info=True)
            self.ui.display_error(f"Could not load credential: {e}")
            return False

    async def handle_logout(self) -> bool:
        """Handles the 'logout' command: revokes tokens and forgets the stored credential."""
        logger.info("Handling 'logout' command.")
        try:
            async with await self.client_factory() as client:
                await client.logout()
            self.ui.display_info("Logged out. Stored credentials were removed.")
            return True
        except (RestPipeError, ValueError) as e:
            logger.error(f"Logout command failed: {e}", exc_info=True)
            self.ui.display_error(f"Logout failed: {e}")
            return False
