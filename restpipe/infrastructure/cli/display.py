import logging
from typing import Any, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from restpipe.domain.interfaces.user_interface import UserInterface
from restpipe.domain.models.auth import Credential, mask_token, utcnow
from restpipe.domain.models.http import ResponseEnvelope
from restpipe.infrastructure.resilience.error_classifier import is_json_media_type

logger = logging.getLogger(__name__)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        """Initializes the rich Console."""
        self._console = console or Console()

    @property
    def console(self):
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_response(self, response: ResponseEnvelope, **kwargs: Any) -> None:
        """Displays a response: status line, optional headers and the body.

        Args:
            response: The response to display.
            **kwargs: Additional arguments including:
                - show_headers: Also print the response headers (default: False)
        """
        status_style = "green" if response.successful else "red"
        url = response.request.url if response.request is not None else ""
        self.console.print(f"[bold {status_style}]HTTP {response.status_code}[/bold {status_style}] [dim]{url}[/dim]")

        if kwargs.get("show_headers"):
            table = Table(show_header=True, box=SIMPLE, border_style="cyan", padding=(0, 1))
            table.add_column("Header", style="cyan")
            table.add_column("Value")
            for name, value in response.headers.items():
                table.add_row(name, value)
            self.console.print(table)

        if not response.body:
            return
        if is_json_media_type(response.media_type):
            try:
                self.console.print(JSON(response.body))
                return
            except ValueError:
                # Declared JSON but isn't; show it as text
                logger.debug("Response body is not valid JSON; printing as text")
        self.console.print(Text(response.body))

    def display_credential(self, credential: Optional[Credential], username: Optional[str] = None) -> None:
        """Displays a summary of the credential. Tokens are masked."""
        if credential is None:
            self.display_warning("No credential is available.")
            return

        remaining = credential.expiration - utcnow()
        seconds = int(remaining.total_seconds())
        expires = f"in {seconds}s" if seconds > 0 else "expired"

        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        table.add_row("User", username or "[dim]unknown[/dim]")
        table.add_row("Access token", mask_token(credential.access_token))
        table.add_row("Refresh token", mask_token(credential.refresh_token))
        table.add_row("Scopes", ", ".join(sorted(credential.scopes)) or "[dim]none[/dim]")
        table.add_row("Expires", f"{credential.expiration.isoformat()} ({expires})")
        self.console.print(table)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message.

        Args:
            info_message: The informational message to display.
        """
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message.

        Args:
            warning_message: The warning message to display.
        """
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.console.print(panel)
