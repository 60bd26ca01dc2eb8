"""Interface for interacting with the user (output only).

Defines the contract for displaying responses, credentials, errors, warnings
and information, allowing different UI implementations (e.g., console, GUI).
"""

import abc
from typing import Any, Optional

# Import relevant domain models
from restpipe.domain.models.auth import Credential
from restpipe.domain.models.http import ResponseEnvelope


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_response(self, response: ResponseEnvelope, **kwargs: Any) -> None:
        """Displays a completed HTTP response to the user.

        Args:
            response: The response to render.
            **kwargs: Additional arguments for formatting (e.g., show_headers).
        """
        pass

    @abc.abstractmethod
    def display_credential(self, credential: Optional[Credential], username: Optional[str] = None) -> None:
        """Displays the current credential without revealing its tokens.

        Args:
            credential: The credential to describe, or None if there is none.
            username: The identity the credential belongs to, if known.
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user.

        Args:
            warning_message: The warning message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user.

        Args:
            info_message: The informational message string.
            **kwargs: Additional arguments for formatting.
        """
        pass
