"""restpipe: request-execution core for an OAuth2-authenticated REST API.

Turns request descriptions into validated responses while handling token
renewal, rate limiting, retries on server errors and API errors embedded
in successful responses.
"""

__version__ = "0.1.0"
