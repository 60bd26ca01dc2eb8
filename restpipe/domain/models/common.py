"""Defines common Value Objects used across different domain contexts.

These objects represent simple values like tokens, scopes and usernames,
ensuring consistency and type safety.
"""

from typing import NewType, TypedDict, Optional

# === Authentication Context ===

# Using NewType for semantic clarity, although they are strings at runtime.
AccessToken = NewType("AccessToken", str)      # Bearer token sent with every request
RefreshToken = NewType("RefreshToken", str)    # Long-lived token exchanged for new access tokens
Scope = NewType("Scope", str)                  # OAuth2 scope, e.g. 'identity', 'read' or '*'
Username = NewType("Username", str)            # Identity the credential belongs to

ALL_SCOPES = Scope("*") # Script apps are granted every scope

# === HTTP Context ===
HttpMethod = NewType("HttpMethod", str)        # 'GET', 'POST', ...
MediaType = NewType("MediaType", str)          # Normalised content type without parameters
LogTag = NewType("LogTag", str)                # Correlates a logged request with its response

# Query parameter that asks the API not to HTML-escape response bodies
RAW_JSON_PARAM = "raw_json"
RAW_JSON_VALUE = "1"

# --- Structured Data ---
class AppCredentials(TypedDict):
    """OAuth2 application credentials used for renewal and revocation."""
    client_id: str
    client_secret: str # Empty for installed apps
    userless: bool

class ApiErrorEntry(TypedDict):
    """One decoded entry of a structured API error."""
    code: str
    explanation: str
    field: Optional[str]
