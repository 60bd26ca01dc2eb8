"""Credential lifecycle: token manager, credential stores and OAuth2 exchange."""
