"""Logging setup and HTTP request/response logging."""
