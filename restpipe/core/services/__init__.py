"""Application services used by the client and the CLI."""
