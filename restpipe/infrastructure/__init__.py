"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (HTTP, token storage,
authorization server, console) by implementing the interfaces defined in the
domain layer. Also includes rate limiting and response classification.
"""
