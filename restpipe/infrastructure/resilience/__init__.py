"""API Resilience Implementations.

Contains the token-bucket rate limiter and the response classifier that
decides whether a response is retryable, an embedded API error or a success.
Bounded Context: API Resilience
"""
