"""Domain Event definitions.

Represents significant occurrences while executing requests that other parts
of the system might react to (logging, metrics, tests).
"""
