"""Domain Layer: value objects, errors, collaborator interfaces and events.

Has no dependencies on the infrastructure layer.
"""
