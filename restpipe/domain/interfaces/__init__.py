"""Domain Interfaces: contracts for the external collaborators of the core.

Transport, credential storage, authorization exchange, HTTP logging and the
user interface are all implemented in the infrastructure layer.
"""
