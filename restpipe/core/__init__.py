"""Core Application Layer: orchestrates request execution.

Connects the domain layer with the infrastructure layer through interfaces.
Contains the request pipeline, the client session and the command handler.
"""
