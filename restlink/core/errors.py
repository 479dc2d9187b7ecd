"""Programmer-error exceptions.

Expected request failures travel in Result; these are raised only for
misuse of the client itself.
"""


class ClientError(Exception):
    """Base class for client misuse errors."""


class ClientNotInitializedError(ClientError):
    def __init__(self, operation: str = "operation"):
        super().__init__(f"Client must be initialized before calling {operation}()")


class ClientAlreadyInitializedError(ClientError):
    def __init__(self):
        super().__init__("Client is already initialized; create a new instance instead of re-initializing")


class ClientClosedError(ClientError):
    def __init__(self):
        super().__init__("Client has been shut down")


class UnknownEndpointError(ClientError, KeyError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No endpoint template registered under '{name}'")
