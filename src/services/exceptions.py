"""Shared exceptions for service layer operations."""


class ValidationError(Exception):
    """
    Raised when caller input is malformed.

    Terminal: surfaced to the client as a 400 with the message.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class StorageError(Exception):
    """
    Raised when the database rejects a read or write.

    Terminal: surfaced to the client as a generic 500. The message is for logs,
    not for end users.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
