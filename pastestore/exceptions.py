"""Exceptions raised by the paste store and surfaced by the HTTP layer.

Classes:
    PasteStoreError:
        Generic base class for pastestore exceptions.

    ValidationError:
        Raised when creation input is malformed. Carries the offending field.

    NotFoundOrUnavailable:
        Raised when a paste is missing, expired, or out of views. The three
        cases are deliberately indistinguishable.

    StorageFailure:
        Raised when the backing store is unreachable or a write failed.

Example:
    >>> from pastestore.exceptions import ValidationError
    >>> raise ValidationError("max_views", "max_views must be an integer >= 1")
    Traceback (most recent call last):
        ...
    pastestore.exceptions.ValidationError: max_views must be an integer >= 1
"""


class PasteStoreError(Exception):
    """Generic base class for pastestore exceptions."""

    pass


class ValidationError(PasteStoreError):
    """Exception raised when paste creation input is malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class NotFoundOrUnavailable(PasteStoreError):
    """Exception raised when a paste cannot be served.

    Covers unknown, expired and exhausted pastes alike.
    """

    pass


class StorageFailure(PasteStoreError):
    """Exception raised when the backing store fails.

    e.g. connection issues, timeouts, failed writes, id space exhaustion.
    """

    pass
