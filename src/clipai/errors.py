"""Error taxonomy shared by the stores, the API relay and the translation client.

Stores and clients raise these; :class:`clipai.backend.Backend` turns them into
``OperationResult`` values for the caller.
"""


class ClipAIError(Exception):
    """Base class for every error the backend reports to a caller."""


class NotFoundError(ClipAIError):
    """An id is absent from a store."""


class PermissionDeniedError(ClipAIError):
    """A mutation would break a protection rule (e.g. deleting a preset role)."""


class ValidationError(ClipAIError):
    """Input outside the accepted range."""


class StorageError(ClipAIError):
    """Reading, writing or serializing a backing file failed."""


class NetworkError(ClipAIError):
    """The remote API could not be reached."""


class UpstreamError(ClipAIError):
    """The remote API answered with a non-success status or an error payload."""

    def __init__(self, message: str, status: int | None = None, body: str | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.code = code


class ParseError(ClipAIError):
    """A response body matched none of the recognised shapes."""
