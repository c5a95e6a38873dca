"""Exception hierarchy shared by the client, store, collector and resolver."""

from __future__ import annotations


class LeadWatchError(Exception):
    """Base class for every error raised by the pipeline."""


class ValidationError(LeadWatchError):
    """An external field is missing, empty, or not a finite number."""


class InvalidResolutionError(ValidationError):
    """Requested series resolution is not one of the supported tags."""

    def __init__(self, resolution: str, valid: list[str]) -> None:
        self.resolution = resolution
        self.valid = valid
        super().__init__(
            f"Invalid interval: {resolution}. Valid values: {', '.join(valid)}"
        )


class NotFoundError(LeadWatchError):
    """Requested identity is absent from the external source or the store."""


class NoDataError(LeadWatchError):
    """Identity is known but has no samples in the requested window."""


class OkxAPIError(LeadWatchError):
    """Raised when the OKX API returns an unrecoverable transport error."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"OKX API error {status_code}: {detail}")


class UpstreamBusinessError(LeadWatchError):
    """Transport succeeded but the embedded business code signals failure."""

    def __init__(self, code: object, detail: str) -> None:
        self.code = code
        self.detail = detail
        super().__init__(f"OKX API business error code={code!r}: {detail}")


class PersistenceError(LeadWatchError):
    """A batch chunk failed to apply; later chunks were not attempted."""

    def __init__(self, chunk_index: int, committed_chunks: int, cause: Exception) -> None:
        self.chunk_index = chunk_index
        self.committed_chunks = committed_chunks
        self.cause = cause
        super().__init__(
            f"Batch chunk {chunk_index} failed after {committed_chunks} committed: {cause}"
        )


class CycleInProgressError(LeadWatchError):
    """Another collection cycle holds the advisory lock."""


class CycleFailedError(LeadWatchError):
    """A collection cycle aborted because upstream data for a watched trader was missing."""
