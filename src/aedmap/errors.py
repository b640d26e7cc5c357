"""Error taxonomy for dataset and metadata loading."""

from __future__ import annotations


class AedmapError(RuntimeError):
    pass


class FetchError(AedmapError):
    """Non-success HTTP status or network failure while fetching."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class DecodeError(AedmapError):
    """Response body could not be decoded as the expected document."""


class MetadataError(AedmapError):
    """Source metadata missing, unreachable or not numeric."""
