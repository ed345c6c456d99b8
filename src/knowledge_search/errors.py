"""Error taxonomy of the search engine."""

from __future__ import annotations


class SearchEngineError(Exception):
    """Base class for errors raised by the search engine."""


class UpstreamSearchFailure(SearchEngineError):
    """The embedder or the vector index failed; the search cannot proceed."""


class MetadataUnavailable(SearchEngineError):
    """The metadata repository is unreachable as a whole."""


class LinkGenerationError(SearchEngineError):
    """Provenance metadata is malformed and no source link can be built."""


class HistoryRecordingError(SearchEngineError):
    """A search history record could not be persisted."""
