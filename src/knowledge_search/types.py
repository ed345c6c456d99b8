"""Shared domain models."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class RawMatch:
    """A nearest-neighbour hit as returned by the vector index.

    `distance` is the raw L2 distance: smaller means more similar.
    """

    id: str
    distance: float
    document_id: str
    datasource_id: str
    chunk_index: int
    content: str
    content_type: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentSnapshot:
    """Read-only view of a document record."""

    id: str
    title: str
    external_id: str | None = None
    synced_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "externalId": self.external_id,
            "syncedAt": _iso(self.synced_at),
        }


@dataclass(slots=True)
class DataSourceSnapshot:
    """Read-only view of a datasource record."""

    id: str
    name: str
    type: str
    config: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        # Connection config stays server-side.
        return {"id": self.id, "name": self.name, "type": self.type}


@dataclass(slots=True)
class SourceLink:
    """Deep link back to the system a result was synced from."""

    url: str
    type: str
    display_text: str

    def to_payload(self) -> dict[str, Any]:
        return {"url": self.url, "type": self.type, "displayText": self.display_text}


@dataclass(slots=True)
class SourceMetadata:
    """Provenance of a result's document."""

    datasource_type: str
    title: str | None = None
    author: str | None = None
    modified_by: str | None = None
    updated_at: datetime | None = None
    synced_at: datetime | None = None
    version: str | None = None
    commit_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "datasourceType": self.datasource_type,
            "title": self.title,
            "author": self.author,
            "modifiedBy": self.modified_by,
            "updatedAt": _iso(self.updated_at),
            "syncedAt": _iso(self.synced_at),
            "version": self.version,
            "commitId": self.commit_id,
        }


@dataclass(slots=True)
class SearchResult:
    """A ranked result assembled for one request. Never persisted."""

    id: str
    score: float
    document_id: str
    datasource_id: str
    chunk_index: int
    content: str
    content_type: str
    metadata: dict[str, Any] = field(default_factory=dict)
    original_score: float | None = None
    role_weight: float | None = None
    confidence: float = 0.0
    is_suspected: bool = False
    highlighted_content: str | None = None
    source_link: SourceLink | None = None
    source_metadata: SourceMetadata | None = None
    document: DocumentSnapshot | None = None
    datasource: DataSourceSnapshot | None = None

    @classmethod
    def from_match(cls, match: RawMatch, similarity: float) -> SearchResult:
        return cls(
            id=match.id,
            score=similarity,
            document_id=match.document_id,
            datasource_id=match.datasource_id,
            chunk_index=match.chunk_index,
            content=match.content,
            content_type=match.content_type,
            metadata=dict(match.metadata),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "score": self.score,
            "documentId": self.document_id,
            "datasourceId": self.datasource_id,
            "chunkIndex": self.chunk_index,
            "content": self.content,
            "contentType": self.content_type,
            "confidence": self.confidence,
            "isSuspected": self.is_suspected,
            "sourceLink": self.source_link.to_payload() if self.source_link else None,
            "sourceMetadata": (
                self.source_metadata.to_payload() if self.source_metadata else None
            ),
        }
        if self.highlighted_content is not None:
            payload["highlightedContent"] = self.highlighted_content
        if self.original_score is not None:
            payload["originalScore"] = self.original_score
        if self.role_weight is not None:
            payload["roleWeight"] = self.role_weight
        if self.document is not None:
            payload["document"] = self.document.to_payload()
        if self.datasource is not None:
            payload["datasource"] = self.datasource.to_payload()
        return payload


@dataclass(slots=True)
class SearchOptions:
    """Per-request search options."""

    top_k: int = 10
    min_score: float | None = None
    datasource_ids: Sequence[str] | None = None
    content_types: Sequence[str] | None = None
    role: str | None = None

    def __post_init__(self) -> None:
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        if self.min_score is not None and not 0.0 <= self.min_score <= 1.0:
            raise ValueError("min_score must be within [0, 1]")
        self.datasource_ids = _dedupe(self.datasource_ids)
        self.content_types = _dedupe(self.content_types)


@dataclass(slots=True)
class SearchResponse:
    """The engine's answer to one search request."""

    query: str
    role: str | None
    total: int
    suspected: bool
    results: list[SearchResult]
    suggestion: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "query": self.query,
            "role": self.role,
            "total": self.total,
            "suspected": self.suspected,
            "results": [result.to_payload() for result in self.results],
        }
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass(slots=True)
class SearchHistoryRecord:
    """One persisted search, later annotated by the feedback flow."""

    id: str
    user_id: str
    query: str
    role: str | None
    results_count: int
    created_at: datetime
    adoption_status: str | None = None
    comment: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "query": self.query,
            "role": self.role,
            "resultsCount": self.results_count,
            "adoptionStatus": self.adoption_status,
            "comment": self.comment,
            "createdAt": _iso(self.created_at),
        }


@dataclass(slots=True)
class SearchResultFeedback:
    """A user's verdict on one ranked result of a recorded search.

    At most one exists per (search_history_id, result_index, user_id).
    """

    id: str
    search_history_id: str
    result_index: int
    user_id: str
    adoption_status: str
    created_at: datetime
    updated_at: datetime
    document_id: str | None = None
    comment: str | None = None
    is_suspected: bool | None = None
    confirmed: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "searchHistoryId": self.search_history_id,
            "resultIndex": self.result_index,
            "userId": self.user_id,
            "documentId": self.document_id,
            "adoptionStatus": self.adoption_status,
            "comment": self.comment,
            "isSuspected": self.is_suspected,
            "confirmed": self.confirmed,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


def _dedupe(values: Sequence[str] | None) -> tuple[str, ...] | None:
    if values is None:
        return None
    return tuple(dict.fromkeys(values))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
