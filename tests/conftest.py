from collections.abc import Callable
from datetime import datetime, timezone

import pytest

from knowledge_search.config import ConfidenceConfig
from knowledge_search.history.store import InMemoryHistoryStore
from knowledge_search.metadata.repository import InMemoryMetadataRepository
from knowledge_search.metadata.source_links import DefaultSourceLinkResolver
from knowledge_search.retrieval.embedder import HashingEmbedder
from knowledge_search.retrieval.engine import SearchEngine
from knowledge_search.retrieval.enricher import ResultEnricher
from knowledge_search.types import (
    DataSourceSnapshot,
    DocumentSnapshot,
    RawMatch,
    SearchResult,
)

LONG_CONTENT = (
    "The payment service retries failed settlement jobs with exponential backoff "
    "and writes every attempt to the ledger audit table."
)


class StaticVectorIndex:
    """Returns a fixed candidate list and records every call."""

    def __init__(self, matches: list[RawMatch], error: Exception | None = None) -> None:
        self.matches = sorted(matches, key=lambda m: m.distance)
        self.error = error
        self.calls: list[tuple[list[float], int, str | None]] = []

    async def search(
        self, vector: list[float], top_k: int, filter_expr: str | None = None
    ) -> list[RawMatch]:
        self.calls.append((vector, top_k, filter_expr))
        if self.error is not None:
            raise self.error
        return list(self.matches[:top_k])


class FailingEmbedder(HashingEmbedder):
    def embed_query(self, text: str) -> list[float]:
        raise ConnectionError("embedding provider unreachable")

    async def aembed_query(self, text: str) -> list[float]:
        raise ConnectionError("embedding provider unreachable")


@pytest.fixture
def make_match() -> Callable[..., RawMatch]:
    def _make(
        match_id: str,
        distance: float,
        *,
        content: str = LONG_CONTENT,
        content_type: str = "document",
        document_id: str = "doc-1",
        datasource_id: str = "ds-gitlab",
        chunk_index: int = 0,
        metadata: dict | None = None,
    ) -> RawMatch:
        return RawMatch(
            id=match_id,
            distance=distance,
            document_id=document_id,
            datasource_id=datasource_id,
            chunk_index=chunk_index,
            content=content,
            content_type=content_type,
            metadata=metadata or {},
        )

    return _make


@pytest.fixture
def make_result() -> Callable[..., SearchResult]:
    def _make(
        result_id: str,
        score: float,
        *,
        content: str = LONG_CONTENT,
        content_type: str = "document",
        confidence: float = 0.0,
        is_suspected: bool = False,
    ) -> SearchResult:
        return SearchResult(
            id=result_id,
            score=score,
            document_id="doc-1",
            datasource_id="ds-gitlab",
            chunk_index=0,
            content=content,
            content_type=content_type,
            confidence=confidence,
            is_suspected=is_suspected,
        )

    return _make


@pytest.fixture
def repository() -> InMemoryMetadataRepository:
    return InMemoryMetadataRepository(
        documents=[
            DocumentSnapshot(
                id="doc-1",
                title="settlement.py",
                external_id="gl-42",
                synced_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
                metadata={
                    "projectPath": "payments/core",
                    "filePath": "src/settlement.py",
                    "author": "li.wei",
                    "commitId": "a1b2c3d",
                    "modifiedTime": "2024-04-30T10:00:00Z",
                },
            ),
            DocumentSnapshot(
                id="doc-2",
                title="Settlement PRD",
                external_id="fs-7",
                metadata={"url": "https://feishu.example.com/docx/abc"},
            ),
        ],
        datasources=[
            DataSourceSnapshot(id="ds-gitlab", name="Payments GitLab", type="GITLAB"),
            DataSourceSnapshot(id="ds-feishu", name="Product Wiki", type="FEISHU"),
        ],
    )


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def build_engine(
    repository: InMemoryMetadataRepository, history_store: InMemoryHistoryStore
) -> Callable[..., SearchEngine]:
    def _build(
        index: StaticVectorIndex,
        *,
        embedder: HashingEmbedder | None = None,
        confidence_config: ConfidenceConfig | None = None,
    ) -> SearchEngine:
        return SearchEngine(
            embedder or HashingEmbedder(),
            index,
            ResultEnricher(repository, DefaultSourceLinkResolver()),
            history_store=history_store,
            confidence_config=confidence_config,
        )

    return _build
