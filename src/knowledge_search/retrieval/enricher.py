"""Joins similarity-scored matches with relational metadata."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from knowledge_search.errors import MetadataUnavailable
from knowledge_search.metadata.repository import MetadataRepository
from knowledge_search.metadata.source_links import SourceLinkResolver
from knowledge_search.retrieval.highlight import extract_keywords, highlight
from knowledge_search.types import (
    DataSourceSnapshot,
    DocumentSnapshot,
    SearchResult,
    SourceLink,
    SourceMetadata,
)

logger = logging.getLogger(__name__)

UNKNOWN_DATASOURCE_TYPE = "UNKNOWN"


class ResultEnricher:
    """Attaches document/datasource snapshots, source links and highlights.

    Documents and datasources are fetched with exactly two batched lookups
    that run concurrently. A missing record degrades the corresponding field
    to `None`; a repository-wide failure raises `MetadataUnavailable`.
    """

    def __init__(
        self,
        repository: MetadataRepository,
        link_resolver: SourceLinkResolver,
    ) -> None:
        self.repository = repository
        self.link_resolver = link_resolver

    async def enrich(self, results: list[SearchResult], query: str) -> list[SearchResult]:
        if not results:
            return []

        document_ids = list(dict.fromkeys(r.document_id for r in results))
        datasource_ids = list(dict.fromkeys(r.datasource_id for r in results))

        documents, datasources = await self._lookup(document_ids, datasource_ids)

        document_map = {doc.id: doc for doc in documents}
        datasource_map = {ds.id: ds for ds in datasources}
        _log_missing("document", document_ids, document_map)
        _log_missing("datasource", datasource_ids, datasource_map)

        keywords = extract_keywords(query)
        enriched: list[SearchResult] = []
        for result in results:
            document = document_map.get(result.document_id)
            datasource = datasource_map.get(result.datasource_id)
            enriched.append(
                replace(
                    result,
                    document=document,
                    datasource=datasource,
                    source_link=self._source_link(result, document, datasource),
                    source_metadata=self._source_metadata(result, document, datasource),
                    highlighted_content=(
                        highlight(result.content, keywords) if keywords else None
                    ),
                )
            )
        return enriched

    async def _lookup(
        self, document_ids: list[str], datasource_ids: list[str]
    ) -> tuple[list[DocumentSnapshot], list[DataSourceSnapshot]]:
        # Both lookups always settle before a failure is reported.
        documents, datasources = await asyncio.gather(
            self.repository.find_documents(document_ids),
            self.repository.find_datasources(datasource_ids),
            return_exceptions=True,
        )
        for outcome in (documents, datasources):
            if isinstance(outcome, MetadataUnavailable):
                raise outcome
            if isinstance(outcome, BaseException):
                raise MetadataUnavailable(f"metadata lookup failed: {outcome}") from outcome
        return list(documents), list(datasources)

    def _source_link(
        self,
        result: SearchResult,
        document: DocumentSnapshot | None,
        datasource: DataSourceSnapshot | None,
    ) -> SourceLink | None:
        if document is None or datasource is None:
            return None
        merged = {**document.metadata, **result.metadata, "chunkIndex": result.chunk_index}
        try:
            return self.link_resolver.generate_link(datasource.type, merged, datasource.config)
        except Exception as exc:
            logger.warning(
                "Source link generation failed for result %s (%s): %s",
                result.id,
                datasource.type,
                exc,
            )
            return None

    def _source_metadata(
        self,
        result: SearchResult,
        document: DocumentSnapshot | None,
        datasource: DataSourceSnapshot | None,
    ) -> SourceMetadata | None:
        if document is None:
            return None
        datasource_type = datasource.type if datasource is not None else UNKNOWN_DATASOURCE_TYPE
        try:
            return self.link_resolver.extract_metadata(document, datasource_type)
        except Exception as exc:
            logger.warning("Provenance extraction failed for result %s: %s", result.id, exc)
            return None


def _log_missing(kind: str, requested: list[str], found: dict[str, object]) -> None:
    missing = [item for item in requested if item not in found]
    if missing:
        logger.warning("No %s record for ids %s; fields degrade to absent", kind, missing)
