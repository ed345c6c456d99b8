"""Vector index interfaces, filter expressions and concrete adapters."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from knowledge_search.types import RawMatch

_CLAUSE_PATTERN = re.compile(r"^\s*(?P<field>\w+)\s+in\s+\[(?P<values>.*)\]\s*$")
_VALUE_PATTERN = re.compile(r'"((?:[^"\\]|\\.)*)"')

# Filterable field name -> RawMatch attribute.
FILTER_FIELDS = {"datasourceId": "datasource_id", "contentType": "content_type"}


class VectorIndex(Protocol):
    """Minimal nearest-neighbour contract consumed by the search engine."""

    async def search(
        self,
        vector: list[float],
        top_k: int,
        filter_expr: str | None = None,
    ) -> list[RawMatch]:
        """Return at most `top_k` matches sorted by ascending distance."""


def build_filter_expression(
    datasource_ids: Sequence[str] | None = None,
    content_types: Sequence[str] | None = None,
) -> str | None:
    """Build a conjunctive set-membership expression, e.g.

    `datasourceId in ["ds-1", "ds-2"] && contentType in ["code"]`.

    Empty or missing filters are omitted; `None` means no filtering.
    """

    conditions: list[str] = []
    if datasource_ids:
        conditions.append(f"datasourceId in [{_quote_all(datasource_ids)}]")
    if content_types:
        conditions.append(f"contentType in [{_quote_all(content_types)}]")
    return " && ".join(conditions) if conditions else None


def parse_filter_expression(filter_expr: str | None) -> dict[str, set[str]]:
    """Parse an expression produced by `build_filter_expression`."""

    if not filter_expr or not filter_expr.strip():
        return {}
    clauses: dict[str, set[str]] = {}
    for raw_clause in filter_expr.split("&&"):
        match = _CLAUSE_PATTERN.match(raw_clause)
        if match is None:
            raise ValueError(f"Unsupported filter clause: {raw_clause.strip()!r}")
        field_name = match.group("field")
        if field_name not in FILTER_FIELDS:
            raise ValueError(f"Unsupported filter field: {field_name}")
        values = {
            value.replace('\\"', '"').replace("\\\\", "\\")
            for value in _VALUE_PATTERN.findall(match.group("values"))
        }
        # Repeated clauses on one field intersect.
        if field_name in clauses:
            clauses[field_name] &= values
        else:
            clauses[field_name] = values
    return clauses


def compile_filter(filter_expr: str | None) -> Callable[[dict[str, Any]], bool]:
    """Return a predicate over camelCase metadata dicts."""

    clauses = parse_filter_expression(filter_expr)

    def _predicate(metadata: dict[str, Any]) -> bool:
        return all(
            str(metadata.get(field_name)) in allowed
            for field_name, allowed in clauses.items()
        )

    return _predicate


@dataclass(slots=True)
class _StoredVector:
    match: RawMatch
    embedding: list[float]


class InMemoryVectorIndex:
    """Deterministic L2 index used for tests and local prototyping."""

    def __init__(self) -> None:
        self._store: dict[str, _StoredVector] = {}

    def load(self, matches: list[RawMatch], embeddings: list[list[float]]) -> None:
        """Load fixture vectors; `distance` on the given matches is ignored."""
        if len(matches) != len(embeddings):
            raise ValueError("matches and embeddings must have the same length")
        for match, embedding in zip(matches, embeddings, strict=True):
            self._store[match.id] = _StoredVector(match=match, embedding=embedding)

    async def search(
        self,
        vector: list[float],
        top_k: int,
        filter_expr: str | None = None,
    ) -> list[RawMatch]:
        predicate = compile_filter(filter_expr)
        candidates = [
            rec
            for rec in self._store.values()
            if predicate(_filter_view(rec.match))
        ]
        ranked = sorted(
            (
                (_l2_distance(vector, rec.embedding), rec.match)
                for rec in candidates
            ),
            key=lambda item: item[0],
        )
        return [
            RawMatch(
                id=match.id,
                distance=distance,
                document_id=match.document_id,
                datasource_id=match.datasource_id,
                chunk_index=match.chunk_index,
                content=match.content,
                content_type=match.content_type,
                metadata=dict(match.metadata),
            )
            for distance, match in ranked[:top_k]
        ]


class FaissVectorIndex:
    """Reads an existing FAISS store via the LangChain community integration.

    The store must be built with an L2 index; each stored document carries
    `id`, `documentId`, `datasourceId`, `chunkIndex` and `contentType` in its
    metadata. Building and maintaining the store happens elsewhere.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    @classmethod
    def from_local(cls, path: str, embeddings: Any) -> FaissVectorIndex:
        try:
            from langchain_community.vectorstores import FAISS
        except Exception as exc:  # pragma: no cover - import path is environment-dependent
            raise RuntimeError(
                "FAISS dependencies are not available. Install langchain-community/faiss-cpu."
            ) from exc
        store = FAISS.load_local(path, embeddings, allow_dangerous_deserialization=True)
        return cls(store)

    async def search(
        self,
        vector: list[float],
        top_k: int,
        filter_expr: str | None = None,
    ) -> list[RawMatch]:
        predicate = compile_filter(filter_expr)
        docs_and_scores = await asyncio.to_thread(
            self._store.similarity_search_with_score_by_vector,
            vector,
            k=top_k,
            filter=predicate if filter_expr else None,
        )
        results: list[RawMatch] = []
        for rank, (doc, distance) in enumerate(docs_and_scores):
            metadata = dict(doc.metadata)
            results.append(
                RawMatch(
                    id=str(metadata.pop("id", f"faiss-{rank}")),
                    distance=float(distance),
                    document_id=str(metadata.pop("documentId", "unknown")),
                    datasource_id=str(metadata.pop("datasourceId", "unknown")),
                    chunk_index=int(metadata.pop("chunkIndex", 0)),
                    content=doc.page_content,
                    content_type=str(metadata.pop("contentType", "document")),
                    metadata=metadata,
                )
            )
        results.sort(key=lambda match: match.distance)
        return results


def _quote_all(values: Sequence[str]) -> str:
    return ", ".join(
        '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"' for value in values
    )


def _filter_view(match: RawMatch) -> dict[str, Any]:
    return {name: getattr(match, attr) for name, attr in FILTER_FIELDS.items()}


def _l2_distance(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        raise ValueError("vector dimensions do not match")
    return sqrt(sum((x - y) * (x - y) for x, y in zip(a, b, strict=True)))
