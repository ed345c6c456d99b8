"""Search orchestration: embed, retrieve, enrich, rank, gate."""

from __future__ import annotations

import asyncio
import logging

from knowledge_search.config import ConfidenceConfig, RetrievalConfig
from knowledge_search.errors import MetadataUnavailable, UpstreamSearchFailure
from knowledge_search.history.store import HistoryStore
from knowledge_search.obs.tracing import Timer
from knowledge_search.ranking.confidence import ConfidenceEstimator
from knowledge_search.ranking.role_weights import (
    ROLE_WEIGHT_STRATEGIES,
    RoleWeightTable,
    apply_role_weighting,
    role_key,
)
from knowledge_search.ranking.suspected import SuspectedResultGate
from knowledge_search.retrieval.embedder import Embedder
from knowledge_search.retrieval.enricher import ResultEnricher
from knowledge_search.retrieval.scoring import normalize_scores
from knowledge_search.retrieval.vector_index import VectorIndex, build_filter_expression
from knowledge_search.types import RawMatch, SearchOptions, SearchResponse

logger = logging.getLogger(__name__)


class SearchEngine:
    """Turns a k-NN vector search into a role-aware, confidence-scored result list.

    Pipeline per request:
    1. Embed the query and run the vector search (sequential, fatal on failure).
    2. Convert distances to similarities and drop those below `min_score`.
    3. Enrich with document/datasource metadata, source links and highlights.
    4. Re-rank by role weight, estimate confidence, gate suspected results.
    5. Schedule a detached history write when a user id is known.

    All collaborators are injected; the weight table and confidence config are
    read-only for the lifetime of the engine.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_index: VectorIndex,
        enricher: ResultEnricher,
        *,
        history_store: HistoryStore | None = None,
        retrieval_config: RetrievalConfig | None = None,
        confidence_config: ConfidenceConfig | None = None,
        role_weights: RoleWeightTable = ROLE_WEIGHT_STRATEGIES,
    ) -> None:
        self.embedder = embedder
        self.vector_index = vector_index
        self.enricher = enricher
        self.history_store = history_store
        self.retrieval_config = retrieval_config or RetrievalConfig()
        self.confidence_config = confidence_config or ConfidenceConfig()
        self.role_weights = role_weights
        self.estimator = ConfidenceEstimator(self.confidence_config)
        self.gate = SuspectedResultGate(self.confidence_config.max_suspected)
        self._pending: set[asyncio.Task[None]] = set()

    def default_options(self) -> SearchOptions:
        return SearchOptions(top_k=self.retrieval_config.top_k)

    async def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        user_id: str | None = None,
    ) -> SearchResponse:
        options = options or self.default_options()
        role = role_key(options.role) if options.role else None
        timings: dict[str, float] = {}

        with Timer() as total_timer:
            matches = await self._retrieve(query, options, timings)

            with Timer() as timer:
                normalized = normalize_scores(matches, options.min_score)
            timings["normalize"] = timer.elapsed_ms

            with Timer() as timer:
                try:
                    enriched = await self.enricher.enrich(normalized, query)
                except MetadataUnavailable:
                    logger.error("Metadata repository unavailable", exc_info=True)
                    raise
            timings["enrich"] = timer.elapsed_ms

            with Timer() as timer:
                weighted = apply_role_weighting(enriched, role, self.role_weights)
                scored = self.estimator.estimate(weighted)
                outcome = self.gate.apply(scored)
            timings["rank"] = timer.elapsed_ms

        response = SearchResponse(
            query=query,
            role=role,
            total=len(outcome.results),
            suspected=outcome.has_suspected,
            results=outcome.results,
            suggestion=outcome.suggestion,
        )

        logger.debug("Search stage timings (ms): %s", timings)
        logger.info(
            "Search query=%r role=%s candidates=%d total=%d suspected=%s latency_ms=%.1f",
            query[:50],
            role,
            len(matches),
            response.total,
            response.suspected,
            total_timer.elapsed_ms,
        )

        if user_id and self.history_store is not None:
            self._schedule_history(self.history_store, user_id, query, role, response.total)
        return response

    async def drain(self) -> None:
        """Wait for outstanding history writes; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _retrieve(
        self,
        query: str,
        options: SearchOptions,
        timings: dict[str, float],
    ) -> list[RawMatch]:
        filter_expr = build_filter_expression(options.datasource_ids, options.content_types)
        try:
            with Timer() as timer:
                vector = await self.embedder.aembed_query(query)
            timings["embed"] = timer.elapsed_ms

            with Timer() as timer:
                matches = await self.vector_index.search(vector, options.top_k, filter_expr)
            timings["vector_search"] = timer.elapsed_ms
        except Exception as exc:
            logger.error("Upstream search failed for query %r", query[:50], exc_info=True)
            raise UpstreamSearchFailure(f"search upstream failed: {exc}") from exc
        invalid = [match.id for match in matches if match.distance < 0]
        if invalid:
            logger.error("Vector index returned negative distances for %s", invalid)
            raise UpstreamSearchFailure(f"vector index returned negative distances: {invalid}")
        return matches[: options.top_k]

    def _schedule_history(
        self,
        store: HistoryStore,
        user_id: str,
        query: str,
        role: str | None,
        results_count: int,
    ) -> None:
        task = asyncio.create_task(
            self._record_history(store, user_id, query, role, results_count)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record_history(
        self,
        store: HistoryStore,
        user_id: str,
        query: str,
        role: str | None,
        results_count: int,
    ) -> None:
        try:
            await store.record(user_id, query, role, results_count)
        except Exception:
            logger.warning("Failed to record search history for user %s", user_id, exc_info=True)
