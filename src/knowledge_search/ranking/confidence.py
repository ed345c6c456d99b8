"""Heuristic confidence estimation for ranked results."""

from __future__ import annotations

from dataclasses import replace

from knowledge_search.config import ConfidenceConfig
from knowledge_search.types import SearchResult

ELLIPSIS_MARKERS = ("...", "…")

# Result-set size -> factor; three or more results score 1.0.
RESULT_COUNT_FACTORS = {0: 0.0, 1: 0.6, 2: 0.8}


class ConfidenceEstimator:
    """Scores how trustworthy each result of a ranked list is.

    The overall confidence of a result set blends three factors:

    - similarity of the top result (capped at 1.0),
    - how many results came back,
    - mean content quality (length and whether the chunk looks truncated).

    The top result carries the overall confidence; every other result is
    discounted by its score relative to the top one. Results whose confidence
    falls below the configured threshold are flagged as suspected.
    """

    def __init__(self, config: ConfidenceConfig | None = None) -> None:
        self.config = config or ConfidenceConfig()

    def estimate(self, results: list[SearchResult]) -> list[SearchResult]:
        if not results:
            return results

        overall = self.overall_confidence(results)
        top_score = results[0].score

        scored: list[SearchResult] = []
        for index, result in enumerate(results):
            if index == 0:
                confidence = overall
            elif top_score > 0:
                confidence = overall * (result.score / top_score) * self.config.relative_discount
            else:
                confidence = 0.0
            confidence = _clamp(confidence)
            scored.append(
                replace(
                    result,
                    confidence=confidence,
                    is_suspected=confidence < self.config.threshold,
                )
            )
        return scored

    def overall_confidence(self, results: list[SearchResult]) -> float:
        cfg = self.config
        similarity = min(results[0].score, 1.0) if results else 0.0
        return (
            cfg.similarity_weight * similarity
            + cfg.result_count_weight * result_count_factor(len(results))
            + cfg.content_quality_weight * self.content_quality_factor(results)
        )

    def content_quality_factor(self, results: list[SearchResult]) -> float:
        if not results:
            return 0.0
        total = sum(
            (self.length_factor(r.content) + self.completeness_factor(r.content)) / 2
            for r in results
        )
        return total / len(results)

    def length_factor(self, content: str) -> float:
        return min(len(content) / self.config.length_reference_chars, 1.0)

    def completeness_factor(self, content: str) -> float:
        stripped = content.rstrip()
        if stripped.endswith(ELLIPSIS_MARKERS) or len(content) < self.config.short_content_chars:
            return self.config.truncated_completeness
        return 1.0


def result_count_factor(count: int) -> float:
    return RESULT_COUNT_FACTORS.get(count, 1.0)


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))
