"""Distance-to-similarity conversion and minimum-score filtering."""

from __future__ import annotations

from knowledge_search.types import RawMatch, SearchResult


def distance_to_similarity(distance: float) -> float:
    """Map an L2 distance onto (0, 1]; a distance of 0 is an exact match."""
    if distance < 0:
        raise ValueError(f"distance must be non-negative, got {distance}")
    return 1.0 / (1.0 + distance)


def normalize_scores(
    matches: list[RawMatch],
    min_score: float | None = None,
) -> list[SearchResult]:
    """Re-express matches as similarity-scored results.

    Input order is preserved: the index returns ascending distance, which is
    already descending similarity. Matches whose similarity is strictly below
    `min_score` are dropped.
    """

    results: list[SearchResult] = []
    for match in matches:
        similarity = distance_to_similarity(match.distance)
        if min_score is not None and similarity < min_score:
            continue
        results.append(SearchResult.from_match(match, similarity))
    return results
