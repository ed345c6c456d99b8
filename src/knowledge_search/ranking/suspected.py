"""Admission control for low-confidence results."""

from __future__ import annotations

from dataclasses import dataclass

from knowledge_search.types import SearchResult

DEFAULT_MAX_SUSPECTED = 3

SUSPECTED_SUGGESTION = (
    "Some results have low confidence and may be inaccurate. Try more specific "
    "keywords or narrow the search to fewer datasources."
)


@dataclass(slots=True)
class GateOutcome:
    results: list[SearchResult]
    has_suspected: bool
    suggestion: str | None


class SuspectedResultGate:
    """Moves suspected results behind normal ones and caps how many survive."""

    def __init__(self, max_suspected: int = DEFAULT_MAX_SUSPECTED) -> None:
        if max_suspected < 0:
            raise ValueError("max_suspected must be >= 0")
        self.max_suspected = max_suspected

    def apply(self, results: list[SearchResult]) -> GateOutcome:
        normal = [r for r in results if not r.is_suspected]
        suspected = [r for r in results if r.is_suspected][: self.max_suspected]
        output = normal + suspected
        has_suspected = any(r.is_suspected for r in output)
        return GateOutcome(
            results=output,
            has_suspected=has_suspected,
            suggestion=SUSPECTED_SUGGESTION if has_suspected else None,
        )
