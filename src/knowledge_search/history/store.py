"""Search history persistence, result feedback and adoption statistics."""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Protocol

from knowledge_search.errors import HistoryRecordingError
from knowledge_search.types import SearchHistoryRecord, SearchResultFeedback

ADOPTION_STATUSES = ("adopted", "rejected")


class HistoryStore(Protocol):
    """Best-effort sink for completed searches."""

    async def record(
        self,
        user_id: str,
        query: str,
        role: str | None,
        results_count: int,
    ) -> SearchHistoryRecord:
        """Persist one search."""


class InMemoryHistoryStore:
    """In-memory history storage used by the API and tests."""

    def __init__(self) -> None:
        self._records: dict[str, SearchHistoryRecord] = {}
        self._feedback: dict[tuple[str, int, str], SearchResultFeedback] = {}
        self.fail_writes = False

    async def record(
        self,
        user_id: str,
        query: str,
        role: str | None,
        results_count: int,
    ) -> SearchHistoryRecord:
        if self.fail_writes:
            raise HistoryRecordingError("history store rejected the write")
        record = SearchHistoryRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            query=query,
            role=role,
            results_count=results_count,
            created_at=datetime.now(timezone.utc),
        )
        self._records[record.id] = record
        return record

    def get(self, record_id: str, user_id: str | None = None) -> SearchHistoryRecord:
        record = self._records.get(record_id)
        if record is None or (user_id is not None and record.user_id != user_id):
            raise KeyError(f"Search history not found: {record_id}")
        return record

    def list_for_user(
        self,
        user_id: str,
        *,
        role: str | None = None,
        keyword: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[SearchHistoryRecord], int]:
        """Return one page of a user's history, newest first, and the match count."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        needle = keyword.lower() if keyword else None
        matched = [
            record
            for record in self._records.values()
            if record.user_id == user_id
            and (role is None or record.role == role)
            and (needle is None or needle in record.query.lower())
            and (start is None or record.created_at >= start)
            and (end is None or record.created_at <= end)
        ]
        matched.sort(key=lambda record: record.created_at, reverse=True)
        offset = (page - 1) * page_size
        return matched[offset : offset + page_size], len(matched)

    def update_adoption_status(
        self, record_id: str, status: str, user_id: str | None = None
    ) -> SearchHistoryRecord:
        if status not in ADOPTION_STATUSES:
            raise ValueError(f"adoption status must be one of {ADOPTION_STATUSES}")
        record = self.get(record_id, user_id)
        record.adoption_status = status
        return record

    def update_history_feedback(
        self,
        record_id: str,
        *,
        comment: str | None = None,
        adoption_status: str | None = None,
        user_id: str | None = None,
    ) -> SearchHistoryRecord:
        """Annotate a whole search; fields left as `None` are not touched."""
        if adoption_status is not None and adoption_status not in ADOPTION_STATUSES:
            raise ValueError(f"adoption status must be one of {ADOPTION_STATUSES}")
        record = self.get(record_id, user_id)
        if adoption_status is not None:
            record.adoption_status = adoption_status
        if comment is not None:
            record.comment = comment
        return record

    def submit_result_feedback(
        self,
        search_history_id: str,
        result_index: int,
        user_id: str,
        adoption_status: str,
        *,
        document_id: str | None = None,
        comment: str | None = None,
        is_suspected: bool | None = None,
        confirmed: bool | None = None,
    ) -> SearchResultFeedback:
        """Create or replace one user's verdict on one result of a search.

        Raises `KeyError` when the search is unknown and `ValueError` when the
        status is invalid or `result_index` is outside the recorded results.
        """
        if adoption_status not in ADOPTION_STATUSES:
            raise ValueError(f"adoption status must be one of {ADOPTION_STATUSES}")
        record = self.get(search_history_id)
        if not 0 <= result_index < record.results_count:
            raise ValueError(
                f"result index {result_index} out of range for "
                f"{record.results_count} results"
            )

        now = datetime.now(timezone.utc)
        key = (search_history_id, result_index, user_id)
        existing = self._feedback.get(key)
        feedback = SearchResultFeedback(
            id=existing.id if existing else str(uuid.uuid4()),
            search_history_id=search_history_id,
            result_index=result_index,
            user_id=user_id,
            adoption_status=adoption_status,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            document_id=document_id,
            comment=comment,
            is_suspected=is_suspected,
            confirmed=confirmed,
        )
        self._feedback[key] = feedback
        return feedback

    def confirm_suspected_result(
        self,
        search_history_id: str,
        result_index: int,
        user_id: str,
        confirmed: bool,
        comment: str | None = None,
    ) -> SearchResultFeedback:
        """Record whether a low-confidence result turned out to be useful."""
        return self.submit_result_feedback(
            search_history_id,
            result_index,
            user_id,
            "adopted" if confirmed else "rejected",
            comment=comment,
            is_suspected=True,
            confirmed=confirmed,
        )

    def feedback_for(self, search_history_id: str) -> list[SearchResultFeedback]:
        self.get(search_history_id)
        items = [
            item
            for item in self._feedback.values()
            if item.search_history_id == search_history_id
        ]
        return sorted(items, key=lambda item: (item.result_index, item.user_id))

    def team_stats(
        self,
        user_ids: list[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """Aggregate adoption and usage metrics for dashboard display."""
        records = [
            record
            for record in self._records.values()
            if (not user_ids or record.user_id in user_ids)
            and (start is None or record.created_at >= start)
            and (end is None or record.created_at <= end)
        ]
        adopted = sum(1 for record in records if record.adoption_status == "adopted")
        rejected = sum(1 for record in records if record.adoption_status == "rejected")
        decided = adopted + rejected
        adoption_rate = round(adopted / decided * 100, 2) if decided else 0.0

        query_counts = Counter(record.query for record in records)
        role_counts = Counter(record.role or "unknown" for record in records)

        return {
            "totalSearches": len(records),
            "adoptedSearches": adopted,
            "rejectedSearches": rejected,
            "adoptionRate": adoption_rate,
            "popularQueries": [
                {"query": query, "count": count}
                for query, count in query_counts.most_common(10)
            ],
            "roleDistribution": [
                {"role": role, "count": count} for role, count in role_counts.items()
            ],
        }
