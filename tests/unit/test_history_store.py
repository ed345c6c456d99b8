import asyncio

import pytest

from knowledge_search.errors import HistoryRecordingError
from knowledge_search.history.store import InMemoryHistoryStore


def _seed(store: InMemoryHistoryStore) -> list[str]:
    async def _record() -> list[str]:
        records = [
            await store.record("u1", "settlement retry", "developer", 4),
            await store.record("u1", "Refund flow PRD", "product", 2),
            await store.record("u2", "settlement retry", None, 0),
        ]
        return [r.id for r in records]

    return asyncio.run(_record())


def test_list_for_user_filters_and_pages() -> None:
    store = InMemoryHistoryStore()
    _seed(store)

    items, total = store.list_for_user("u1")
    by_role, _ = store.list_for_user("u1", role="product")
    by_keyword, _ = store.list_for_user("u1", keyword="REFUND")
    first_page, paged_total = store.list_for_user("u1", page=1, page_size=1)

    assert total == 2
    assert {item.query for item in items} == {"settlement retry", "Refund flow PRD"}
    assert [item.query for item in by_role] == ["Refund flow PRD"]
    assert [item.query for item in by_keyword] == ["Refund flow PRD"]
    assert len(first_page) == 1 and paged_total == 2


def test_adoption_status_and_stats() -> None:
    store = InMemoryHistoryStore()
    first, second, third = _seed(store)

    store.update_adoption_status(first, "adopted")
    store.update_adoption_status(second, "rejected", user_id="u1")
    store.update_adoption_status(third, "adopted")

    stats = store.team_stats()

    assert stats["totalSearches"] == 3
    assert stats["adoptedSearches"] == 2
    assert stats["rejectedSearches"] == 1
    assert stats["adoptionRate"] == pytest.approx(66.67)
    assert stats["popularQueries"][0] == {"query": "settlement retry", "count": 2}
    assert {"role": "unknown", "count": 1} in stats["roleDistribution"]
    assert store.team_stats(user_ids=["u2"])["totalSearches"] == 1


def test_lookups_scoped_to_user_and_validated() -> None:
    store = InMemoryHistoryStore()
    first, *_ = _seed(store)

    with pytest.raises(KeyError):
        store.get(first, user_id="u2")
    with pytest.raises(KeyError):
        store.update_adoption_status("missing", "adopted")
    with pytest.raises(ValueError):
        store.update_adoption_status(first, "maybe")


def test_empty_stats_have_zero_rate() -> None:
    assert InMemoryHistoryStore().team_stats()["adoptionRate"] == 0.0


def test_failing_store_raises_recording_error() -> None:
    store = InMemoryHistoryStore()
    store.fail_writes = True

    with pytest.raises(HistoryRecordingError):
        asyncio.run(store.record("u1", "q", None, 0))


def test_result_feedback_upserts_per_user_and_index() -> None:
    store = InMemoryHistoryStore()
    first, *_ = _seed(store)

    original = store.submit_result_feedback(first, 0, "u1", "rejected", document_id="doc-1")
    updated = store.submit_result_feedback(first, 0, "u1", "adopted", comment="found it")
    store.submit_result_feedback(first, 0, "u2", "rejected")
    store.submit_result_feedback(first, 3, "u1", "adopted")

    assert updated.id == original.id
    assert updated.created_at == original.created_at
    assert updated.adoption_status == "adopted" and updated.comment == "found it"
    assert [(f.result_index, f.user_id) for f in store.feedback_for(first)] == [
        (0, "u1"),
        (0, "u2"),
        (3, "u1"),
    ]


def test_result_feedback_rejects_unknown_search_and_bad_index() -> None:
    store = InMemoryHistoryStore()
    first, _, empty = _seed(store)

    with pytest.raises(KeyError):
        store.submit_result_feedback("missing", 0, "u1", "adopted")
    with pytest.raises(ValueError):
        store.submit_result_feedback(first, 4, "u1", "adopted")
    with pytest.raises(ValueError):
        store.submit_result_feedback(first, -1, "u1", "adopted")
    with pytest.raises(ValueError):
        store.submit_result_feedback(empty, 0, "u2", "adopted")
    with pytest.raises(ValueError):
        store.submit_result_feedback(first, 0, "u1", "maybe")
    assert store.feedback_for(first) == []


def test_confirm_suspected_result_maps_to_adoption() -> None:
    store = InMemoryHistoryStore()
    first, *_ = _seed(store)

    kept = store.confirm_suspected_result(first, 2, "u1", confirmed=True)
    dropped = store.confirm_suspected_result(first, 3, "u1", confirmed=False, comment="stale doc")

    assert (kept.adoption_status, kept.is_suspected, kept.confirmed) == ("adopted", True, True)
    assert (dropped.adoption_status, dropped.confirmed) == ("rejected", False)
    assert dropped.comment == "stale doc"


def test_history_feedback_updates_only_given_fields() -> None:
    store = InMemoryHistoryStore()
    first, *_ = _seed(store)

    store.update_history_feedback(first, adoption_status="adopted")
    record = store.update_history_feedback(first, comment="answered by the retry doc", user_id="u1")

    assert record.adoption_status == "adopted"
    assert record.to_payload()["comment"] == "answered by the retry doc"
    with pytest.raises(KeyError):
        store.update_history_feedback(first, comment="x", user_id="u2")
    with pytest.raises(ValueError):
        store.update_history_feedback(first, adoption_status="maybe")
