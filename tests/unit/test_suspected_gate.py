import pytest

from knowledge_search.ranking.suspected import SUSPECTED_SUGGESTION, SuspectedResultGate


def test_suspected_results_move_behind_normal_ones(make_result) -> None:
    results = [
        make_result("s1", 0.9, is_suspected=True),
        make_result("n1", 0.8),
        make_result("s2", 0.7, is_suspected=True),
        make_result("n2", 0.6),
    ]

    outcome = SuspectedResultGate().apply(results)

    assert [r.id for r in outcome.results] == ["n1", "n2", "s1", "s2"]
    assert outcome.has_suspected is True
    assert outcome.suggestion == SUSPECTED_SUGGESTION


def test_at_most_three_suspected_survive(make_result) -> None:
    results = [make_result(f"s{i}", 0.5, is_suspected=True) for i in range(5)]

    outcome = SuspectedResultGate().apply(results)

    assert [r.id for r in outcome.results] == ["s0", "s1", "s2"]


def test_no_suspected_means_no_suggestion(make_result) -> None:
    outcome = SuspectedResultGate().apply([make_result("n1", 0.9)])

    assert outcome.has_suspected is False
    assert outcome.suggestion is None


def test_zero_cap_drops_every_suspected_result(make_result) -> None:
    results = [make_result("n1", 0.9), make_result("s1", 0.4, is_suspected=True)]

    outcome = SuspectedResultGate(max_suspected=0).apply(results)

    assert [r.id for r in outcome.results] == ["n1"]
    assert outcome.has_suspected is False
    assert outcome.suggestion is None


def test_negative_cap_rejected() -> None:
    with pytest.raises(ValueError):
        SuspectedResultGate(max_suspected=-1)
