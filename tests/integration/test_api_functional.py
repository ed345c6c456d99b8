import pytest
from conftest import FailingEmbedder, StaticVectorIndex
from fastapi.testclient import TestClient

from knowledge_search.types import DataSourceSnapshot, DocumentSnapshot, RawMatch


def test_api_search_history_and_stats() -> None:
    # Import inside the test so the default in-memory wiring is used.
    from knowledge_search.api import main

    chunks = [
        RawMatch(
            id="chunk-1",
            distance=0.0,
            document_id="prd-1",
            datasource_id="wiki",
            chunk_index=0,
            content="Refund approvals require two reviewers from the finance team. " * 3,
            content_type="document",
        ),
        RawMatch(
            id="chunk-2",
            distance=0.0,
            document_id="prd-1",
            datasource_id="wiki",
            chunk_index=1,
            content="def approve_refund(request): return request.reviewers >= 2",
            content_type="code",
        ),
    ]
    main._vector_index.load(chunks, [main._embedder.embed_query(c.content) for c in chunks])
    main._metadata_repository.add_document(
        DocumentSnapshot(id="prd-1", title="Refund PRD", metadata={"url": "https://feishu.example.com/docx/r1"})
    )
    main._metadata_repository.add_datasource(
        DataSourceSnapshot(id="wiki", name="Product Wiki", type="FEISHU")
    )

    with TestClient(main.app) as client:
        assert client.get("/health").json()["status"] == "ok"

        search_resp = client.post(
            "/search",
            json={
                "query": "refund approvals reviewers",
                "topK": 5,
                "role": "product",
                "userId": "alice",
            },
        )
        assert search_resp.status_code == 200
        payload = search_resp.json()
        assert payload["role"] == "product"
        assert payload["total"] == len(payload["results"]) >= 1
        top = payload["results"][0]
        assert top["id"] == "chunk-1"
        assert top["sourceLink"]["url"] == "https://feishu.example.com/docx/r1"
        assert top["datasource"] == {"id": "wiki", "name": "Product Wiki", "type": "FEISHU"}

        invalid = client.post("/search", json={"query": "", "role": "manager"})
        assert invalid.status_code == 422

    history = TestClient(main.app).get("/search/history", params={"userId": "alice"})
    assert history.status_code == 200
    [record] = history.json()["items"]
    assert record["query"] == "refund approvals reviewers"
    assert record["resultsCount"] == payload["total"]

    adoption = TestClient(main.app).patch(
        f"/search/history/{record['id']}/adoption", json={"adoptionStatus": "adopted"}
    )
    assert adoption.status_code == 200
    assert adoption.json()["adoptionStatus"] == "adopted"

    stats = TestClient(main.app).get("/search/history/stats").json()
    assert stats["adoptedSearches"] >= 1

    missing = TestClient(main.app).get("/search/history/does-not-exist")
    assert missing.status_code == 404


@pytest.fixture
def api(monkeypatch):
    from knowledge_search.api import main

    chunks = [
        RawMatch(
            id=f"ledger-{i}",
            distance=0.1 * i,
            document_id="ledger-doc",
            datasource_id="ledger-ds",
            chunk_index=i,
            content="Ledger reconciliation runs nightly and flags mismatched settlement rows.",
            content_type="document",
        )
        for i in range(2)
    ]
    monkeypatch.setattr(main._engine, "vector_index", StaticVectorIndex(chunks))
    return main


def test_api_maps_metadata_outage_to_503(api, monkeypatch) -> None:
    monkeypatch.setattr(api._metadata_repository, "available", False)

    with TestClient(api.app) as client:
        resp = client.post("/search", json={"query": "ledger reconciliation"})

    assert resp.status_code == 503
    assert "unavailable" in resp.json()["detail"]


@pytest.mark.parametrize(
    "component, replacement",
    [
        ("embedder", FailingEmbedder()),
        ("vector_index", StaticVectorIndex([], error=TimeoutError("index timed out"))),
    ],
)
def test_api_maps_upstream_failures_to_502(api, monkeypatch, component, replacement) -> None:
    monkeypatch.setattr(api._engine, component, replacement)

    with TestClient(api.app) as client:
        resp = client.post("/search", json={"query": "ledger reconciliation"})

    assert resp.status_code == 502
    assert resp.json()["detail"].startswith("search upstream failed")


def test_api_result_and_history_feedback(api) -> None:
    with TestClient(api.app) as client:
        search_resp = client.post(
            "/search", json={"query": "ledger reconciliation", "userId": "feedback-user"}
        )
        assert search_resp.json()["total"] == 2

    client = TestClient(api.app)
    [record] = client.get("/search/history", params={"userId": "feedback-user"}).json()["items"]
    history_id = record["id"]

    first = client.post(
        "/search/feedback",
        json={
            "searchHistoryId": history_id,
            "resultIndex": 1,
            "userId": "feedback-user",
            "adoptionStatus": "rejected",
            "documentId": "ledger-doc",
        },
    )
    again = client.post(
        "/search/feedback",
        json={
            "searchHistoryId": history_id,
            "resultIndex": 1,
            "userId": "feedback-user",
            "adoptionStatus": "adopted",
            "comment": "second look helped",
        },
    )
    assert first.status_code == 200 and again.status_code == 200
    assert again.json()["id"] == first.json()["id"]
    assert again.json()["adoptionStatus"] == "adopted"

    out_of_range = client.post(
        "/search/feedback",
        json={
            "searchHistoryId": history_id,
            "resultIndex": 2,
            "userId": "feedback-user",
            "adoptionStatus": "adopted",
        },
    )
    assert out_of_range.status_code == 400

    unknown = client.post(
        "/search/feedback",
        json={
            "searchHistoryId": "no-such-search",
            "resultIndex": 0,
            "userId": "feedback-user",
            "adoptionStatus": "adopted",
        },
    )
    assert unknown.status_code == 404

    confirmed = client.post(
        "/search/feedback/confirm-suspected",
        json={
            "searchHistoryId": history_id,
            "resultIndex": 0,
            "userId": "feedback-user",
            "confirmed": False,
            "comment": "outdated",
        },
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["isSuspected"] is True
    assert confirmed.json()["adoptionStatus"] == "rejected"

    listed = client.get(f"/search/history/{history_id}/feedback").json()["items"]
    assert [(item["resultIndex"], item["adoptionStatus"]) for item in listed] == [
        (0, "rejected"),
        (1, "adopted"),
    ]

    annotated = client.patch(
        f"/search/history/{history_id}/feedback",
        json={"comment": "needed the runbook instead", "adoptionStatus": "rejected"},
    )
    assert annotated.status_code == 200
    assert annotated.json()["comment"] == "needed the runbook instead"
    assert annotated.json()["adoptionStatus"] == "rejected"
    assert client.patch("/search/history/missing/feedback", json={"comment": "x"}).status_code == 404
