"""FastAPI entrypoint for search, search-history and feedback endpoints."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from knowledge_search.config import RetrievalConfig, SearchSettings, get_settings
from knowledge_search.errors import MetadataUnavailable, UpstreamSearchFailure
from knowledge_search.history.store import InMemoryHistoryStore
from knowledge_search.metadata.repository import InMemoryMetadataRepository
from knowledge_search.metadata.source_links import DefaultSourceLinkResolver
from knowledge_search.obs.tracing import configure_logging
from knowledge_search.ranking.role_weights import UserRole
from knowledge_search.retrieval.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from knowledge_search.retrieval.engine import SearchEngine
from knowledge_search.retrieval.enricher import ResultEnricher
from knowledge_search.retrieval.vector_index import (
    FaissVectorIndex,
    InMemoryVectorIndex,
    VectorIndex,
)
from knowledge_search.types import SearchOptions


def _create_embedder(settings: SearchSettings) -> Embedder:
    if not settings.openai_api_key:
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    return LangChainEmbedder(
        OpenAIEmbeddings(model=settings.embedding_model, api_key=settings.openai_api_key)
    )


def _create_vector_index(settings: SearchSettings, embedder: Embedder) -> VectorIndex:
    if not settings.faiss_index_path or not isinstance(embedder, LangChainEmbedder):
        return InMemoryVectorIndex()
    return FaissVectorIndex.from_local(settings.faiss_index_path, embedder.embeddings)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchRequest(_CamelModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=10, ge=1, le=100)
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)
    datasource_ids: list[str] | None = None
    content_types: list[str] | None = None
    role: UserRole | None = None
    user_id: str | None = None


class AdoptionRequest(_CamelModel):
    adoption_status: Literal["adopted", "rejected"]
    user_id: str | None = None


class ResultFeedbackRequest(_CamelModel):
    search_history_id: str
    result_index: int = Field(ge=0)
    user_id: str = Field(min_length=1)
    adoption_status: Literal["adopted", "rejected"]
    document_id: str | None = None
    comment: str | None = None
    is_suspected: bool | None = None


class ConfirmSuspectedRequest(_CamelModel):
    search_history_id: str
    result_index: int = Field(ge=0)
    user_id: str = Field(min_length=1)
    confirmed: bool
    comment: str | None = None


class HistoryFeedbackRequest(_CamelModel):
    adoption_status: Literal["adopted", "rejected"] | None = None
    comment: str | None = None
    user_id: str | None = None


settings = get_settings()
configure_logging(settings.log_level)

_embedder = _create_embedder(settings)
_vector_index = _create_vector_index(settings, _embedder)
_metadata_repository = InMemoryMetadataRepository()
_history_store = InMemoryHistoryStore()
_engine = SearchEngine(
    _embedder,
    _vector_index,
    ResultEnricher(_metadata_repository, DefaultSourceLinkResolver()),
    history_store=_history_store,
    retrieval_config=RetrievalConfig(),
    confidence_config=settings.confidence_config(),
)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await _engine.drain()


app = FastAPI(title="Knowledge Search", version="0.1.0", lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "embedder": type(_embedder).__name__,
        "vector_index": type(_vector_index).__name__,
        "confidence_threshold": _engine.confidence_config.threshold,
    }


@app.post("/search")
async def search(request: SearchRequest) -> dict[str, Any]:
    options = SearchOptions(
        top_k=request.top_k,
        min_score=request.min_score,
        datasource_ids=request.datasource_ids,
        content_types=request.content_types,
        role=request.role.value if request.role else None,
    )
    try:
        response = await _engine.search(request.query, options, user_id=request.user_id)
    except UpstreamSearchFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except MetadataUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return response.to_payload()


@app.get("/search/history")
def search_history(
    user_id: str = Query(alias="userId"),
    role: UserRole | None = None,
    keyword: str | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100, alias="pageSize"),
) -> dict[str, Any]:
    items, total = _history_store.list_for_user(
        user_id,
        role=role.value if role else None,
        keyword=keyword,
        start=start_date,
        end=end_date,
        page=page,
        page_size=page_size,
    )
    return {
        "items": [item.to_payload() for item in items],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }


@app.get("/search/history/stats")
def search_history_stats(
    user_ids: list[str] | None = Query(default=None, alias="userIds"),
) -> dict[str, Any]:
    return _history_store.team_stats(user_ids=user_ids)


@app.get("/search/history/{record_id}")
def search_history_detail(
    record_id: str, user_id: str | None = Query(default=None, alias="userId")
) -> dict[str, Any]:
    try:
        record = _history_store.get(record_id, user_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return record.to_payload()


@app.patch("/search/history/{record_id}/adoption")
def update_adoption(record_id: str, request: AdoptionRequest) -> dict[str, Any]:
    try:
        record = _history_store.update_adoption_status(
            record_id, request.adoption_status, request.user_id
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return record.to_payload()


@app.patch("/search/history/{record_id}/feedback")
def update_history_feedback(record_id: str, request: HistoryFeedbackRequest) -> dict[str, Any]:
    try:
        record = _history_store.update_history_feedback(
            record_id,
            comment=request.comment,
            adoption_status=request.adoption_status,
            user_id=request.user_id,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return record.to_payload()


@app.post("/search/feedback")
def submit_result_feedback(request: ResultFeedbackRequest) -> dict[str, Any]:
    try:
        feedback = _history_store.submit_result_feedback(
            request.search_history_id,
            request.result_index,
            request.user_id,
            request.adoption_status,
            document_id=request.document_id,
            comment=request.comment,
            is_suspected=request.is_suspected,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return feedback.to_payload()


@app.post("/search/feedback/confirm-suspected")
def confirm_suspected_result(request: ConfirmSuspectedRequest) -> dict[str, Any]:
    try:
        feedback = _history_store.confirm_suspected_result(
            request.search_history_id,
            request.result_index,
            request.user_id,
            request.confirmed,
            comment=request.comment,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return feedback.to_payload()


@app.get("/search/history/{record_id}/feedback")
def list_result_feedback(record_id: str) -> dict[str, Any]:
    try:
        items = _history_store.feedback_for(record_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"items": [item.to_payload() for item in items]}
