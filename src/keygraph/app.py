"""FastAPI application exposing the keyword graph pipeline."""

from __future__ import annotations

import logging
from typing import Any, List

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .config import KeywordFilterConfig, Settings
from .errors import DocumentNotFoundError, GraphStoreError
from .graph_store import GraphStore
from .observability import MetricsRecorder
from .pipeline import EvaluationResult, TextRankPipeline
from .tokens import DEFAULT_LANGUAGE, sentences_from_payload

logger = logging.getLogger(__name__)


_LOGGING_CONFIGURED = False


def _ensure_logging(level: str = "INFO") -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    keygraph_logger = logging.getLogger("keygraph")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        keygraph_logger.handlers = []
        for handler in handlers:
            keygraph_logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        keygraph_logger.addHandler(handler)

    level_value = getattr(logging, level.upper(), None)
    keygraph_logger.setLevel(level_value if isinstance(level_value, int) else logging.INFO)
    _LOGGING_CONFIGURED = True


class TokenPayload(BaseModel):
    text: str
    pos: List[str] | str
    start: int
    end: int
    language: str | None = None


class SentencePayload(BaseModel):
    tokens: List[TokenPayload] = Field(default_factory=list)
    language: str | None = None


class DocumentPayload(BaseModel):
    id: str = Field(min_length=1)
    language: str = DEFAULT_LANGUAGE
    sentences: List[SentencePayload] = Field(default_factory=list)


class EvaluatePayload(BaseModel):
    """Evaluation options; omitted fields fall back to the service settings."""

    relation_kind: str | None = None
    weight_field: str | None = None
    iterations: int | None = Field(None, ge=1)
    damping: float | None = Field(None, ge=0.0, le=1.0)
    stopwords: str | None = None
    remove_stopwords: bool | None = None
    rebuild: bool = False


class ApplicationState:
    """Container for runtime dependencies used by the FastAPI app."""

    def __init__(
        self,
        *,
        settings: Settings,
        store: GraphStore,
        pipeline: TextRankPipeline,
        metrics: MetricsRecorder | None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.pipeline = pipeline
        self.metrics = metrics


def _filter_for_request(pipeline: TextRankPipeline, payload: EvaluatePayload) -> KeywordFilterConfig:
    if payload.stopwords is not None:
        return KeywordFilterConfig.from_stopwords(payload.stopwords, enabled=payload.remove_stopwords)
    if payload.remove_stopwords is not None:
        return pipeline.filter_config.with_enabled(payload.remove_stopwords)
    return pipeline.filter_config


def _serialize_evaluation(result: EvaluationResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "documentId": result.document_id,
        "status": result.status,
        "keywords": [
            {
                "id": candidate.key,
                "value": candidate.display_value,
                "count": candidate.occurrence_count,
            }
            for candidate in result.keywords
        ],
        "ranked": [
            {"tag": node.identity, "score": round(node.score, 6), "weight": node.aux_weight}
            for node in result.ranked
        ],
        "durationMs": result.duration_ms,
    }
    if result.aggregation is not None:
        payload["stopwordFilterEnabled"] = result.aggregation.stopword_filter_enabled
    if result.error:
        payload["error"] = result.error
    return payload


def create_app(
    *,
    settings: Settings | None = None,
    store: GraphStore | None = None,
    pipeline: TextRankPipeline | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or Settings.from_env()
    _ensure_logging(settings.log_level)
    metrics = metrics or settings.build_metrics_recorder()
    if pipeline is None:
        store = store or GraphStore(settings.resolved_graph_db_path())
        pipeline = TextRankPipeline.from_settings(settings, store=store, metrics=metrics)
    store = pipeline.store
    logger.info("app.start graph_db=%s kernel=%s", store.path, settings.textrank_kernel)

    app = FastAPI(title="keygraph")
    app.state.services = ApplicationState(
        settings=settings,
        store=store,
        pipeline=pipeline,
        metrics=metrics,
    )

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_settings(request: Request) -> Settings:
        return get_state(request).settings

    def get_store(request: Request) -> GraphStore:
        return get_state(request).store

    def get_pipeline(request: Request) -> TextRankPipeline:
        return get_state(request).pipeline

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    def _require_document(store: GraphStore, document_id: str) -> None:
        try:
            exists = store.document_exists(document_id)
        except GraphStoreError as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        if not exists:
            raise HTTPException(status_code=404, detail="Document not found")

    @app.get("/health", response_class=JSONResponse)
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.post("/documents", response_class=JSONResponse, status_code=201)
    async def load_document(
        payload: DocumentPayload,
        store: GraphStore = Depends(get_store),
    ) -> JSONResponse:
        sentences = sentences_from_payload(
            [sentence.model_dump() for sentence in payload.sentences],
            language=payload.language,
        )
        try:
            stored = store.add_document(payload.id, sentences)
        except (GraphStoreError, DocumentNotFoundError) as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(
            {"documentId": payload.id, "sentences": len(sentences), "tokens": stored},
            status_code=201,
        )

    @app.post("/documents/{document_id}/cooccurrences", response_class=JSONResponse)
    async def build_cooccurrences(
        document_id: str,
        relation_kind: str | None = Query(None),
        weight_field: str | None = Query(None),
        rebuild: bool = Query(False),
        settings: Settings = Depends(get_settings),
        store: GraphStore = Depends(get_store),
        pipeline: TextRankPipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        relation_kind = relation_kind or settings.relation_kind
        weight_field = weight_field or settings.weight_field
        _require_document(store, document_id)
        try:
            if rebuild:
                ok = pipeline.rebuild(document_id, relation_kind, weight_field)
            else:
                ok = pipeline.build(document_id, relation_kind, weight_field)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not ok:
            raise HTTPException(status_code=500, detail="Building co-occurrences failed")
        edges = store.cooccurrence_edges(document_id, relation_kind, weight_field)
        return JSONResponse({"documentId": document_id, "relationKind": relation_kind, "edges": len(edges)})

    @app.get("/documents/{document_id}/cooccurrences", response_class=JSONResponse)
    async def list_cooccurrences(
        document_id: str,
        relation_kind: str | None = Query(None),
        weight_field: str | None = Query(None),
        settings: Settings = Depends(get_settings),
        store: GraphStore = Depends(get_store),
    ) -> JSONResponse:
        relation_kind = relation_kind or settings.relation_kind
        _require_document(store, document_id)
        edges = store.cooccurrence_edges(document_id, relation_kind, weight_field)
        return JSONResponse(
            {
                "documentId": document_id,
                "relationKind": relation_kind,
                "edges": [
                    {"a": edge.a, "b": edge.b, "weightField": edge.weight_field, "weight": edge.weight}
                    for edge in edges
                ],
            }
        )

    @app.delete("/documents/{document_id}/cooccurrences", response_class=JSONResponse)
    async def clear_cooccurrences(
        document_id: str,
        relation_kind: str | None = Query(None),
        settings: Settings = Depends(get_settings),
        pipeline: TextRankPipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        relation_kind = relation_kind or settings.relation_kind
        try:
            ok = pipeline.clear(document_id, relation_kind)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not ok:
            raise HTTPException(status_code=500, detail="Clearing co-occurrences failed")
        return JSONResponse({"documentId": document_id, "relationKind": relation_kind, "cleared": True})

    @app.post("/documents/{document_id}/keywords", response_class=JSONResponse)
    async def evaluate_keywords(
        document_id: str,
        payload: EvaluatePayload | None = None,
        settings: Settings = Depends(get_settings),
        pipeline: TextRankPipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        payload = payload or EvaluatePayload()
        filter_config = _filter_for_request(pipeline, payload)
        relation_kind = payload.relation_kind or settings.relation_kind
        weight_field = payload.weight_field or settings.weight_field
        try:
            if payload.rebuild and not pipeline.rebuild(document_id, relation_kind, weight_field):
                raise HTTPException(status_code=500, detail="Building co-occurrences failed")
            result = pipeline.evaluate(
                document_id,
                relation_kind,
                weight_field,
                payload.iterations if payload.iterations is not None else settings.textrank_iterations,
                payload.damping if payload.damping is not None else settings.textrank_damping,
                filter_config=filter_config,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        if result.status == "missing_document":
            raise HTTPException(status_code=404, detail="Document not found")
        if not result.ok:
            return JSONResponse(_serialize_evaluation(result), status_code=500)
        return JSONResponse(_serialize_evaluation(result))

    @app.get("/documents/{document_id}/keywords", response_class=JSONResponse)
    async def list_keywords(
        document_id: str,
        store: GraphStore = Depends(get_store),
    ) -> JSONResponse:
        _require_document(store, document_id)
        with store.transaction(readonly=True) as session:
            associations = session.keyword_associations(document_id)
            items = []
            for association in associations:
                keyword = session.get_keyword(association.keyword_id)
                items.append(
                    {
                        "id": association.keyword_id,
                        "value": keyword.value if keyword else None,
                        "count": association.count,
                    }
                )
        return JSONResponse({"documentId": document_id, "keywords": items})

    @app.get("/metrics")
    async def metrics_endpoint(metrics: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics is None or not metrics.prometheus_enabled:
            raise HTTPException(status_code=404, detail="Metrics export disabled")
        return Response(content=metrics.render_prometheus(), media_type=metrics.prometheus_content_type)

    return app


__all__ = ["ApplicationState", "create_app"]
