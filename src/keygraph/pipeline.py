"""End-to-end keyword evaluation for a single annotated document."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List

from .aggregation import (
    SINGLE_WORD_LIMIT,
    AggregationResult,
    KeywordCandidate,
    TrailingPhrasePolicy,
    aggregate_keywords,
)
from .config import KeywordFilterConfig, Settings
from .cooccurrence import DEFAULT_RELATION_KIND, DEFAULT_WEIGHT_FIELD, CooccurrenceGraphBuilder
from .errors import RankingError
from .graph_store import GraphStore
from .observability import MetricsRecorder
from .persistence import AssociationPolicy, KeywordPersister, PersistOutcome
from .ranking import CentralityRanker, RankedNode, build_kernel

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 30
DEFAULT_DAMPING = 0.85


@dataclass(slots=True)
class EvaluationResult:
    """Outcome of ranking, aggregating and persisting one document's keywords."""

    document_id: str
    status: str
    keywords: List[KeywordCandidate] = field(default_factory=list)
    ranked: List[RankedNode] = field(default_factory=list)
    aggregation: AggregationResult | None = None
    persisted: PersistOutcome | None = None
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def __bool__(self) -> bool:
        return self.ok

    def keyword_counts(self) -> dict[str, int]:
        return {candidate.key: candidate.occurrence_count for candidate in self.keywords}


class TextRankPipeline:
    """Builder, ranker, aggregator and persister wired around one graph store.

    Stopword settings are passed per call as an immutable
    :class:`KeywordFilterConfig`; the pipeline itself holds no mutable state.
    """

    def __init__(
        self,
        store: GraphStore,
        *,
        builder: CooccurrenceGraphBuilder | None = None,
        ranker: CentralityRanker | None = None,
        persister: KeywordPersister | None = None,
        filter_config: KeywordFilterConfig | None = None,
        trailing_phrase: TrailingPhrasePolicy = TrailingPhrasePolicy.DROP,
        single_word_limit: int = SINGLE_WORD_LIMIT,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._store = store
        self._metrics = metrics
        self._builder = builder or CooccurrenceGraphBuilder(store, metrics=metrics)
        self._ranker = ranker or CentralityRanker(store, metrics=metrics)
        self._persister = persister or KeywordPersister(store, metrics=metrics)
        self._filter_config = filter_config or KeywordFilterConfig()
        self._trailing_phrase = trailing_phrase
        self._single_word_limit = single_word_limit

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        store: GraphStore | None = None,
        metrics: MetricsRecorder | None = None,
    ) -> "TextRankPipeline":
        store = store or GraphStore(settings.resolved_graph_db_path())
        kernel = build_kernel(settings.textrank_kernel, tolerance=settings.textrank_tolerance)
        return cls(
            store,
            ranker=CentralityRanker(store, kernel, top_nodes=settings.textrank_top_nodes, metrics=metrics),
            persister=KeywordPersister(
                store,
                association_policy=AssociationPolicy(settings.keyword_association_policy),
                metrics=metrics,
            ),
            filter_config=settings.filter_config(),
            trailing_phrase=(
                TrailingPhrasePolicy.FLUSH
                if settings.keyword_flush_trailing_phrase
                else TrailingPhrasePolicy.DROP
            ),
            single_word_limit=settings.keyword_single_word_limit,
            metrics=metrics,
        )

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def filter_config(self) -> KeywordFilterConfig:
        return self._filter_config

    def build(
        self,
        document_id: str,
        relation_kind: str = DEFAULT_RELATION_KIND,
        weight_field: str = DEFAULT_WEIGHT_FIELD,
    ) -> bool:
        return self._builder.build(document_id, relation_kind, weight_field)

    def clear(self, document_id: str, relation_kind: str = DEFAULT_RELATION_KIND) -> bool:
        return self._builder.clear(document_id, relation_kind)

    def rebuild(
        self,
        document_id: str,
        relation_kind: str = DEFAULT_RELATION_KIND,
        weight_field: str = DEFAULT_WEIGHT_FIELD,
    ) -> bool:
        """Clear then build, so repeated runs do not accumulate weights."""

        if not self._builder.clear(document_id, relation_kind):
            return False
        return self._builder.build(document_id, relation_kind, weight_field)

    def evaluate(
        self,
        document_id: str,
        relation_kind: str = DEFAULT_RELATION_KIND,
        weight_field: str = DEFAULT_WEIGHT_FIELD,
        iterations: int = DEFAULT_ITERATIONS,
        damping: float = DEFAULT_DAMPING,
        *,
        filter_config: KeywordFilterConfig | None = None,
    ) -> EvaluationResult:
        config = filter_config or self._filter_config
        start = time.perf_counter()

        try:
            ranked = self._ranker.rank(document_id, relation_kind, weight_field, iterations, damping)
            spans = self._ranker.span_matches(document_id, ranked)
        except RankingError as exc:
            logger.error("pipeline.evaluate.ranking_failed doc_id=%s error=%s", document_id, exc)
            return self._finish(
                EvaluationResult(document_id=document_id, status="ranking_failed", error=str(exc)),
                start,
            )

        aggregation = aggregate_keywords(
            spans,
            config,
            trailing_phrase=self._trailing_phrase,
            single_word_limit=self._single_word_limit,
        )
        persisted = self._persister.persist(document_id, aggregation, config)

        if persisted.ok:
            status = "success"
        elif persisted.missing_document:
            status = "missing_document"
        else:
            status = "persist_failed"
        keywords = [
            candidate
            for candidate in aggregation.candidates()
            if not config.is_stopword(candidate.display_value)
        ]
        result = EvaluationResult(
            document_id=document_id,
            status=status,
            keywords=keywords if persisted.ok else [],
            ranked=ranked,
            aggregation=aggregation,
            persisted=persisted,
            error=persisted.error,
        )
        return self._finish(result, start)

    def _finish(self, result: EvaluationResult, start: float) -> EvaluationResult:
        elapsed = time.perf_counter() - start
        result.duration_ms = round(elapsed * 1000.0, 2)
        logger.info(
            "pipeline.evaluate.%s doc_id=%s keywords=%s duration_ms=%s",
            result.status,
            result.document_id,
            len(result.keywords),
            result.duration_ms,
        )
        if self._metrics:
            self._metrics.increment("pipeline.evaluations", status=result.status)
            self._metrics.record_timing("pipeline.evaluation_duration", elapsed, status=result.status)
        return result


__all__ = ["DEFAULT_DAMPING", "DEFAULT_ITERATIONS", "EvaluationResult", "TextRankPipeline"]
