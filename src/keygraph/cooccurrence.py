"""Build and clear the per-document co-occurrence graph of tags."""

from __future__ import annotations

import logging

from .errors import GraphStoreError
from .graph_store import GraphStore, validate_label
from .observability import MetricsRecorder
from .tokens import adjacent_pairs, filter_cooccurrence_tokens

logger = logging.getLogger(__name__)

DEFAULT_RELATION_KIND = "CO_OCCURRENCE"
DEFAULT_WEIGHT_FIELD = "weight"


class CooccurrenceGraphBuilder:
    """Create, increment and delete co-occurrence edges for a document.

    Within each sentence only nouns and adjectives longer than two characters
    are kept; every consecutive pair of the remaining tokens adds one to the
    weight of the undirected edge between their tags. Building twice without
    clearing doubles every weight, so callers rebuild with :meth:`clear` first.
    """

    def __init__(self, store: GraphStore, *, metrics: MetricsRecorder | None = None) -> None:
        self._store = store
        self._metrics = metrics

    def build(
        self,
        document_id: str,
        relation_kind: str = DEFAULT_RELATION_KIND,
        weight_field: str = DEFAULT_WEIGHT_FIELD,
    ) -> bool:
        validate_label(relation_kind, kind="relation kind")
        validate_label(weight_field, kind="weight field")
        pair_count = 0
        sentence_count = 0
        try:
            with self._store.transaction() as session:
                # Materialize first: the cursor and the upserts share a connection.
                sentences = list(session.iter_document_sentences(document_id))
                for tokens in sentences:
                    sentence_count += 1
                    for first, second in adjacent_pairs(filter_cooccurrence_tokens(tokens)):
                        session.upsert_cooccurrence(
                            document_id,
                            relation_kind,
                            weight_field,
                            first.identity.format(),
                            second.identity.format(),
                        )
                        pair_count += 1
        except GraphStoreError as exc:
            logger.error(
                "cooccurrence.build.failed doc_id=%s relation=%s error=%s",
                document_id,
                relation_kind,
                exc,
            )
            self._count("cooccurrence.build.failed", relation_kind=relation_kind)
            return False

        logger.info(
            "cooccurrence.build.completed doc_id=%s relation=%s sentences=%s pairs=%s",
            document_id,
            relation_kind,
            sentence_count,
            pair_count,
        )
        self._count("cooccurrence.pairs", value=pair_count, relation_kind=relation_kind)
        return True

    def clear(self, document_id: str, relation_kind: str = DEFAULT_RELATION_KIND) -> bool:
        validate_label(relation_kind, kind="relation kind")
        try:
            with self._store.transaction() as session:
                removed = session.delete_cooccurrences(document_id, relation_kind)
        except GraphStoreError as exc:
            logger.error(
                "cooccurrence.clear.failed doc_id=%s relation=%s error=%s",
                document_id,
                relation_kind,
                exc,
            )
            self._count("cooccurrence.clear.failed", relation_kind=relation_kind)
            return False

        logger.info(
            "cooccurrence.clear.completed doc_id=%s relation=%s removed=%s",
            document_id,
            relation_kind,
            removed,
        )
        return True

    def _count(self, metric: str, *, value: int = 1, **tags: object) -> None:
        if self._metrics:
            self._metrics.increment(metric, value=value, **tags)


__all__ = ["CooccurrenceGraphBuilder", "DEFAULT_RELATION_KIND", "DEFAULT_WEIGHT_FIELD"]
