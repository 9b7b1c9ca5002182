"""Store aggregated keywords and link them to their source document."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Mapping

from .aggregation import AggregationResult
from .config import KeywordFilterConfig
from .errors import DocumentNotFoundError, GraphStoreError
from .identity import key_value
from .graph_store import GraphStore
from .observability import MetricsRecorder

logger = logging.getLogger(__name__)


class AssociationPolicy(str, enum.Enum):
    """How a re-evaluated document's keyword links are written.

    ``CREATE`` adds a new association on every run; ``UPSERT`` sets the count
    on the existing one.
    """

    CREATE = "create"
    UPSERT = "upsert"


@dataclass(slots=True)
class PersistOutcome:
    """Result of one persistence call; truthy only when everything was committed."""

    document_id: str
    status: str
    keywords_created: int = 0
    keywords_reused: int = 0
    associations_written: int = 0
    skipped_stopwords: List[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def missing_document(self) -> bool:
        return self.status == "missing_document"

    def __bool__(self) -> bool:
        return self.ok


class KeywordPersister:
    """Find-or-create keyword entities and write their document associations atomically."""

    def __init__(
        self,
        store: GraphStore,
        *,
        association_policy: AssociationPolicy = AssociationPolicy.CREATE,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._store = store
        self._policy = AssociationPolicy(association_policy)
        self._metrics = metrics

    @property
    def association_policy(self) -> AssociationPolicy:
        return self._policy

    def persist(
        self,
        document_id: str,
        candidates: AggregationResult | Mapping[str, int],
        filter_config: KeywordFilterConfig | None = None,
    ) -> PersistOutcome:
        counts = candidates.counts if isinstance(candidates, AggregationResult) else dict(candidates)
        config = filter_config or KeywordFilterConfig()
        outcome = PersistOutcome(document_id=document_id, status="success")

        try:
            with self._store.transaction() as session:
                if not session.document_exists(document_id):
                    raise DocumentNotFoundError(document_id)
                for key, count in counts.items():
                    value = key_value(key)
                    if config.is_stopword(value):
                        outcome.skipped_stopwords.append(key)
                        continue
                    keyword, created = session.find_or_create_keyword(key, value)
                    if created:
                        outcome.keywords_created += 1
                    else:
                        outcome.keywords_reused += 1
                    if self._policy is AssociationPolicy.UPSERT:
                        session.upsert_association(keyword.id, document_id, count)
                    else:
                        session.create_association(keyword.id, document_id, count)
                    outcome.associations_written += 1
        except DocumentNotFoundError as exc:
            logger.error("keywords.persist.missing_document doc_id=%s", document_id)
            self._count("keywords.persist.missing_document")
            return PersistOutcome(document_id=document_id, status="missing_document", error=str(exc))
        except GraphStoreError as exc:
            logger.error("keywords.persist.failed doc_id=%s error=%s", document_id, exc)
            self._count("keywords.persist.failed")
            return PersistOutcome(document_id=document_id, status="error", error=str(exc))

        logger.info(
            "keywords.persist.completed doc_id=%s created=%s reused=%s associations=%s skipped=%s",
            document_id,
            outcome.keywords_created,
            outcome.keywords_reused,
            outcome.associations_written,
            len(outcome.skipped_stopwords),
        )
        self._count("keywords.persisted", value=outcome.associations_written)
        return outcome

    def _count(self, metric: str, *, value: int = 1) -> None:
        if self._metrics:
            self._metrics.increment(metric, value=value, policy=self._policy.value)


__all__ = ["AssociationPolicy", "KeywordPersister", "PersistOutcome"]
