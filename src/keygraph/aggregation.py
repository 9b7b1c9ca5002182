"""Merge ranked tag spans into key phrases and pick single-word keywords."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .config import KeywordFilterConfig
from .identity import key_value, phrase_key, split_key
from .ranking import SpanMatch

logger = logging.getLogger(__name__)

# Spans whose start is at most this far past the previous end continue a phrase
# (adjacent, or separated by a single space).
MAX_PHRASE_GAP = 1
SINGLE_WORD_LIMIT = 8
_NO_PREVIOUS_END = -1000


class TrailingPhrasePolicy(str, enum.Enum):
    """What to do with the phrase still open after the last span."""

    DROP = "drop"
    FLUSH = "flush"


@dataclass(frozen=True, slots=True)
class KeywordCandidate:
    """A keyword key with its display value and occurrence count."""

    key: str
    display_value: str
    occurrence_count: int

    @property
    def is_phrase(self) -> bool:
        return len(self.display_value.split()) > 1


@dataclass(slots=True)
class AggregationResult:
    """Keyword keys mapped to counts, in the order they were produced."""

    counts: Dict[str, int] = field(default_factory=dict)
    stopword_filter_enabled: bool = False
    phrase_keys: List[str] = field(default_factory=list)
    single_word_keys: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.counts)

    def __contains__(self, key: object) -> bool:
        return key in self.counts

    def candidates(self) -> List[KeywordCandidate]:
        return [
            KeywordCandidate(key=key, display_value=key_value(key), occurrence_count=count)
            for key, count in self.counts.items()
        ]

    def to_debug_payload(self) -> dict[str, object]:
        return {
            "stopword_filter_enabled": self.stopword_filter_enabled,
            "phrases": list(self.phrase_keys),
            "single_words": list(self.single_word_keys),
            "counts": dict(self.counts),
        }


class _PhraseAccumulator:
    def __init__(self, counts: Dict[str, int], phrase_keys: List[str]) -> None:
        self._counts = counts
        self._phrase_keys = phrase_keys
        self.words: List[str] = []
        self.language = ""

    def extend(self, value: str) -> None:
        self.words.append(value)

    def flush(self) -> None:
        if len(self.words) > 1:
            key = phrase_key(self.words, self.language)
            if key not in self._counts:
                self._phrase_keys.append(key)
            self._counts[key] = self._counts.get(key, 0) + 1

    def restart(self, value: str, language: str) -> None:
        self.words = [value]
        self.language = language


def aggregate_keywords(
    spans: Iterable[SpanMatch],
    filter_config: KeywordFilterConfig | None = None,
    *,
    trailing_phrase: TrailingPhrasePolicy = TrailingPhrasePolicy.DROP,
    single_word_limit: int = SINGLE_WORD_LIMIT,
) -> AggregationResult:
    """Collapse adjacent ranked spans into phrases and add the top single words.

    ``spans`` must be ordered by start offset. A span starting at most one
    character after the previous span's end extends the open phrase; a larger
    gap closes it, and closed phrases of two or more words are counted under
    ``"<words>_<lang>"``. Stopword spans are skipped without moving the
    previous end, so they break phrases. The trailing open phrase is only
    counted with :attr:`TrailingPhrasePolicy.FLUSH`.

    Independently, the ``single_word_limit`` best-scoring tags are added with a
    count of one. Output order is deterministic for a given input order.
    """

    config = filter_config or KeywordFilterConfig()
    result = AggregationResult(stopword_filter_enabled=config.enabled)
    phrase = _PhraseAccumulator(result.counts, result.phrase_keys)
    scores: Dict[str, float] = {}
    previous_end = _NO_PREVIOUS_END

    for span in spans:
        value, language = split_key(span.identity)
        if config.is_stopword(value):
            continue

        if span.start_offset - previous_end <= MAX_PHRASE_GAP:
            phrase.extend(value)
        else:
            phrase.flush()
            phrase.restart(value, language)
        previous_end = span.end_offset
        scores[span.identity] = span.score

    if trailing_phrase is TrailingPhrasePolicy.FLUSH:
        phrase.flush()

    # sorted() is stable, so equal scores keep first-seen order.
    ranked_words = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    for identity, _score in ranked_words[: max(0, single_word_limit)]:
        result.counts[identity] = 1
        result.single_word_keys.append(identity)

    logger.debug(
        "aggregation.completed phrases=%s single_words=%s filter=%s",
        len(result.phrase_keys),
        len(result.single_word_keys),
        config.enabled,
    )
    return result


__all__ = [
    "AggregationResult",
    "KeywordCandidate",
    "MAX_PHRASE_GAP",
    "SINGLE_WORD_LIMIT",
    "TrailingPhrasePolicy",
    "aggregate_keywords",
]
