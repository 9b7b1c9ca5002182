"""Tagged token records and the linguistic filter applied before graph building."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, Sequence

from .identity import TagIdentity

# Nouns and adjectives only.
QUALIFYING_POS_TAGS: frozenset[str] = frozenset({"NN", "NNS", "NNP", "NNPS", "JJ", "JJR", "JJS"})
MIN_VALUE_LENGTH = 2
DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True, slots=True)
class TaggedToken:
    """A token produced by the upstream tagger, with document character offsets."""

    text: str
    pos_tags: frozenset[str]
    start_offset: int
    end_offset: int
    sentence_index: int = 0
    sentence_order_index: int = 0
    language: str = DEFAULT_LANGUAGE

    @property
    def normalized_text(self) -> str:
        """Trimmed, casefolded text; the value part of the tag identity."""

        return self.text.strip().casefold()

    @property
    def identity(self) -> TagIdentity:
        return TagIdentity(value=self.normalized_text, language=self.language)

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        sentence_index: int,
        sentence_order_index: int,
        language: str = DEFAULT_LANGUAGE,
    ) -> "TaggedToken":
        pos = payload.get("pos") or payload.get("pos_tags") or []
        if isinstance(pos, str):
            pos = [pos]
        return cls(
            text=str(payload["text"]),
            pos_tags=frozenset(str(tag) for tag in pos),
            start_offset=int(payload["start"]),
            end_offset=int(payload["end"]),
            sentence_index=sentence_index,
            sentence_order_index=sentence_order_index,
            language=str(payload.get("language") or language),
        )


@dataclass(slots=True)
class AnnotatedSentence:
    """Ordered tokens of one sentence."""

    index: int
    tokens: List[TaggedToken] = field(default_factory=list)


def is_cooccurrence_candidate(token: TaggedToken) -> bool:
    """Return True when the token may take part in co-occurrence edges."""

    if len(token.normalized_text) <= MIN_VALUE_LENGTH:
        return False
    return not token.pos_tags.isdisjoint(QUALIFYING_POS_TAGS)


def filter_cooccurrence_tokens(tokens: Iterable[TaggedToken]) -> List[TaggedToken]:
    return [token for token in tokens if is_cooccurrence_candidate(token)]


def adjacent_pairs(tokens: Sequence[TaggedToken]) -> Iterator[tuple[TaggedToken, TaggedToken]]:
    for index in range(len(tokens) - 1):
        yield tokens[index], tokens[index + 1]


def sentences_from_payload(
    payload: Sequence[Mapping[str, Any]] | Sequence[Sequence[Mapping[str, Any]]],
    *,
    language: str = DEFAULT_LANGUAGE,
) -> List[AnnotatedSentence]:
    """Convert a JSON-like document description into annotated sentences.

    Accepts either a list of ``{"tokens": [...]}`` objects or a plain list of
    token lists. Each token needs ``text``, ``pos`` (string or list),
    ``start`` and ``end``; ``language`` is optional.
    """

    sentences: List[AnnotatedSentence] = []
    for sentence_index, raw in enumerate(payload):
        if isinstance(raw, Mapping):
            raw_tokens = raw.get("tokens") or []
            sentence_language = str(raw.get("language") or language)
        else:
            raw_tokens = raw
            sentence_language = language
        tokens = [
            TaggedToken.from_payload(
                item,
                sentence_index=sentence_index,
                sentence_order_index=position,
                language=sentence_language,
            )
            for position, item in enumerate(raw_tokens)
        ]
        sentences.append(AnnotatedSentence(index=sentence_index, tokens=tokens))
    return sentences


__all__ = [
    "AnnotatedSentence",
    "DEFAULT_LANGUAGE",
    "QUALIFYING_POS_TAGS",
    "TaggedToken",
    "adjacent_pairs",
    "filter_cooccurrence_tokens",
    "is_cooccurrence_candidate",
    "sentences_from_payload",
]
