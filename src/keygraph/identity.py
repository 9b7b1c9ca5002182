"""Canonical keys for tags and phrases (``<value>_<lang>``)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

logger = logging.getLogger(__name__)

SEPARATOR = "_"


@dataclass(frozen=True, slots=True)
class TagIdentity:
    """A normalized token value paired with its language.

    Multiple token occurrences map to the same identity; the formatted key is
    used as the vertex key of the co-occurrence graph and as the id of
    persisted keywords.
    """

    value: str
    language: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("Tag identity requires a non-empty value")
        if SEPARATOR in self.language:
            raise ValueError(f"Language '{self.language}' must not contain '{SEPARATOR}'")

    def format(self) -> str:
        return f"{self.value}{SEPARATOR}{self.language}"

    def __str__(self) -> str:
        return self.format()

    @property
    def word_count(self) -> int:
        return len(self.value.split())

    @classmethod
    def parse(cls, key: str) -> "TagIdentity":
        """Split a key into value and language.

        Keys whose value itself contains the separator are tolerated: the value
        is the text before the first separator and the language the text after
        the last one.
        """

        value, language = split_key(key)
        return cls(value=value, language=language)


def split_key(key: str) -> tuple[str, str]:
    """Return ``(value, language)`` for a tag or phrase key, warning on ambiguity."""

    parts = key.split(SEPARATOR)
    if len(parts) > 2:
        logger.warning("identity.malformed key=%s separators=%s", key, len(parts) - 1)
    if len(parts) == 1:
        return parts[0], ""
    # The language is always the trailing segment; the value is everything before the first separator.
    return parts[0], parts[-1]


def key_value(key: str) -> str:
    """Return the display value of a key (text before the first separator)."""

    return split_key(key)[0]


def phrase_key(words: Sequence[str], language: str) -> str:
    """Build the key of a multi-word phrase, e.g. ``"big data_en"``."""

    return f"{' '.join(words)}{SEPARATOR}{language}"


__all__ = ["SEPARATOR", "TagIdentity", "key_value", "phrase_key", "split_key"]
