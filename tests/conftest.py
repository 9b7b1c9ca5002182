from __future__ import annotations

from pathlib import Path
from typing import Callable, List

import pytest

from keygraph.graph_store import GraphStore
from keygraph.tokens import AnnotatedSentence, TaggedToken


def _tag_sentences(*sentences: str, language: str = "en") -> List[AnnotatedSentence]:
    """Turn ``"big/JJ data/NNS"`` strings into sentences with document offsets.

    Tokens are separated by one space and sentences by ``". "``.
    """

    result: List[AnnotatedSentence] = []
    offset = 0
    for sentence_index, sentence in enumerate(sentences):
        tokens: List[TaggedToken] = []
        for position, item in enumerate(sentence.split()):
            text, _, tags = item.rpartition("/")
            tokens.append(
                TaggedToken(
                    text=text,
                    pos_tags=frozenset(tags.split("|")),
                    start_offset=offset,
                    end_offset=offset + len(text),
                    sentence_index=sentence_index,
                    sentence_order_index=position,
                    language=language,
                )
            )
            offset += len(text) + 1
        offset += 1
        result.append(AnnotatedSentence(index=sentence_index, tokens=tokens))
    return result


@pytest.fixture
def tag_sentences() -> Callable[..., List[AnnotatedSentence]]:
    return _tag_sentences


@pytest.fixture
def store(tmp_path: Path) -> GraphStore:
    return GraphStore(tmp_path / "graph.sqlite")


@pytest.fixture
def big_data_store(store: GraphStore) -> GraphStore:
    store.add_document(
        "doc-1",
        _tag_sentences(
            "The/DT big/JJ data/NNS system/NN improves/VBZ",
            "big/JJ data/NNS analytics/NNS work/VBP",
        ),
    )
    return store
