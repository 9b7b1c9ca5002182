from __future__ import annotations

import logging

import pytest

from keygraph.cooccurrence import CooccurrenceGraphBuilder
from keygraph.errors import GraphStoreError
from keygraph.graph_store import GraphStore


def _weights(store: GraphStore, document_id: str = "doc-1", relation_kind: str = "CO_OCCURRENCE") -> dict:
    return {(edge.a, edge.b): edge.weight for edge in store.cooccurrence_edges(document_id, relation_kind)}


def test_build_links_adjacent_nouns_and_adjectives(big_data_store: GraphStore) -> None:
    builder = CooccurrenceGraphBuilder(big_data_store)

    assert builder.build("doc-1", "CO_OCCURRENCE", "weight")

    assert _weights(big_data_store) == {
        ("big_en", "data_en"): 2,
        ("data_en", "system_en"): 1,
        ("analytics_en", "data_en"): 1,
    }


def test_build_skips_filtered_tokens_between_candidates(store: GraphStore, tag_sentences) -> None:
    store.add_document("doc-1", tag_sentences("climate/NN is/VBZ an/DT issue/NN", "of/IN it/PRP"))
    builder = CooccurrenceGraphBuilder(store)

    assert builder.build("doc-1")

    assert _weights(store) == {("climate_en", "issue_en"): 1}


def test_single_token_sentences_produce_no_edges(store: GraphStore, tag_sentences) -> None:
    store.add_document("doc-1", tag_sentences("climate/NN", "issue/NN"))

    assert CooccurrenceGraphBuilder(store).build("doc-1")
    assert _weights(store) == {}


def test_building_twice_doubles_weights(big_data_store: GraphStore) -> None:
    builder = CooccurrenceGraphBuilder(big_data_store)

    assert builder.build("doc-1")
    assert builder.build("doc-1")

    assert _weights(big_data_store)[("big_en", "data_en")] == 4
    assert _weights(big_data_store)[("data_en", "system_en")] == 2


def test_clear_then_build_is_repeatable(big_data_store: GraphStore) -> None:
    builder = CooccurrenceGraphBuilder(big_data_store)
    builder.build("doc-1")
    first = _weights(big_data_store)

    assert builder.clear("doc-1", "CO_OCCURRENCE")
    assert _weights(big_data_store) == {}
    assert builder.build("doc-1")

    assert _weights(big_data_store) == first


def test_clear_without_edges_succeeds(store: GraphStore) -> None:
    assert CooccurrenceGraphBuilder(store).clear("missing-doc", "CO_OCCURRENCE")


def test_clear_only_touches_requested_relation(big_data_store: GraphStore) -> None:
    builder = CooccurrenceGraphBuilder(big_data_store)
    builder.build("doc-1", "CO_OCCURRENCE")
    builder.build("doc-1", "NEXT_TO")

    builder.clear("doc-1", "NEXT_TO")

    assert _weights(big_data_store, relation_kind="NEXT_TO") == {}
    assert len(_weights(big_data_store)) == 3


def test_invalid_labels_raise_value_error(big_data_store: GraphStore) -> None:
    builder = CooccurrenceGraphBuilder(big_data_store)

    with pytest.raises(ValueError):
        builder.build("doc-1", "CO-OCCURRENCE", "weight")
    with pytest.raises(ValueError):
        builder.build("doc-1", "CO_OCCURRENCE", "1weight")
    with pytest.raises(ValueError):
        builder.clear("doc-1", "bad label")


class _FailingStore:
    def transaction(self, *, readonly: bool = False):
        raise GraphStoreError("database is locked")


def test_store_failure_returns_false_and_logs(caplog) -> None:
    builder = CooccurrenceGraphBuilder(_FailingStore())  # type: ignore[arg-type]

    with caplog.at_level(logging.ERROR, logger="keygraph.cooccurrence"):
        assert builder.build("doc-1") is False
        assert builder.clear("doc-1") is False

    messages = [record.getMessage() for record in caplog.records]
    assert any("cooccurrence.build.failed" in message for message in messages)
    assert any("cooccurrence.clear.failed" in message for message in messages)
