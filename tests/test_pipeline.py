from __future__ import annotations

import pytest

from keygraph.aggregation import TrailingPhrasePolicy
from keygraph.config import KeywordFilterConfig, Settings
from keygraph.graph_store import GraphStore
from keygraph.observability import MetricsRecorder
from keygraph.pipeline import TextRankPipeline
from keygraph.ranking import CentralityRanker, NetworkXKernel


def _weights(store: GraphStore) -> dict:
    return {(edge.a, edge.b): edge.weight for edge in store.cooccurrence_edges("doc-1", "CO_OCCURRENCE")}


def test_end_to_end_keywords_for_tagged_document(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store)

    assert pipeline.rebuild("doc-1", "CO_OCCURRENCE", "weight")
    assert _weights(big_data_store)[("big_en", "data_en")] == 2
    assert _weights(big_data_store)[("data_en", "system_en")] == 1

    result = pipeline.evaluate("doc-1", "CO_OCCURRENCE", "weight", 30, 0.85)

    assert result
    assert [node.identity for node in result.ranked] == ["data_en", "big_en", "system_en", "analytics_en"]
    assert result.keyword_counts() == {
        "big data system_en": 1,
        "data_en": 1,
        "big_en": 1,
        "system_en": 1,
        "analytics_en": 1,
    }
    stored = {item.keyword_id: item.count for item in big_data_store.keyword_associations("doc-1")}
    assert stored == result.keyword_counts()
    assert big_data_store.get_keyword("big data system_en").value == "big data system"


def test_stopwords_isolate_big_data_phrase(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store, trailing_phrase=TrailingPhrasePolicy.FLUSH)
    pipeline.rebuild("doc-1")

    result = pipeline.evaluate(
        "doc-1",
        filter_config=KeywordFilterConfig.from_stopwords("system, analytics"),
    )

    assert result.keyword_counts() == {"big data_en": 2, "data_en": 1, "big_en": 1}
    assert result.aggregation.stopword_filter_enabled


def test_trailing_phrase_dropped_without_flush(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store)
    pipeline.rebuild("doc-1")

    result = pipeline.evaluate("doc-1", filter_config=KeywordFilterConfig.from_stopwords("system, analytics"))

    assert result.keyword_counts()["big data_en"] == 1


def test_default_stopwords_filter_big(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store, filter_config=KeywordFilterConfig(enabled=True))
    pipeline.rebuild("doc-1")

    result = pipeline.evaluate("doc-1")

    assert "big_en" not in result.keyword_counts()
    assert "data system_en" in result.keyword_counts()
    assert all("big" not in key.split("_")[0].split() for key in result.keyword_counts())


def test_per_call_filter_does_not_change_pipeline_default(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store)
    pipeline.rebuild("doc-1")

    pipeline.evaluate("doc-1", filter_config=KeywordFilterConfig(enabled=True))

    assert not pipeline.filter_config.enabled
    assert "big_en" in pipeline.evaluate("doc-1").keyword_counts()


def test_rebuild_does_not_accumulate_weights(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store)

    pipeline.rebuild("doc-1")
    first = _weights(big_data_store)
    pipeline.rebuild("doc-1")

    assert _weights(big_data_store) == first


def test_missing_document_is_reported(store: GraphStore) -> None:
    pipeline = TextRankPipeline(store)

    result = pipeline.evaluate("ghost")

    assert not result
    assert result.status == "missing_document"
    assert result.keywords == []


class _ExplodingKernel:
    def compute(self, graph, *, weight_field, iterations, damping):
        raise OverflowError("scores diverged")


def test_ranking_failure_persists_nothing(big_data_store: GraphStore) -> None:
    metrics = MetricsRecorder(enabled=True, prometheus_enabled=True)
    pipeline = TextRankPipeline(
        big_data_store,
        ranker=CentralityRanker(big_data_store, _ExplodingKernel()),
        metrics=metrics,
    )
    pipeline.rebuild("doc-1")

    result = pipeline.evaluate("doc-1")

    assert result.status == "ranking_failed"
    assert "scores diverged" in result.error
    assert big_data_store.keyword_associations("doc-1") == []
    assert b'keygraph_pipeline_evaluations_total{status="ranking_failed"} 1.0' in metrics.render_prometheus()


def test_evaluate_rejects_invalid_parameters(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store)

    with pytest.raises(ValueError):
        pipeline.evaluate("doc-1", iterations=0)
    with pytest.raises(ValueError):
        pipeline.evaluate("doc-1", damping=-0.1)


def test_from_settings_wires_kernel_and_policies(big_data_store: GraphStore) -> None:
    settings = Settings(
        textrank_kernel="networkx",
        textrank_iterations=100,
        keyword_association_policy="upsert",
        keyword_flush_trailing_phrase=True,
        keyword_stopwords="system,analytics",
    )
    pipeline = TextRankPipeline.from_settings(settings, store=big_data_store)
    pipeline.rebuild("doc-1")

    pipeline.evaluate("doc-1", iterations=settings.textrank_iterations)
    result = pipeline.evaluate("doc-1", iterations=settings.textrank_iterations)

    assert result.keyword_counts()["big data_en"] == 2
    associations = big_data_store.keyword_associations("doc-1")
    assert len(associations) == 3
    assert {item.keyword_id for item in associations} == {"big data_en", "big_en", "data_en"}


def test_networkx_kernel_pipeline_matches_power_order(big_data_store: GraphStore) -> None:
    pipeline = TextRankPipeline(big_data_store, ranker=CentralityRanker(big_data_store, NetworkXKernel()))
    pipeline.rebuild("doc-1")

    result = pipeline.evaluate("doc-1", iterations=100)

    assert result.ok
    assert [node.identity for node in result.ranked[:2]] == ["data_en", "big_en"]


def test_capitalized_stopword_is_filtered(store: GraphStore, tag_sentences) -> None:
    store.add_document("doc-1", tag_sentences("New/JJ housing/NN policy/NN", "new/JJ housing/NN"))
    pipeline = TextRankPipeline(store)
    pipeline.rebuild("doc-1")

    assert _weights(store)[("housing_en", "new_en")] == 2

    result = pipeline.evaluate("doc-1", filter_config=KeywordFilterConfig.from_stopwords("new"))

    assert result.keyword_counts() == {"housing policy_en": 1, "housing_en": 1, "policy_en": 1}
    assert store.get_keyword("new_en") is None
