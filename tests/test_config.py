from __future__ import annotations

from pathlib import Path

import pytest

from keygraph.config import (
    DEFAULT_STOPWORDS,
    KeywordFilterConfig,
    Settings,
    StopwordLoadError,
    load_stopwords,
    parse_stopwords,
)


def test_default_filter_is_disabled_with_builtin_words() -> None:
    config = KeywordFilterConfig()

    assert config.stopwords == frozenset({"new", "old", "large", "big", "small", "many", "few"})
    assert not config.enabled
    assert not config.is_stopword("big")


def test_parse_stopwords_trims_lowercases_and_drops_blanks() -> None:
    assert parse_stopwords(" New, ,OLD ,x ") == frozenset({"new", "old", "x"})
    assert parse_stopwords(None) == frozenset()


def test_supplying_stopwords_enables_filtering() -> None:
    config = KeywordFilterConfig.from_stopwords("apple, Juice")

    assert config.enabled
    assert config.is_stopword("juice")
    assert config.is_stopword("Juice")
    assert not config.is_stopword("big")


def test_empty_stopwords_keep_defaults_and_explicit_enable() -> None:
    assert KeywordFilterConfig.from_stopwords("") == KeywordFilterConfig()

    enabled = KeywordFilterConfig.from_stopwords(None, enabled=True)
    assert enabled.stopwords == DEFAULT_STOPWORDS
    assert enabled.is_stopword("new")

    disabled = KeywordFilterConfig.from_stopwords("apple", enabled=False)
    assert not disabled.is_stopword("apple")


def test_load_stopwords_reads_list_or_mapping(tmp_path: Path) -> None:
    listing = tmp_path / "list.yaml"
    listing.write_text("- Alpha\n- beta\n", encoding="utf-8")
    mapping = tmp_path / "mapping.yaml"
    mapping.write_text("stopwords:\n  - gamma\n", encoding="utf-8")

    assert load_stopwords(listing) == frozenset({"alpha", "beta"})
    assert load_stopwords(mapping) == frozenset({"gamma"})
    assert load_stopwords(tmp_path / "missing.yaml") == frozenset()


def test_load_stopwords_rejects_unexpected_structure(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("42\n", encoding="utf-8")

    with pytest.raises(StopwordLoadError):
        load_stopwords(path)


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    stopword_file = tmp_path / "stopwords.yaml"
    stopword_file.write_text("- gamma\n", encoding="utf-8")
    monkeypatch.setenv("GRAPH_DB_PATH", str(tmp_path / "graph.sqlite"))
    monkeypatch.setenv("TEXTRANK_ITERATIONS", "50")
    monkeypatch.setenv("TEXTRANK_DAMPING", "0.5")
    monkeypatch.setenv("TEXTRANK_KERNEL", "NetworkX")
    monkeypatch.setenv("KEYWORD_STOPWORDS", "alpha,beta")
    monkeypatch.setenv("KEYWORD_STOPWORDS_PATH", str(stopword_file))
    monkeypatch.setenv("KEYWORD_FLUSH_TRAILING_PHRASE", "yes")
    monkeypatch.setenv("KEYWORD_ASSOCIATION_POLICY", "UPSERT")

    settings = Settings.from_env()

    assert settings.textrank_iterations == 50
    assert settings.textrank_damping == 0.5
    assert settings.textrank_kernel == "networkx"
    assert settings.keyword_flush_trailing_phrase is True
    assert settings.keyword_association_policy == "upsert"
    assert settings.resolved_graph_db_path() == (tmp_path / "graph.sqlite").resolve()
    config = settings.filter_config()
    assert config.enabled
    assert config.stopwords == frozenset({"alpha", "beta", "gamma"})


def test_settings_rejects_invalid_boolean(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEYWORD_REMOVE_STOPWORDS", "maybe")

    with pytest.raises(ValueError):
        Settings.from_env()


def test_remove_stopwords_flag_enables_default_list() -> None:
    settings = Settings(keyword_remove_stopwords=True)

    config = settings.filter_config()

    assert config.enabled
    assert config.stopwords == DEFAULT_STOPWORDS
