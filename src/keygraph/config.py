"""Configuration helpers for the keygraph service."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Final, Iterable

import yaml
from dotenv import load_dotenv

load_dotenv()

_DEFAULT_GRAPH_DB: Final[str] = "data/keygraph.sqlite"
_DEFAULT_RELATION_KIND: Final[str] = "CO_OCCURRENCE"
_DEFAULT_WEIGHT_FIELD: Final[str] = "weight"
_DEFAULT_TEXTRANK_ITERATIONS: Final[int] = 30
_DEFAULT_TEXTRANK_DAMPING: Final[float] = 0.85
_DEFAULT_TEXTRANK_TOLERANCE: Final[float] = 1e-6
_DEFAULT_TEXTRANK_KERNEL: Final[str] = "power"
_DEFAULT_TEXTRANK_TOP_NODES: Final[int] = 10
_DEFAULT_KEYWORD_SINGLE_WORD_LIMIT: Final[int] = 8
_DEFAULT_KEYWORD_ASSOCIATION_POLICY: Final[str] = "create"
_DEFAULT_LOG_LEVEL: Final[str] = "INFO"

DEFAULT_STOPWORDS: Final[frozenset[str]] = frozenset({"new", "old", "large", "big", "small", "many", "few"})


def _env_optional_bool(name: str) -> bool | None:
    """Read an optional boolean environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    msg = f"Environment variable {name} must be a boolean value (true/false)."
    raise ValueError(msg)


def _env_optional_int(name: str) -> int | None:
    """Read an optional integer environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_optional_float(name: str) -> float | None:
    """Read an optional float environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _env_int(name: str, default: int) -> int:
    value = _env_optional_int(name)
    return default if value is None else value


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with a fallback (preserving zero)."""

    value = _env_optional_float(name)
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment variable with a fallback."""

    value = _env_optional_bool(name)
    if value is None:
        return default
    return value


def parse_stopwords(raw: str | Iterable[str] | None) -> frozenset[str]:
    """Normalize a comma-separated (or iterable) stopword list: trimmed, casefolded, no blanks."""

    if raw is None:
        return frozenset()
    items = raw.split(",") if isinstance(raw, str) else raw
    return frozenset(word for word in (str(item).strip().casefold() for item in items) if word)


@dataclass(frozen=True, slots=True)
class KeywordFilterConfig:
    """Immutable stopword settings captured for a single evaluation call."""

    stopwords: frozenset[str] = DEFAULT_STOPWORDS
    enabled: bool = False

    @classmethod
    def from_stopwords(
        cls,
        stopwords: str | Iterable[str] | None,
        *,
        enabled: bool | None = None,
    ) -> "KeywordFilterConfig":
        """Build a snapshot from a user-supplied list.

        Supplying a non-empty list enables filtering unless ``enabled`` says
        otherwise; an empty or missing list keeps the default words, disabled.
        """

        words = parse_stopwords(stopwords)
        if not words:
            return cls(stopwords=DEFAULT_STOPWORDS, enabled=bool(enabled))
        return cls(stopwords=words, enabled=True if enabled is None else enabled)

    def is_stopword(self, value: str) -> bool:
        return self.enabled and value.casefold() in self.stopwords

    def with_enabled(self, enabled: bool) -> "KeywordFilterConfig":
        return KeywordFilterConfig(stopwords=self.stopwords, enabled=enabled)


class StopwordLoadError(RuntimeError):
    """Raised when a stopword file cannot be parsed."""


def load_stopwords(path: str | Path) -> frozenset[str]:
    """Load stopwords from a YAML file; return an empty set if it is missing.

    The file holds either a list of words or a mapping with a ``stopwords`` list.
    """

    stopword_path = Path(path)
    if not stopword_path.exists():
        return frozenset()
    try:
        data = yaml.safe_load(stopword_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise StopwordLoadError(f"Unable to parse stopword file {stopword_path}") from exc
    if data is None:
        return frozenset()
    if isinstance(data, dict):
        data = data.get("stopwords") or []
    if isinstance(data, str):
        return parse_stopwords(data)
    if not isinstance(data, list):
        raise StopwordLoadError(f"Stopword file {stopword_path} must contain a list of words")
    return parse_stopwords(str(item) for item in data if item is not None)


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    graph_db_path: str = _DEFAULT_GRAPH_DB
    relation_kind: str = _DEFAULT_RELATION_KIND
    weight_field: str = _DEFAULT_WEIGHT_FIELD
    textrank_iterations: int = _DEFAULT_TEXTRANK_ITERATIONS
    textrank_damping: float = _DEFAULT_TEXTRANK_DAMPING
    textrank_tolerance: float = _DEFAULT_TEXTRANK_TOLERANCE
    textrank_kernel: str = _DEFAULT_TEXTRANK_KERNEL
    textrank_top_nodes: int = _DEFAULT_TEXTRANK_TOP_NODES
    keyword_single_word_limit: int = _DEFAULT_KEYWORD_SINGLE_WORD_LIMIT
    keyword_stopwords: str | None = None
    keyword_stopwords_path: str | None = None
    keyword_remove_stopwords: bool | None = None
    keyword_flush_trailing_phrase: bool = False
    keyword_association_policy: str = _DEFAULT_KEYWORD_ASSOCIATION_POLICY
    observability_metrics_enabled: bool = True
    observability_namespace: str = "keygraph"
    observability_prometheus_enabled: bool = False
    log_level: str = _DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings by reading environment variables."""

        metrics_enabled = _env_optional_bool("OBSERVABILITY_METRICS_ENABLED")

        return cls(
            graph_db_path=os.getenv("GRAPH_DB_PATH", _DEFAULT_GRAPH_DB),
            relation_kind=os.getenv("COOCCURRENCE_RELATION_KIND", _DEFAULT_RELATION_KIND),
            weight_field=os.getenv("COOCCURRENCE_WEIGHT_FIELD", _DEFAULT_WEIGHT_FIELD),
            textrank_iterations=max(1, _env_int("TEXTRANK_ITERATIONS", _DEFAULT_TEXTRANK_ITERATIONS)),
            textrank_damping=_env_float("TEXTRANK_DAMPING", _DEFAULT_TEXTRANK_DAMPING),
            textrank_tolerance=_env_float("TEXTRANK_TOLERANCE", _DEFAULT_TEXTRANK_TOLERANCE),
            textrank_kernel=os.getenv("TEXTRANK_KERNEL", _DEFAULT_TEXTRANK_KERNEL).strip().lower(),
            textrank_top_nodes=max(1, _env_int("TEXTRANK_TOP_NODES", _DEFAULT_TEXTRANK_TOP_NODES)),
            keyword_single_word_limit=max(
                0,
                _env_int("KEYWORD_SINGLE_WORD_LIMIT", _DEFAULT_KEYWORD_SINGLE_WORD_LIMIT),
            ),
            keyword_stopwords=os.getenv("KEYWORD_STOPWORDS"),
            keyword_stopwords_path=os.getenv("KEYWORD_STOPWORDS_PATH"),
            keyword_remove_stopwords=_env_optional_bool("KEYWORD_REMOVE_STOPWORDS"),
            keyword_flush_trailing_phrase=_env_bool("KEYWORD_FLUSH_TRAILING_PHRASE", False),
            keyword_association_policy=os.getenv(
                "KEYWORD_ASSOCIATION_POLICY", _DEFAULT_KEYWORD_ASSOCIATION_POLICY
            ).strip().lower(),
            observability_metrics_enabled=metrics_enabled if metrics_enabled is not None else True,
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", "keygraph"),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
            log_level=os.getenv("KEYGRAPH_LOG_LEVEL", _DEFAULT_LOG_LEVEL).strip().upper(),
        )

    def filter_config(self) -> KeywordFilterConfig:
        """Return the stopword snapshot described by these settings.

        Words from ``keyword_stopwords`` and the YAML file at
        ``keyword_stopwords_path`` are combined; ``keyword_remove_stopwords``
        overrides the implicit enabling.
        """

        words = set(parse_stopwords(self.keyword_stopwords))
        if self.keyword_stopwords_path:
            words.update(load_stopwords(self.keyword_stopwords_path))
        return KeywordFilterConfig.from_stopwords(words, enabled=self.keyword_remove_stopwords)

    def resolved_graph_db_path(self) -> Path:
        return Path(self.graph_db_path).expanduser().resolve()

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Instantiate the configured metrics recorder."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )


__all__ = [
    "DEFAULT_STOPWORDS",
    "KeywordFilterConfig",
    "Settings",
    "StopwordLoadError",
    "load_stopwords",
    "parse_stopwords",
]
