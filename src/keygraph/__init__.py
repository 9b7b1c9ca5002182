"""Keyword and key phrase extraction over tag co-occurrence graphs."""

from __future__ import annotations

from .config import KeywordFilterConfig, Settings
from .graph_store import GraphStore
from .pipeline import EvaluationResult, TextRankPipeline

__all__ = [
    "Settings",
    "KeywordFilterConfig",
    "GraphStore",
    "TextRankPipeline",
    "EvaluationResult",
    "create_app",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'keygraph' has no attribute {name}")
