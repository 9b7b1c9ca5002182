"""CLI for loading a tagged document and extracting its keywords."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from keygraph.config import KeywordFilterConfig, Settings
from keygraph.graph_store import GraphStore
from keygraph.pipeline import TextRankPipeline
from keygraph.tokens import DEFAULT_LANGUAGE, sentences_from_payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract keywords from a part-of-speech tagged document")
    parser.add_argument(
        "path",
        help="JSON file with {'id': ..., 'sentences': [{'tokens': [{text, pos, start, end}]}]}",
    )
    parser.add_argument("--db", dest="db_path", help="Graph database path (default: GRAPH_DB_PATH)")
    parser.add_argument("--iterations", type=int, default=None, help="Ranking iterations")
    parser.add_argument("--damping", type=float, default=None, help="Ranking damping factor")
    parser.add_argument(
        "--stopwords",
        default=None,
        help="Comma-separated stopwords; supplying a list enables filtering",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    source = Path(args.path)
    if not source.is_file():  # pragma: no cover - CLI validation
        parser.error(f"File '{args.path}' does not exist")
        return 1
    try:
        document = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:  # pragma: no cover - CLI validation
        parser.error(f"Invalid JSON in {args.path}: {exc}")
        return 1

    document_id = str(document.get("id") or source.stem)
    settings = Settings.from_env()
    store = GraphStore(Path(args.db_path) if args.db_path else settings.resolved_graph_db_path())
    pipeline = TextRankPipeline.from_settings(settings, store=store)

    sentences = sentences_from_payload(
        document.get("sentences") or [],
        language=str(document.get("language") or DEFAULT_LANGUAGE),
    )
    store.add_document(document_id, sentences)

    if not pipeline.rebuild(document_id, settings.relation_kind, settings.weight_field):
        print(f"Failed to build co-occurrences for {document_id}", file=sys.stderr)
        return 1

    filter_config = (
        KeywordFilterConfig.from_stopwords(args.stopwords) if args.stopwords is not None else None
    )
    result = pipeline.evaluate(
        document_id,
        settings.relation_kind,
        settings.weight_field,
        args.iterations or settings.textrank_iterations,
        args.damping if args.damping is not None else settings.textrank_damping,
        filter_config=filter_config,
    )
    if not result:
        print(f"Keyword evaluation failed for {document_id}: {result.status} {result.error or ''}", file=sys.stderr)
        return 1

    for candidate in result.keywords:
        print(f"{candidate.display_value}\t{candidate.occurrence_count}\t{candidate.key}")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
