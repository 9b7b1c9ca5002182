from __future__ import annotations

import json
from pathlib import Path

from keygraph.graph_store import GraphStore
from keygraph.scripts import extract_keywords


def _write_document(path: Path) -> None:
    tokens = [
        ("The", "DT", 0), ("big", "JJ", 4), ("data", "NNS", 8), ("system", "NN", 13), ("improves", "VBZ", 20),
    ]
    second = [("big", "JJ", 30), ("data", "NNS", 34), ("analytics", "NNS", 39), ("work", "VBP", 49)]
    document = {
        "id": "report-7",
        "sentences": [
            {"tokens": [{"text": text, "pos": pos, "start": start, "end": start + len(text)} for text, pos, start in part]}
            for part in (tokens, second)
        ],
    }
    path.write_text(json.dumps(document), encoding="utf-8")


def test_cli_prints_keywords_and_persists(tmp_path: Path, capsys) -> None:
    source = tmp_path / "report.json"
    db_path = tmp_path / "graph.sqlite"
    _write_document(source)

    exit_code = extract_keywords.main([str(source), "--db", str(db_path), "--stopwords", "system,analytics"])

    assert exit_code == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert "big data\t1\tbig data_en" in lines
    store = GraphStore(db_path)
    assert {item.keyword_id for item in store.keyword_associations("report-7")} == {
        "big data_en",
        "data_en",
        "big_en",
    }


def test_cli_rebuilds_edges_between_runs(tmp_path: Path) -> None:
    source = tmp_path / "report.json"
    db_path = tmp_path / "graph.sqlite"
    _write_document(source)

    assert extract_keywords.main([str(source), "--db", str(db_path)]) == 0
    assert extract_keywords.main([str(source), "--db", str(db_path)]) == 0

    edges = GraphStore(db_path).cooccurrence_edges("report-7", "CO_OCCURRENCE")
    assert {(edge.a, edge.b): edge.weight for edge in edges}[("big_en", "data_en")] == 2


def test_cli_reload_with_shorter_document_drops_stale_tokens(tmp_path: Path) -> None:
    source = tmp_path / "report.json"
    db_path = tmp_path / "graph.sqlite"
    _write_document(source)
    assert extract_keywords.main([str(source), "--db", str(db_path)]) == 0

    shorter = {
        "id": "report-7",
        "sentences": [
            {
                "tokens": [
                    {"text": "climate", "pos": "NN", "start": 0, "end": 7},
                    {"text": "change", "pos": "NN", "start": 8, "end": 14},
                ]
            }
        ],
    }
    source.write_text(json.dumps(shorter), encoding="utf-8")
    assert extract_keywords.main([str(source), "--db", str(db_path)]) == 0

    edges = GraphStore(db_path).cooccurrence_edges("report-7", "CO_OCCURRENCE")
    assert {(edge.a, edge.b): edge.weight for edge in edges} == {("change_en", "climate_en"): 1}
