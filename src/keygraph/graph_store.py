"""Graph store for annotated documents, co-occurrence edges and keywords, backed by SQLite."""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .errors import DocumentNotFoundError, GraphStoreError
from .tokens import AnnotatedSentence, TaggedToken

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BUSY_TIMEOUT_SECONDS = 30.0


def validate_label(name: str, *, kind: str) -> str:
    """Ensure relation kinds and weight fields are identifier-like labels."""

    if not isinstance(name, str) or not _LABEL_RE.match(name):
        raise ValueError(f"Invalid {kind} '{name}': expected letters, digits and underscores")
    return name


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class CooccurrenceEdge:
    """Undirected weighted edge between two tag keys, scoped to one document."""

    document_id: str
    relation_kind: str
    weight_field: str
    a: str
    b: str
    weight: int


@dataclass(frozen=True, slots=True)
class TagOccurrence:
    """One occurrence of a tag key in a document."""

    tag_id: str
    start_offset: int
    end_offset: int
    sentence_index: int


@dataclass(frozen=True, slots=True)
class KeywordRecord:
    id: str
    value: str


@dataclass(frozen=True, slots=True)
class KeywordAssociation:
    """A ``describes`` relation from a keyword to a document."""

    id: int
    keyword_id: str
    document_id: str
    count: int


class GraphSession:
    """Operations bound to one open transaction."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # Documents and tagged tokens -------------------------------------------------

    def document_exists(self, document_id: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM documents WHERE id = ?", (document_id,)).fetchone()
        return row is not None

    def add_document(self, document_id: str) -> bool:
        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO documents (id, created_at) VALUES (?, ?)",
            (document_id, _now()),
        )
        return cursor.rowcount > 0

    def add_sentences(self, document_id: str, sentences: Sequence[AnnotatedSentence]) -> int:
        """Replace the document's tagged tokens.

        Tokens from an earlier load and every co-occurrence edge built from
        them are deleted first, so the document always holds one token set.
        """

        if not self.document_exists(document_id):
            raise DocumentNotFoundError(document_id)
        rows = []
        for sentence in sentences:
            for token in sentence.tokens:
                rows.append(
                    (
                        document_id,
                        sentence.index,
                        token.sentence_order_index,
                        token.text,
                        token.identity.format(),
                        token.language,
                        json.dumps(sorted(token.pos_tags)),
                        token.start_offset,
                        token.end_offset,
                    )
                )
        self._conn.execute("DELETE FROM tag_occurrences WHERE document_id = ?", (document_id,))
        removed_edges = self._conn.execute(
            "DELETE FROM cooccurrences WHERE document_id = ?", (document_id,)
        ).rowcount
        if removed_edges:
            logger.info("graph_store.document.reloaded doc_id=%s edges_removed=%s", document_id, removed_edges)
        self._conn.executemany(
            """
            INSERT OR REPLACE INTO tag_occurrences (
                document_id, sentence_index, position, text, tag_id, language,
                pos_tags, start_offset, end_offset
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        return len(rows)

    def iter_document_sentences(self, document_id: str) -> Iterator[List[TaggedToken]]:
        """Yield the tokens of each sentence, in sentence then position order."""

        cursor = self._conn.execute(
            """
            SELECT sentence_index, position, text, language, pos_tags, start_offset, end_offset
            FROM tag_occurrences
            WHERE document_id = ?
            ORDER BY sentence_index, start_offset, position
            """,
            (document_id,),
        )
        current_index: int | None = None
        current: List[TaggedToken] = []
        for row in cursor:
            sentence_index = int(row[0])
            if current_index is not None and sentence_index != current_index:
                yield current
                current = []
            current_index = sentence_index
            current.append(
                TaggedToken(
                    text=row[2],
                    pos_tags=frozenset(json.loads(row[4] or "[]")),
                    start_offset=int(row[5]),
                    end_offset=int(row[6]),
                    sentence_index=sentence_index,
                    sentence_order_index=int(row[1]),
                    language=row[3],
                )
            )
        if current:
            yield current

    def tag_occurrences(self, document_id: str, tag_ids: Iterable[str]) -> List[TagOccurrence]:
        """Return occurrences of the given tag keys in the document, by start offset."""

        keys = list(dict.fromkeys(tag_ids))
        if not keys:
            return []
        placeholders = ", ".join("?" for _ in keys)
        rows = self._conn.execute(
            f"""
            SELECT tag_id, start_offset, end_offset, sentence_index
            FROM tag_occurrences
            WHERE document_id = ? AND tag_id IN ({placeholders})
            ORDER BY start_offset, sentence_index, position
            """,
            (document_id, *keys),
        ).fetchall()
        return [TagOccurrence(row[0], int(row[1]), int(row[2]), int(row[3])) for row in rows]

    # Co-occurrence edges --------------------------------------------------------

    def upsert_cooccurrence(
        self,
        document_id: str,
        relation_kind: str,
        weight_field: str,
        first: str,
        second: str,
    ) -> None:
        """Create the undirected edge with weight 1, or increment its weight."""

        tag_a, tag_b = sorted((first, second))
        self._conn.execute(
            """
            INSERT INTO cooccurrences (document_id, relation_kind, weight_field, tag_a, tag_b, weight)
            VALUES (?, ?, ?, ?, ?, 1)
            ON CONFLICT (document_id, relation_kind, weight_field, tag_a, tag_b)
            DO UPDATE SET weight = weight + 1
            """,
            (document_id, relation_kind, weight_field, tag_a, tag_b),
        )

    def delete_cooccurrences(self, document_id: str, relation_kind: str) -> int:
        cursor = self._conn.execute(
            "DELETE FROM cooccurrences WHERE document_id = ? AND relation_kind = ?",
            (document_id, relation_kind),
        )
        return cursor.rowcount

    def cooccurrence_edges(
        self,
        document_id: str,
        relation_kind: str,
        weight_field: str | None = None,
    ) -> List[CooccurrenceEdge]:
        """Return edges in discovery order."""

        query = (
            "SELECT document_id, relation_kind, weight_field, tag_a, tag_b, weight "
            "FROM cooccurrences WHERE document_id = ? AND relation_kind = ?"
        )
        params: list[object] = [document_id, relation_kind]
        if weight_field is not None:
            query += " AND weight_field = ?"
            params.append(weight_field)
        query += " ORDER BY rowid"
        rows = self._conn.execute(query, params).fetchall()
        return [CooccurrenceEdge(row[0], row[1], row[2], row[3], row[4], int(row[5])) for row in rows]

    # Keywords -------------------------------------------------------------------

    def get_keyword(self, keyword_id: str) -> KeywordRecord | None:
        row = self._conn.execute("SELECT id, value FROM keywords WHERE id = ?", (keyword_id,)).fetchone()
        if row is None:
            return None
        return KeywordRecord(row[0], row[1])

    def find_or_create_keyword(self, keyword_id: str, value: str) -> tuple[KeywordRecord, bool]:
        """Return the keyword with ``keyword_id``, creating it when absent."""

        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO keywords (id, value) VALUES (?, ?)",
            (keyword_id, value),
        )
        created = cursor.rowcount > 0
        record = self.get_keyword(keyword_id)
        if record is None:  # pragma: no cover - insert above guarantees the row
            raise GraphStoreError(f"Keyword '{keyword_id}' missing after insert")
        return record, created

    def create_association(self, keyword_id: str, document_id: str, count: int) -> KeywordAssociation:
        cursor = self._conn.execute(
            "INSERT INTO keyword_documents (keyword_id, document_id, count) VALUES (?, ?, ?)",
            (keyword_id, document_id, int(count)),
        )
        return KeywordAssociation(int(cursor.lastrowid), keyword_id, document_id, int(count))

    def upsert_association(self, keyword_id: str, document_id: str, count: int) -> KeywordAssociation:
        """Set the count on the oldest existing association, creating one when absent."""

        row = self._conn.execute(
            """
            SELECT id FROM keyword_documents
            WHERE keyword_id = ? AND document_id = ?
            ORDER BY id LIMIT 1
            """,
            (keyword_id, document_id),
        ).fetchone()
        if row is None:
            return self.create_association(keyword_id, document_id, count)
        self._conn.execute("UPDATE keyword_documents SET count = ? WHERE id = ?", (int(count), row[0]))
        return KeywordAssociation(int(row[0]), keyword_id, document_id, int(count))

    def keyword_associations(self, document_id: str) -> List[KeywordAssociation]:
        rows = self._conn.execute(
            """
            SELECT id, keyword_id, document_id, count FROM keyword_documents
            WHERE document_id = ?
            ORDER BY id
            """,
            (document_id,),
        ).fetchall()
        return [KeywordAssociation(int(row[0]), row[1], row[2], int(row[3])) for row in rows]

    def count_keywords(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM keywords").fetchone()[0])


class GraphStore:
    """SQLite-backed store; every transaction uses its own connection."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=_BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _ensure_schema(self) -> None:
        with self.transaction() as session:
            conn = session._conn
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tag_occurrences (
                    document_id TEXT NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
                    sentence_index INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    tag_id TEXT NOT NULL,
                    language TEXT NOT NULL,
                    pos_tags TEXT NOT NULL,
                    start_offset INTEGER NOT NULL,
                    end_offset INTEGER NOT NULL,
                    PRIMARY KEY (document_id, sentence_index, position)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_tag_occurrences_tag ON tag_occurrences (document_id, tag_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cooccurrences (
                    document_id TEXT NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
                    relation_kind TEXT NOT NULL,
                    weight_field TEXT NOT NULL,
                    tag_a TEXT NOT NULL,
                    tag_b TEXT NOT NULL,
                    weight INTEGER NOT NULL CHECK (weight >= 1),
                    UNIQUE (document_id, relation_kind, weight_field, tag_a, tag_b)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS keywords (
                    id TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS keyword_documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    keyword_id TEXT NOT NULL REFERENCES keywords (id),
                    document_id TEXT NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
                    count INTEGER NOT NULL
                )
                """
            )

    @contextmanager
    def transaction(self, *, readonly: bool = False) -> Iterator[GraphSession]:
        """Open an all-or-nothing unit of work.

        Writers take the database lock up front (``BEGIN IMMEDIATE``) so
        concurrent find-or-create calls on the same keyword serialize.
        Any ``sqlite3.Error`` rolls the transaction back and is re-raised as
        :class:`GraphStoreError`; other exceptions roll back and propagate.
        """

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise GraphStoreError(f"Unable to open graph store at {self._db_path}: {exc}") from exc
        try:
            conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            try:
                yield GraphSession(conn)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise GraphStoreError(str(exc)) from exc
        finally:
            conn.close()

    # Convenience wrappers, one transaction each ---------------------------------

    def add_document(self, document_id: str, sentences: Sequence[AnnotatedSentence] = ()) -> int:
        """Register a document and its tagged sentences; returns the token count stored."""

        with self.transaction() as session:
            session.add_document(document_id)
            stored = session.add_sentences(document_id, sentences) if sentences else 0
        logger.info("graph_store.document.added doc_id=%s tokens=%s", document_id, stored)
        return stored

    def document_exists(self, document_id: str) -> bool:
        with self.transaction(readonly=True) as session:
            return session.document_exists(document_id)

    def cooccurrence_edges(
        self,
        document_id: str,
        relation_kind: str,
        weight_field: str | None = None,
    ) -> List[CooccurrenceEdge]:
        with self.transaction(readonly=True) as session:
            return session.cooccurrence_edges(document_id, relation_kind, weight_field)

    def keyword_associations(self, document_id: str) -> List[KeywordAssociation]:
        with self.transaction(readonly=True) as session:
            return session.keyword_associations(document_id)

    def get_keyword(self, keyword_id: str) -> KeywordRecord | None:
        with self.transaction(readonly=True) as session:
            return session.get_keyword(keyword_id)

    def count_keywords(self) -> int:
        with self.transaction(readonly=True) as session:
            return session.count_keywords()


__all__ = [
    "CooccurrenceEdge",
    "GraphSession",
    "GraphStore",
    "KeywordAssociation",
    "KeywordRecord",
    "TagOccurrence",
    "validate_label",
]
