"""Exception types shared across the keyword graph pipeline."""

from __future__ import annotations


class GraphStoreError(RuntimeError):
    """Raised when a read or write against the graph store fails."""


class DocumentNotFoundError(LookupError):
    """Raised when the annotated document for an operation does not exist."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document '{document_id}' not found")
        self.document_id = document_id


class RankingError(RuntimeError):
    """Raised when centrality scores cannot be computed for a document."""


__all__ = [
    "DocumentNotFoundError",
    "GraphStoreError",
    "RankingError",
]
