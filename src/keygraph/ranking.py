"""Centrality ranking over a document's co-occurrence graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Protocol, Sequence

import networkx as nx

from .errors import GraphStoreError, RankingError
from .graph_store import CooccurrenceEdge, GraphStore, validate_label
from .observability import MetricsRecorder

logger = logging.getLogger(__name__)

DEFAULT_TOP_NODES = 10
DEFAULT_TOLERANCE = 1e-6


@dataclass(frozen=True, slots=True)
class RankedNode:
    """A tag with its converged centrality score and weighted degree."""

    identity: str
    score: float
    aux_weight: float


@dataclass(frozen=True, slots=True)
class SpanMatch:
    """An occurrence of a ranked tag in the source text."""

    identity: str
    start_offset: int
    end_offset: int
    score: float


class CentralityKernel(Protocol):
    """Computes per-node scores for a weighted undirected graph."""

    def compute(
        self,
        graph: nx.Graph,
        *,
        weight_field: str,
        iterations: int,
        damping: float,
    ) -> Dict[str, float]:
        ...


def build_weighted_view(edges: Iterable[CooccurrenceEdge], weight_field: str) -> nx.Graph:
    """Return an undirected graph whose node order follows edge discovery order."""

    graph = nx.Graph()
    for edge in edges:
        graph.add_edge(edge.a, edge.b, **{weight_field: float(edge.weight)})
    return graph


def node_strength(graph: nx.Graph, node: str, weight_field: str) -> float:
    """Sum of incident edge weights, counting a self loop once."""

    return float(sum(data.get(weight_field, 1.0) for data in graph.adj[node].values()))


class PowerIterationKernel:
    """Weighted TextRank computed in process.

    ``S(i) = (1 - d) + d * sum_j(w_ji / W_j * S(j))`` starting from 1.0 for every
    node, repeated until the largest change drops below ``tolerance`` or
    ``iterations`` rounds have run.
    """

    def __init__(self, *, tolerance: float = DEFAULT_TOLERANCE) -> None:
        self._tolerance = tolerance

    def compute(
        self,
        graph: nx.Graph,
        *,
        weight_field: str,
        iterations: int,
        damping: float,
    ) -> Dict[str, float]:
        nodes = list(graph.nodes)
        if not nodes:
            return {}
        strength = {node: node_strength(graph, node, weight_field) for node in nodes}
        scores = {node: 1.0 for node in nodes}
        for round_index in range(iterations):
            updated: Dict[str, float] = {}
            for node in nodes:
                rank_sum = 0.0
                for neighbour, data in graph.adj[node].items():
                    if strength[neighbour] > 0:
                        rank_sum += data.get(weight_field, 1.0) / strength[neighbour] * scores[neighbour]
                updated[node] = (1.0 - damping) + damping * rank_sum
            delta = max(abs(updated[node] - scores[node]) for node in nodes)
            scores = updated
            if delta < self._tolerance:
                logger.debug("ranking.power.converged rounds=%s delta=%s", round_index + 1, delta)
                break
        return scores


class NetworkXKernel:
    """Delegates to :func:`networkx.pagerank` (scores sum to one)."""

    def __init__(self, *, tolerance: float = DEFAULT_TOLERANCE) -> None:
        self._tolerance = tolerance

    def compute(
        self,
        graph: nx.Graph,
        *,
        weight_field: str,
        iterations: int,
        damping: float,
    ) -> Dict[str, float]:
        if graph.number_of_nodes() == 0:
            return {}
        try:
            return dict(
                nx.pagerank(
                    graph,
                    alpha=damping,
                    max_iter=iterations,
                    tol=self._tolerance,
                    weight=weight_field,
                )
            )
        except nx.PowerIterationFailedConvergence as exc:
            raise RankingError(f"PageRank did not converge within {iterations} iterations") from exc


def build_kernel(name: str, *, tolerance: float = DEFAULT_TOLERANCE) -> CentralityKernel:
    normalized = (name or "power").strip().lower()
    if normalized == "power":
        return PowerIterationKernel(tolerance=tolerance)
    if normalized == "networkx":
        return NetworkXKernel(tolerance=tolerance)
    raise ValueError(f"Unknown centrality kernel '{name}' (expected 'power' or 'networkx')")


class CentralityRanker:
    """Rank the tags of one document and recover their text spans."""

    def __init__(
        self,
        store: GraphStore,
        kernel: CentralityKernel | None = None,
        *,
        top_nodes: int = DEFAULT_TOP_NODES,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._store = store
        self._kernel = kernel or PowerIterationKernel()
        self._top_nodes = max(1, top_nodes)
        self._metrics = metrics

    def rank(
        self,
        document_id: str,
        relation_kind: str,
        weight_field: str,
        iterations: int,
        damping: float,
    ) -> List[RankedNode]:
        """Return the top nodes by score, ties kept in discovery order.

        Raises :class:`RankingError` when the edges cannot be read or the
        kernel fails; no partial ranking is returned.
        """

        validate_label(relation_kind, kind="relation kind")
        validate_label(weight_field, kind="weight field")
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        if not 0.0 <= damping <= 1.0:
            raise ValueError("damping factor must be between 0 and 1")

        try:
            with self._store.transaction(readonly=True) as session:
                edges = session.cooccurrence_edges(document_id, relation_kind, weight_field)
        except GraphStoreError as exc:
            logger.error("ranking.edges.failed doc_id=%s relation=%s error=%s", document_id, relation_kind, exc)
            raise RankingError(f"Unable to read co-occurrence edges for '{document_id}'") from exc

        graph = build_weighted_view(edges, weight_field)
        try:
            if self._metrics:
                with self._metrics.track_timing("ranking.duration", relation_kind=relation_kind):
                    scores = self._compute(graph, weight_field, iterations, damping)
            else:
                scores = self._compute(graph, weight_field, iterations, damping)
        except RankingError as exc:
            logger.error("ranking.kernel.failed doc_id=%s error=%s", document_id, exc)
            raise

        discovery = {node: index for index, node in enumerate(graph.nodes)}
        ordered = sorted(discovery, key=lambda node: (-scores.get(node, 0.0), discovery[node]))
        ranked = [
            RankedNode(
                identity=node,
                score=float(scores.get(node, 0.0)),
                aux_weight=node_strength(graph, node, weight_field),
            )
            for node in ordered[: self._top_nodes]
        ]
        logger.info(
            "ranking.completed doc_id=%s nodes=%s edges=%s top=%s",
            document_id,
            graph.number_of_nodes(),
            graph.number_of_edges(),
            len(ranked),
        )
        return ranked

    def span_matches(self, document_id: str, ranked: Sequence[RankedNode]) -> List[SpanMatch]:
        """Return every occurrence of the ranked tags in the document, by start offset."""

        if not ranked:
            return []
        scores = {node.identity: node.score for node in ranked}
        try:
            with self._store.transaction(readonly=True) as session:
                occurrences = session.tag_occurrences(document_id, scores.keys())
        except GraphStoreError as exc:
            logger.error("ranking.spans.failed doc_id=%s error=%s", document_id, exc)
            raise RankingError(f"Unable to read tag occurrences for '{document_id}'") from exc
        return [
            SpanMatch(
                identity=occurrence.tag_id,
                start_offset=occurrence.start_offset,
                end_offset=occurrence.end_offset,
                score=scores[occurrence.tag_id],
            )
            for occurrence in occurrences
        ]

    def _compute(self, graph: nx.Graph, weight_field: str, iterations: int, damping: float) -> Dict[str, float]:
        try:
            return self._kernel.compute(
                graph,
                weight_field=weight_field,
                iterations=iterations,
                damping=damping,
            )
        except RankingError:
            raise
        except (ArithmeticError, ValueError, nx.NetworkXException) as exc:
            raise RankingError(f"Centrality kernel failed: {exc}") from exc


__all__ = [
    "CentralityKernel",
    "CentralityRanker",
    "DEFAULT_TOP_NODES",
    "NetworkXKernel",
    "PowerIterationKernel",
    "RankedNode",
    "SpanMatch",
    "build_kernel",
    "build_weighted_view",
    "node_strength",
]
