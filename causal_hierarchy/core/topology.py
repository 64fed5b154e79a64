"""
Hierarchy Topology
==================

Structural view of a hierarchy run: a directed graph with an edge from
every composite to each of its two members.

ALLOWED:
- Lineage queries (children, leaf members, roots)
- Structural metrics (depth, counts, acyclicity)

FORBIDDEN:
- Re-scoring or re-ranking nodes; mass and strength live on the nodes
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import networkx as nx

from ..contracts.nodes import CausalLink, CompositeLink


@dataclass(frozen=True)
class HierarchyMetrics:
    """Immutable structural metrics for a hierarchy graph."""
    node_count: int
    edge_count: int
    root_count: int
    leaf_count: int
    max_depth: int
    is_dag: bool


class HierarchyTopology:
    """
    Wraps NetworkX for lineage queries over composite -> member edges.

    Nodes from every round can be added; a node id seen twice (an unpaired
    pass-through) keeps its latest attributes.
    """

    def __init__(self):
        self._graph = nx.DiGraph()

    @classmethod
    def from_nodes(cls, nodes: Iterable[CausalLink]) -> 'HierarchyTopology':
        topology = cls()
        topology.add_nodes(nodes)
        return topology

    def add_nodes(self, nodes: Iterable[CausalLink]) -> None:
        for node in nodes:
            self._graph.add_node(
                node.id, level=node.level, kind=node.node_kind.value, node=node
            )
            if isinstance(node, CompositeLink):
                for position, member in enumerate(node.members):
                    self._graph.add_edge(node.id, member, position=position)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._graph

    def node(self, node_id: str) -> Optional[CausalLink]:
        if node_id not in self._graph:
            return None
        return self._graph.nodes[node_id].get("node")

    def children(self, node_id: str) -> Tuple[str, ...]:
        """Members in left, right order."""
        if node_id not in self._graph:
            return ()
        edges = sorted(
            self._graph.out_edges(node_id, data="position"), key=lambda e: e[2]
        )
        return tuple(target for _, target, _ in edges)

    def leaf_members(self, node_id: str) -> Tuple[str, ...]:
        """Level-1 descendants ordered by transcript position."""
        if node_id not in self._graph:
            return ()
        if self._graph.out_degree(node_id) == 0:
            return (node_id,)
        leaves = [
            n for n in nx.descendants(self._graph, node_id)
            if self._graph.out_degree(n) == 0
        ]
        return tuple(sorted(leaves, key=self._position_key))

    def roots(self) -> Tuple[str, ...]:
        return tuple(sorted(
            (n for n in self._graph.nodes if self._graph.in_degree(n) == 0),
            key=self._position_key,
        ))

    def parent(self, node_id: str) -> Optional[str]:
        if node_id not in self._graph:
            return None
        parents = sorted(self._graph.predecessors(node_id))
        return parents[0] if parents else None

    def depth(self, node_id: str) -> int:
        """Edges on the longest path from node_id down to a leaf."""
        if node_id not in self._graph:
            return 0
        return self._depths().get(node_id, 0)

    def compute_metrics(self) -> HierarchyMetrics:
        graph = self._graph
        is_dag = nx.is_directed_acyclic_graph(graph)
        depths = self._depths() if is_dag else {}
        return HierarchyMetrics(
            node_count=graph.number_of_nodes(),
            edge_count=graph.number_of_edges(),
            root_count=sum(1 for n in graph.nodes if graph.in_degree(n) == 0),
            leaf_count=sum(1 for n in graph.nodes if graph.out_degree(n) == 0),
            max_depth=max(depths.values(), default=0),
            is_dag=is_dag,
        )

    def _depths(self) -> Dict[str, int]:
        depths: Dict[str, int] = {}
        for node_id in reversed(list(nx.topological_sort(self._graph))):
            below = [depths[c] + 1 for c in self._graph.successors(node_id)]
            depths[node_id] = max(below, default=0)
        return depths

    def _position_key(self, node_id: str) -> Tuple[float, str]:
        node = self._graph.nodes[node_id].get("node")
        center = node.center_index if node is not None else float("inf")
        return (center, node_id)
