"""
Task Graph — Node and edge maps for one search run.
Keeps a networkx mirror of the parent → child structure for traversal,
tree validation and export.
"""

import uuid
import json
from typing import List, Dict, Optional
from loguru import logger
import networkx as nx

from deepsearch.core.search_graph.models import (
    Node, Edge, NodeKind, QuestionAnswer, ROOT_NODE_ID,
)


class TaskGraph:
    """
    Directed tree of questions rooted at the reserved root id.

    Every non-root node is added together with exactly one incoming edge,
    so the edge set is a tree by construction.
    """

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, List[Edge]] = {}
        self.graph = nx.DiGraph()
        self._parents: Dict[str, str] = {}

    # ═══════════════════════════════════════════════════
    # Construction
    # ═══════════════════════════════════════════════════

    def add_root(self, content: str) -> Node:
        node = Node(id=ROOT_NODE_ID, kind=NodeKind.ROOT, content=content)
        self.nodes[node.id] = node
        self.edges[node.id] = []
        self.graph.add_node(node.id)
        return node

    def add_node(self, content: str, parent_id: str, queries=None) -> Node:
        """Register a node and the edge from its parent."""
        if parent_id not in self.nodes:
            raise KeyError(f"Unknown parent node: {parent_id}")

        node = Node(id=uuid.uuid4().hex, content=content, queries=list(queries or []))
        self.nodes[node.id] = node
        self.edges[node.id] = []
        self.graph.add_node(node.id)
        self._add_edge(parent_id, node.id)
        return node

    def _add_edge(self, source_id: str, target_id: str) -> Edge:
        edge = Edge(id=uuid.uuid4().hex, target=target_id)
        self.edges.setdefault(source_id, []).append(edge)
        self.graph.add_edge(source_id, target_id, id=edge.id)
        self._parents[target_id] = source_id
        return edge

    # ═══════════════════════════════════════════════════
    # Traversal
    # ═══════════════════════════════════════════════════

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def get_children(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.edges.get(node_id, [])]

    def get_parent(self, node_id: str) -> Optional[str]:
        return self._parents.get(node_id)

    def get_descendants(self, node_id: str = ROOT_NODE_ID) -> List[str]:
        if node_id not in self.graph:
            return []
        return list(nx.descendants(self.graph, node_id))

    def ancestor_responses(self, node_id: str) -> List[QuestionAnswer]:
        """Answered ancestors of a node, nearest parent first."""
        responses = []
        parent_id = self.get_parent(node_id)
        while parent_id is not None:
            parent = self.nodes[parent_id]
            if parent.answer:
                responses.append(QuestionAnswer(content=parent.content, answer=parent.answer))
            parent_id = self.get_parent(parent_id)
        return responses

    def is_tree(self) -> bool:
        if self.graph.number_of_nodes() == 0:
            return False
        return nx.is_arborescence(self.graph) and self.graph.in_degree(ROOT_NODE_ID) == 0

    # ═══════════════════════════════════════════════════
    # Serialization
    # ═══════════════════════════════════════════════════

    def export_graph(self) -> str:
        """Serialize the tree to JSON for persistence or rendering."""
        data = {
            "nodes": [self.nodes[nid].model_dump(mode="json", exclude={"pages"}) for nid in self.graph.nodes],
            "edges": [
                {"source": src, "target": tgt, "id": attrs.get("id")}
                for src, tgt, attrs in self.graph.edges(data=True)
            ],
        }
        return json.dumps(data, default=str)

    def get_stats(self) -> Dict:
        stats = {
            "total_nodes": self.graph.number_of_nodes(),
            "total_edges": self.graph.number_of_edges(),
            "depth": max(nx.shortest_path_length(self.graph, ROOT_NODE_ID).values(), default=0)
            if ROOT_NODE_ID in self.graph else 0,
        }
        for node in self.nodes.values():
            stats[node.state.value] = stats.get(node.state.value, 0) + 1
        logger.debug(f"[TaskGraph] Stats: {stats}")
        return stats
