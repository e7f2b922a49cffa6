"""
Path highlight engine.

Computes the set of nodes on any directed path through a selected node.
The upstream and downstream walks are independent.  Selecting a
service lights up its portfolio above and its workloads below, but the
downstream walk never restarts from that portfolio, so sibling services of
the same portfolio stay dark.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable

from aperture.models.graph import GraphEdge


def connected_path(node_id: str, edges: Iterable[GraphEdge]) -> set[str]:
    """Return *node_id* plus all of its ancestors and descendants.

    Args:
        node_id: The selected node.
        edges: Directed graph edges.

    Returns:
        The union of the upstream walk, the downstream walk and *node_id*.
        An unknown *node_id* yields just ``{node_id}``.
    """
    sources_by_target: dict[str, list[str]] = {}
    targets_by_source: dict[str, list[str]] = {}
    for edge in edges:
        sources_by_target.setdefault(edge.target, []).append(edge.source)
        targets_by_source.setdefault(edge.source, []).append(edge.target)

    upstream = _walk(node_id, sources_by_target)
    downstream = _walk(node_id, targets_by_source)
    return upstream | downstream | {node_id}


def _walk(start: str, neighbours: dict[str, list[str]]) -> set[str]:
    """Breadth-first walk over *neighbours* with its own visited set."""
    visited: set[str] = {start}
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        for nxt in neighbours.get(current, ()):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return visited
