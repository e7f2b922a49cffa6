"""
Lane layout engine.

Positions graph nodes in four fixed columns ("lanes"), one per node type,
left to right in dependency order: portfolio, service, component, workload.
The lane order is fixed; it is never inferred from the edges.

Within a lane, nodes are ordered by *parent affinity*: each node sorts by
the smallest position any of its upstream neighbours already occupies.
Lanes are processed left to right and every lane's ordering is added to the
lookup table used by the lanes after it, so a component's affinity still
reflects the portfolio order two lanes back.  This is a one-pass crossing
reduction heuristic, not an optimal ordering.

The layout is deterministic: identical ``(nodes, edges)`` input, including
order, always produces identical positions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from aperture.models.graph import (
    GraphData,
    GraphEdge,
    GraphNode,
    LaneNode,
    Position,
    node_id,
)

# -- Geometry -----------------------------------------------------------------

LANE_PADDING: float = 40
LANE_GAP: float = 30
HEADER_HEIGHT: float = 32
NODE_V_GAP: float = 30
EMPTY_LANE_EXTRA: float = 60

LANE_ORDER: tuple[str, ...] = ("portfolio", "service", "component", "workload")


@dataclass(frozen=True)
class LaneStyle:
    """Static per-lane rendering hints."""

    label: str
    color: str
    node_width: float
    node_height: float

    @property
    def width(self) -> float:
        return self.node_width + LANE_PADDING * 2


LANE_STYLES: dict[str, LaneStyle] = {
    "portfolio": LaneStyle("Portfolios", "#3b82f6", 210, 80),
    "service": LaneStyle("Products", "#38bdf8", 230, 110),
    "component": LaneStyle("Components", "#8b5cf6", 200, 70),
    "workload": LaneStyle("Workloads", "#94a3b8", 290, 100),
}


def sort_by_parent_affinity(
    lane_nodes: Sequence[GraphNode],
    parents_by_target: dict[str, list[str]],
    parent_order: dict[str, int],
) -> list[GraphNode]:
    """Order *lane_nodes* by the minimum position of their upstream neighbours.

    Nodes without any resolvable parent sort last.  The sort is stable, so
    ties keep their input order.  With an empty *parent_order* (the first
    lane) the input order is returned unchanged.
    """
    if not lane_nodes or not parent_order:
        return list(lane_nodes)

    def affinity(node: GraphNode) -> float:
        positions = [
            parent_order[parent]
            for parent in parents_by_target.get(node.id, ())
            if parent in parent_order
        ]
        return min(positions) if positions else math.inf

    return sorted(lane_nodes, key=affinity)


def layout_graph(
    nodes: Sequence[GraphNode],
    edges: Sequence[GraphEdge],
) -> GraphData:
    """Assign positions to *nodes* and add one background node per lane.

    Args:
        nodes: Nodes from the graph builder.  Nodes of an unknown type (for
            instance lane nodes from a previous layout) are dropped.
        edges: Edges from the graph builder; returned unchanged.

    Returns:
        A :class:`GraphData` whose nodes are the four lane backgrounds
        followed by the positioned CMDB nodes, lane by lane.
    """
    # Step 1: bucket nodes into lanes.
    lanes: dict[str, list[GraphNode]] = {lane: [] for lane in LANE_ORDER}
    for node in nodes:
        if node.type in lanes:
            lanes[node.type].append(node)

    # Step 2: parent affinity, left to right.
    parents_by_target: dict[str, list[str]] = {}
    for edge in edges:
        parents_by_target.setdefault(edge.target, []).append(edge.source)

    parent_order: dict[str, int] = {}
    for lane in LANE_ORDER:
        ordered = sort_by_parent_affinity(lanes[lane], parents_by_target, parent_order)
        lanes[lane] = ordered
        parent_order.update({node.id: i for i, node in enumerate(ordered)})

    # Step 3: fixed lane x offsets.
    lane_x: dict[str, float] = {}
    current_x: float = 0
    for lane in LANE_ORDER:
        lane_x[lane] = current_x
        current_x += LANE_STYLES[lane].width + LANE_GAP

    # Step 4: stack nodes vertically within each lane.
    positioned: list[GraphNode] = []
    content_heights: dict[str, float] = {}
    for lane in LANE_ORDER:
        style = LANE_STYLES[lane]
        x = lane_x[lane] + (style.width - style.node_width) / 2
        y = HEADER_HEIGHT + LANE_PADDING
        for node in lanes[lane]:
            positioned.append(node.model_copy(update={"position": Position(x=x, y=y)}))
            y += style.node_height + NODE_V_GAP

        if lanes[lane]:
            content_heights[lane] = y - NODE_V_GAP + LANE_PADDING
        else:
            content_heights[lane] = HEADER_HEIGHT + LANE_PADDING * 2 + EMPTY_LANE_EXTRA

    # Step 5: lane backgrounds sized to the tallest lane.
    max_height = max(content_heights.values())
    backgrounds: list[GraphNode] = [
        LaneNode(
            id=node_id("lane", lane),
            label=LANE_STYLES[lane].label,
            position=Position(x=lane_x[lane], y=0),
            color=LANE_STYLES[lane].color,
            lane_width=LANE_STYLES[lane].width,
            lane_height=max_height,
        )
        for lane in LANE_ORDER
    ]

    return GraphData(nodes=backgrounds + positioned, edges=list(edges))
