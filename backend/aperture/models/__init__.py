"""
Aperture data models package.

Re-exports the record and graph models so that consumers can import directly
from ``aperture.models``::

    from aperture.models import WorkloadRecord, GraphData, WorkloadNode
"""

from aperture.models.records import AppComponent, ServiceInfo, WorkloadRecord
from aperture.models.graph import (
    ComponentNode,
    EnvMismatch,
    GraphData,
    GraphEdge,
    GraphNode,
    LaneNode,
    PortfolioNode,
    Position,
    ServiceNode,
    WorkloadNode,
    node_id,
)

__all__: list[str] = [
    "AppComponent",
    "ServiceInfo",
    "WorkloadRecord",
    "ComponentNode",
    "EnvMismatch",
    "GraphData",
    "GraphEdge",
    "GraphNode",
    "LaneNode",
    "PortfolioNode",
    "Position",
    "ServiceNode",
    "WorkloadNode",
    "node_id",
]
