"""
Pydantic v2 models for the reconciliation graph.

Nodes form a closed tagged union discriminated by ``type``.  The four CMDB
kinds (portfolio, service, component, workload) are produced by the graph
builder; ``lane`` nodes are synthetic backgrounds added by the layout
engine.  Renderers consume :class:`GraphData` as-is.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

NodeType = Literal["portfolio", "service", "component", "workload"]
"""The four CMDB node kinds, in lane order."""

EdgeKind = Literal[
    "portfolio_service",
    "service_component",
    "component_workload",
    "service_workload",
]


def node_id(node_type: str, name: str) -> str:
    """Return the canonical node id, e.g. ``service:Billing``."""
    return f"{node_type}:{name}"


class Position(BaseModel):
    """Top-left corner of a node in layout coordinates."""

    x: float = 0.0
    y: float = 0.0


class _NodeBase(BaseModel):
    id: str
    label: str
    position: Position = Field(default_factory=Position)


class PortfolioNode(_NodeBase):
    """A portfolio.  Counts are derived from the records of the current build.

    Attributes:
        product_count: Distinct services across records in this portfolio.
        workload_count: Distinct hostnames across records in this portfolio.
    """

    type: Literal["portfolio"] = "portfolio"
    name: str
    product_count: int = 0
    workload_count: int = 0


class ServiceNode(_NodeBase):
    """A business service (a.k.a. product).  Belongs to exactly one portfolio."""

    type: Literal["service"] = "service"
    name: str
    portfolio: str = ""
    workload_count: int = 0
    full_name: Optional[str] = None
    description: Optional[str] = None
    criticality: Optional[str] = None
    environment: Optional[str] = None
    category: Optional[str] = None
    infrastructure: Optional[str] = None


class ComponentNode(_NodeBase):
    """An application component hosted on a workload.

    Attributes:
        class_name: CMDB class (``cmdb_ci_app_server_tomcat``, ...).
        component_type: Human label derived from ``class_name``.
        host_workload: Hostname of the first workload seen hosting it.
    """

    type: Literal["component"] = "component"
    name: str
    class_name: str = ""
    component_type: str = ""
    short_description: Optional[str] = None
    host_workload: str = ""


class EnvMismatch(BaseModel):
    """A service whose normalised environment differs from its workload's."""

    service: str
    service_env: str
    normalized: str


class WorkloadNode(_NodeBase):
    """A host.  ``is_multi_use`` mirrors the record it was built from."""

    type: Literal["workload"] = "workload"
    hostname: str
    ip: Optional[str] = None
    os: Optional[str] = None
    fqdn: Optional[str] = None
    environment: Optional[str] = None
    class_type: Optional[str] = None
    virtual: Optional[bool] = None
    short_description: Optional[str] = None
    services: list[str] = Field(default_factory=list)
    portfolios: list[str] = Field(default_factory=list)
    is_multi_use: bool = False
    is_focused: bool = False
    env_mismatches: Optional[list[EnvMismatch]] = None
    components: Optional[list[str]] = None


class LaneNode(_NodeBase):
    """Non-interactive lane background emitted by the layout engine."""

    type: Literal["lane"] = "lane"
    color: str
    lane_width: float
    lane_height: float


GraphNode = Annotated[
    Union[PortfolioNode, ServiceNode, ComponentNode, WorkloadNode, LaneNode],
    Field(discriminator="type"),
]


class GraphEdge(BaseModel):
    """A directed edge, unique per ``(source, target)``.

    Attributes:
        kind: Semantic relationship between the endpoint types.
        emphasized: ``True`` for a direct service -> workload edge into a
            multi-use workload; renderers draw it heavier.
    """

    id: str
    source: str
    target: str
    kind: EdgeKind
    emphasized: bool = False


class GraphData(BaseModel):
    """Complete node/edge payload."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
