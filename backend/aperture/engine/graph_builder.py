"""
Graph builder.

Transforms the merged record set into typed nodes and directed edges.  The
graph is a pure derived view: every build starts from a fresh
:class:`DedupIndex`, so nothing from a previous filter or expansion state
can survive into the next one.

Edge direction always follows the lane order
portfolio -> service -> component -> workload.  A service connects to a
workload directly only when the workload has no known components; otherwise
the service fans out to each component hosted on that workload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from aperture.engine.environment import normalize_env
from aperture.models.graph import (
    ComponentNode,
    EdgeKind,
    EnvMismatch,
    GraphData,
    GraphEdge,
    PortfolioNode,
    ServiceNode,
    WorkloadNode,
    node_id,
)
from aperture.models.records import WorkloadRecord

# -- Component class -> human label ------------------------------------------
# Order matters: the first fragment contained in the class name wins, so the
# more specific fragments ("db_ora_listener") precede the generic ones.
_COMPONENT_TYPES: list[tuple[tuple[str, ...], str]] = [
    (("tomcat",), "Tomcat"),
    (("weblogic",), "WebLogic"),
    (("jboss",), "JBoss"),
    (("app_server",), "App Server"),
    (("nginx",), "NGINX"),
    (("apache",), "Apache"),
    (("iis", "microsoft_iis"), "IIS"),
    (("web_server",), "Web Server"),
    (("db_mssql",), "MSSQL"),
    (("db_ora_listener",), "Oracle Listener"),
    (("db_ora",), "Oracle DB"),
    (("db_postgresql",), "PostgreSQL"),
    (("db_mysql",), "MySQL"),
    (("db_mongodb",), "MongoDB"),
    (("db_syb",), "Sybase"),
    (("db_instance",), "Database"),
    (("docker",), "Docker"),
    (("lb_service",), "Load Balancer"),
    (("appl_license",), "License Server"),
    (("appl",), "Application"),
]


def component_type_label(class_name: str) -> str:
    """Map a CMDB component class to a human-readable type label.

    Unknown classes fall back to the class name without its ``cmdb_ci_``
    prefix, underscores replaced by spaces.

    >>> component_type_label("cmdb_ci_app_server_tomcat")
    'Tomcat'
    >>> component_type_label("cmdb_ci_kafka_broker")
    'kafka broker'
    """
    for fragments, label in _COMPONENT_TYPES:
        if any(fragment in class_name for fragment in fragments):
            return label
    stripped = class_name[len("cmdb_ci_"):] if class_name.startswith("cmdb_ci_") else class_name
    return stripped.replace("_", " ")


@dataclass
class DedupIndex:
    """Seen-sets for one build: node keys per kind plus edge keys.

    Workload keys are lower-cased hostnames; every other key is the plain
    name.  Edge keys are ``(source_id, target_id)`` pairs.
    """

    portfolios: set[str] = field(default_factory=set)
    services: set[str] = field(default_factory=set)
    components: set[str] = field(default_factory=set)
    workloads: set[str] = field(default_factory=set)
    edges: set[tuple[str, str]] = field(default_factory=set)


def build_graph(
    records: Sequence[WorkloadRecord],
    focused_hostname: Optional[str] = None,
    index: Optional[DedupIndex] = None,
) -> GraphData:
    """Build the node/edge graph for *records*.

    Args:
        records: The (visible) record set, in display order.
        focused_hostname: Hostname of the focused workload, compared
            case-insensitively, or ``None`` outside focused mode.
        index: Dedup sets to use.  Callers normally omit this; a fresh
            index is created per build.

    Returns:
        A :class:`GraphData` whose emission order is fully determined by the
        order of *records*.
    """
    if index is None:
        index = DedupIndex()
    focused_key = focused_hostname.lower() if focused_hostname else None

    graph = GraphData()
    # Lower-cased hostname -> id of the node emitted for it, so records that
    # differ only in hostname case attach their edges to the same node.
    workload_ids: dict[str, str] = {}

    def add_edge(source: str, target: str, kind: EdgeKind, emphasized: bool = False) -> None:
        if (source, target) in index.edges:
            return
        index.edges.add((source, target))
        graph.edges.append(
            GraphEdge(
                id=f"{source}->{target}",
                source=source,
                target=target,
                kind=kind,
                emphasized=emphasized,
            )
        )

    for record in records:
        # -- Portfolios ------------------------------------------------------
        for portfolio in record.portfolios:
            if portfolio in index.portfolios:
                continue
            index.portfolios.add(portfolio)
            graph.nodes.append(_portfolio_node(portfolio, records))

        # -- Services --------------------------------------------------------
        for service in record.services:
            if service in index.services:
                continue
            index.services.add(service)
            service_node = _service_node(service, records)
            graph.nodes.append(service_node)
            if service_node.portfolio:
                add_edge(
                    node_id("portfolio", service_node.portfolio),
                    service_node.id,
                    "portfolio_service",
                )

        workload_id = workload_ids.setdefault(
            record.key, node_id("workload", record.hostname)
        )

        # -- Components ------------------------------------------------------
        for component in record.components:
            component_id = node_id("component", component.name)
            if component.name not in index.components:
                index.components.add(component.name)
                graph.nodes.append(
                    ComponentNode(
                        id=component_id,
                        label=component.name,
                        name=component.name,
                        class_name=component.class_name,
                        component_type=component_type_label(component.class_name),
                        short_description=component.short_description,
                        host_workload=record.hostname,
                    )
                )
            add_edge(component_id, workload_id, "component_workload")

        # -- Workload --------------------------------------------------------
        if record.key not in index.workloads:
            index.workloads.add(record.key)
            graph.nodes.append(_workload_node(record, workload_id, focused_key))

        # -- Service fan-out -------------------------------------------------
        for service in record.services:
            service_id = node_id("service", service)
            if record.components:
                for component in record.components:
                    add_edge(
                        service_id,
                        node_id("component", component.name),
                        "service_component",
                    )
            else:
                add_edge(
                    service_id,
                    workload_id,
                    "service_workload",
                    emphasized=record.is_multi_use,
                )

    return graph


# -- Node factories -----------------------------------------------------------

def _portfolio_node(portfolio: str, records: Sequence[WorkloadRecord]) -> PortfolioNode:
    # Recounted from the full record set on every build: records arrive
    # incrementally, so running totals would go stale.
    members = [r for r in records if portfolio in r.portfolios]
    services = {s for r in members for s in r.services}
    hosts = {r.key for r in members}
    return PortfolioNode(
        id=node_id("portfolio", portfolio),
        label=portfolio,
        name=portfolio,
        product_count=len(services),
        workload_count=len(hosts),
    )


def _service_node(service: str, records: Sequence[WorkloadRecord]) -> ServiceNode:
    members = [r for r in records if service in r.services]
    hosts = {r.key for r in members}

    # First descriptor with a resolved portfolio wins; fall back to any
    # descriptor for the enrichment fields.
    detail = None
    owning_portfolio = ""
    for record in records:
        candidate = record.service_detail(service)
        if candidate is None:
            continue
        if detail is None:
            detail = candidate
        if candidate.portfolio:
            owning_portfolio = candidate.portfolio
            detail = candidate
            break
    if not owning_portfolio and members and members[0].portfolios:
        owning_portfolio = members[0].portfolios[0]

    return ServiceNode(
        id=node_id("service", service),
        label=service,
        name=service,
        portfolio=owning_portfolio,
        workload_count=len(hosts),
        full_name=detail.full_name if detail else None,
        description=detail.description if detail else None,
        criticality=detail.criticality if detail else None,
        environment=detail.environment if detail else None,
        category=detail.category if detail else None,
        infrastructure=detail.infrastructure if detail else None,
    )


def _workload_node(
    record: WorkloadRecord, workload_id: str, focused_key: Optional[str]
) -> WorkloadNode:
    return WorkloadNode(
        id=workload_id,
        label=record.hostname,
        hostname=record.hostname,
        ip=record.ip,
        os=record.os,
        fqdn=record.fqdn,
        environment=record.environment,
        class_type=record.class_type,
        virtual=record.virtual,
        short_description=record.short_description,
        services=list(record.services),
        portfolios=list(record.portfolios),
        is_multi_use=record.is_multi_use,
        is_focused=focused_key is not None and record.key == focused_key,
        env_mismatches=env_mismatches(record) or None,
        components=[c.name for c in record.components] or None,
    )


def env_mismatches(record: WorkloadRecord) -> list[EnvMismatch]:
    """Return every service whose normalised environment differs from the workload's.

    Nothing is reported when the workload itself has no environment, and
    services without an environment are skipped.
    """
    workload_env = normalize_env(record.environment)
    if workload_env is None:
        return []

    mismatches: list[EnvMismatch] = []
    for service in record.services:
        detail = record.service_detail(service)
        if detail is None:
            continue
        service_env = normalize_env(detail.environment)
        if service_env is not None and service_env != workload_env:
            mismatches.append(
                EnvMismatch(
                    service=service,
                    service_env=detail.environment or "",
                    normalized=service_env,
                )
            )
    return mismatches
