"""
Base record-source interface.

A record source is the hierarchical CMDB as the reconciliation engine sees
it: portfolios own services, services relate to workloads, workloads host
application components.  Concrete sources (the ServiceNow Table API, the
in-memory catalog) implement :class:`RecordSource`; the fetch orchestrator
depends on nothing else.

Every call returns a best-effort snapshot.  Upstream failures are raised as
:class:`~aperture.core.errors.RecordSourceError`; deciding whether a failure
is fatal for the current pass is the orchestrator's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from aperture.models.records import AppComponent


@dataclass
class SourcePortfolio:
    """A portfolio as returned by the source.

    Attributes:
        sys_id: Source-specific identifier.
        name: Display name; the graph keys portfolios by it.
        state: Lifecycle state, when the source tracks one.
    """

    sys_id: str
    name: str
    state: Optional[str] = None


@dataclass
class SourceService:
    """A business service as returned by the source.

    Attributes:
        sys_id: Source-specific identifier.
        name: Service name; the graph keys services by it.
        portfolio_id: ``sys_id`` of the owning portfolio, if any.
        environment: Raw ``used_for`` label.
    """

    sys_id: str
    name: str
    full_name: Optional[str] = None
    description: Optional[str] = None
    criticality: Optional[str] = None
    environment: Optional[str] = None
    category: Optional[str] = None
    portfolio_id: Optional[str] = None
    infrastructure: Optional[str] = None


@dataclass
class SourceWorkload:
    """A server/host as returned by the source.

    Attributes:
        sys_id: Source-specific identifier.
        name: CMDB name; becomes the record's hostname.
        environment: Raw ``classification`` label.
        class_type: CMDB class (``cmdb_ci_linux_server``, ...).
    """

    sys_id: str
    name: str
    ip: Optional[str] = None
    hostname: Optional[str] = None
    fqdn: Optional[str] = None
    os: Optional[str] = None
    environment: Optional[str] = None
    class_type: Optional[str] = None
    virtual: Optional[bool] = None
    short_description: Optional[str] = None


class RecordSource(ABC):
    """Abstract hierarchical CMDB.

    The four ``list_*`` calls walk the hierarchy top-down.  The remaining
    lookups serve the focused-session and expansion paths, which start from
    a single name rather than from the top of the hierarchy.

    Attributes:
        name: Short identifier used in log lines.
    """

    name: str = "base"

    # -- Hierarchy walk --------------------------------------------------------

    @abstractmethod
    async def list_portfolios(self) -> list[SourcePortfolio]:
        """Return all active portfolios."""

    @abstractmethod
    async def list_services_for_portfolio(self, portfolio_id: str) -> list[SourceService]:
        """Return the operational services owned by portfolio *portfolio_id*."""

    @abstractmethod
    async def list_workloads_for_service(self, service_id: str) -> list[SourceWorkload]:
        """Return the workloads related to service *service_id*."""

    @abstractmethod
    async def list_components_for_workload(self, hostname: str) -> list[AppComponent]:
        """Return the application components hosted on *hostname*, unique by name."""

    # -- Point lookups ---------------------------------------------------------

    @abstractmethod
    async def find_portfolio_by_name(self, name: str) -> Optional[SourcePortfolio]:
        """Return the portfolio named *name*, or ``None``."""

    @abstractmethod
    async def get_portfolio(self, portfolio_id: str) -> Optional[SourcePortfolio]:
        """Return the portfolio with identifier *portfolio_id*, or ``None``."""

    @abstractmethod
    async def find_service_by_name(self, name: str) -> Optional[SourceService]:
        """Return the service named exactly *name*, or ``None``."""

    @abstractmethod
    async def find_workload(self, identifier: str) -> Optional[SourceWorkload]:
        """Resolve an IP address, source id, name, host name or FQDN to a workload."""

    @abstractmethod
    async def list_services_for_workload(self, workload_id: str) -> list[SourceService]:
        """Return the services that workload *workload_id* belongs to."""

    async def aclose(self) -> None:
        """Release any resources held by the source."""
