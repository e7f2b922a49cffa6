"""
Workload records: the unit of external truth.

A :class:`WorkloadRecord` describes one physical or virtual host together
with the services and portfolios it serves and the application components
running on it.  Records are produced by the fetch orchestrator, folded by
the record merger, and consumed by the graph builder.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ServiceInfo(BaseModel):
    """Enriched descriptor of one business service as seen from a workload.

    Attributes:
        name: Service name; identity key within a record.
        full_name: Human-readable long name (``u_business_service_fullname``).
        description: Short description of the service.
        portfolio: Resolved name of the portfolio that owns the service.
        criticality: Business criticality (e.g. ``"1 - most critical"``).
        environment: Raw ``used_for`` value (Production, Test / QA, ...).
        category: Hosting category (``Hosted-B55``, ``Cloud-Azure``, ...).
        infrastructure: Infrastructure tag (``cloud_azure``, ...).
    """

    name: str
    full_name: Optional[str] = None
    description: Optional[str] = None
    portfolio: Optional[str] = None
    criticality: Optional[str] = None
    environment: Optional[str] = None
    category: Optional[str] = None
    infrastructure: Optional[str] = None


class AppComponent(BaseModel):
    """An application component (Tomcat, IIS, database instance, ...).

    Components follow the ``Type@hostname`` naming convention in the CMDB.
    The CMDB may hold several CIs with different ``sys_id`` values but the
    same name, so ``name`` alone is the identity key.
    """

    name: str
    class_name: str = ""
    sys_id: Optional[str] = None
    short_description: Optional[str] = None
    server_name: Optional[str] = None


class WorkloadRecord(BaseModel):
    """One host and everything the CMDB relates to it.

    ``hostname`` is the only required field and is compared
    case-insensitively.  ``is_multi_use`` is derived from ``services`` and
    ``portfolios`` on every access, so it cannot disagree with them.
    """

    model_config = ConfigDict(extra="ignore")

    hostname: str
    ip: Optional[str] = None
    os: Optional[str] = None
    fqdn: Optional[str] = None
    environment: Optional[str] = None
    class_type: Optional[str] = None
    virtual: Optional[bool] = None
    short_description: Optional[str] = None
    services: list[str] = Field(default_factory=list)
    service_details: list[ServiceInfo] = Field(default_factory=list)
    portfolios: list[str] = Field(default_factory=list)
    components: list[AppComponent] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_multi_use(self) -> bool:
        return len(self.services) > 1 or len(self.portfolios) > 1

    @property
    def key(self) -> str:
        """Normalised identity key (lower-cased hostname)."""
        return self.hostname.lower()

    def service_detail(self, name: str) -> Optional[ServiceInfo]:
        """Return the descriptor for service *name*, if this record has one."""
        for detail in self.service_details:
            if detail.name == name:
                return detail
        return None
