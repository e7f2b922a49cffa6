"""
In-memory record source.

Serves a CMDB catalog held in a plain dictionary, for demos and tests.  The
catalog shape mirrors the hierarchy the engine walks::

    {
        "portfolios": [
            {
                "name": "Commerce",
                "services": [
                    {
                        "name": "Checkout",
                        "environment": "Production",
                        "criticality": "1 - most critical",
                        "workloads": ["api-gw-1", "web-01"],
                    }
                ],
            }
        ],
        "workloads": {
            "api-gw-1": {"ip": "10.0.0.5", "environment": "Production"}
        },
        "components": {
            "api-gw-1": [
                {"name": "Tomcat@api-gw-1", "class_name": "cmdb_ci_app_server_tomcat"}
            ]
        },
    }

Workloads referenced by a service but missing from ``"workloads"`` are
served with just a name.  Hostnames listed in ``failing_components`` raise
:class:`~aperture.core.errors.RecordSourceError` on component lookup, and
operations listed in ``failing_operations`` always raise.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Optional

from aperture.core.errors import RecordSourceError
from aperture.models.records import AppComponent
from aperture.sources.base import (
    RecordSource,
    SourcePortfolio,
    SourceService,
    SourceWorkload,
)


class InMemoryRecordSource(RecordSource):
    """:class:`RecordSource` over a catalog dictionary.

    Attributes:
        calls: ``(operation, argument)`` pairs in call order.
    """

    name: str = "memory"

    def __init__(
        self,
        catalog: dict[str, Any],
        failing_components: Iterable[str] = (),
        failing_operations: Iterable[str] = (),
    ) -> None:
        self._portfolios: dict[str, SourcePortfolio] = {}
        self._services: dict[str, SourceService] = {}
        self._service_workloads: dict[str, list[str]] = {}
        self._workloads: dict[str, SourceWorkload] = {}
        self._components: dict[str, list[AppComponent]] = {}
        self._failing_components = {h.lower() for h in failing_components}
        self._failing_operations = set(failing_operations)
        self.calls: list[tuple[str, str]] = []
        self._load(catalog)

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryRecordSource":
        """Load a catalog from a JSON file."""
        with open(path, encoding="utf-8") as fh:
            return cls(json.load(fh))

    def _load(self, catalog: dict[str, Any]) -> None:
        for name, attrs in (catalog.get("workloads") or {}).items():
            self._add_workload(name, attrs or {})

        for pf in catalog.get("portfolios") or []:
            portfolio = SourcePortfolio(
                sys_id=f"portfolio/{pf['name']}",
                name=pf["name"],
                state=pf.get("state"),
            )
            self._portfolios[portfolio.sys_id] = portfolio
            for svc in pf.get("services") or []:
                service = SourceService(
                    sys_id=f"service/{svc['name']}",
                    name=svc["name"],
                    full_name=svc.get("full_name"),
                    description=svc.get("description"),
                    criticality=svc.get("criticality"),
                    environment=svc.get("environment"),
                    category=svc.get("category"),
                    portfolio_id=portfolio.sys_id,
                    infrastructure=svc.get("infrastructure"),
                )
                self._services[service.sys_id] = service
                hosts = list(svc.get("workloads") or [])
                self._service_workloads[service.sys_id] = hosts
                for host in hosts:
                    if f"workload/{host}" not in self._workloads:
                        self._add_workload(host, {})

        for host, items in (catalog.get("components") or {}).items():
            self._components[host.lower()] = [
                AppComponent(server_name=host, **item) for item in items
            ]

    def _add_workload(self, name: str, attrs: dict[str, Any]) -> None:
        self._workloads[f"workload/{name}"] = SourceWorkload(
            sys_id=f"workload/{name}",
            name=name,
            ip=attrs.get("ip"),
            hostname=attrs.get("hostname"),
            fqdn=attrs.get("fqdn"),
            os=attrs.get("os"),
            environment=attrs.get("environment"),
            class_type=attrs.get("class_type"),
            virtual=attrs.get("virtual"),
            short_description=attrs.get("short_description"),
        )

    def _record_call(self, operation: str, argument: str = "") -> None:
        self.calls.append((operation, argument))
        if operation in self._failing_operations:
            raise RecordSourceError(f"{operation} failed", operation)

    # -- Hierarchy walk --------------------------------------------------------

    async def list_portfolios(self) -> list[SourcePortfolio]:
        self._record_call("list_portfolios")
        return list(self._portfolios.values())

    async def list_services_for_portfolio(self, portfolio_id: str) -> list[SourceService]:
        self._record_call("list_services_for_portfolio", portfolio_id)
        return [s for s in self._services.values() if s.portfolio_id == portfolio_id]

    async def list_workloads_for_service(self, service_id: str) -> list[SourceWorkload]:
        self._record_call("list_workloads_for_service", service_id)
        return [
            self._workloads[f"workload/{host}"]
            for host in self._service_workloads.get(service_id, [])
        ]

    async def list_components_for_workload(self, hostname: str) -> list[AppComponent]:
        self._record_call("list_components_for_workload", hostname)
        if hostname.lower() in self._failing_components:
            raise RecordSourceError(f"component lookup for {hostname} failed", "components")
        return list(self._components.get(hostname.lower(), []))

    # -- Point lookups ---------------------------------------------------------

    async def find_portfolio_by_name(self, name: str) -> Optional[SourcePortfolio]:
        self._record_call("find_portfolio_by_name", name)
        for portfolio in self._portfolios.values():
            if portfolio.name.lower() == name.lower():
                return portfolio
        return None

    async def get_portfolio(self, portfolio_id: str) -> Optional[SourcePortfolio]:
        self._record_call("get_portfolio", portfolio_id)
        return self._portfolios.get(portfolio_id)

    async def find_service_by_name(self, name: str) -> Optional[SourceService]:
        self._record_call("find_service_by_name", name)
        return self._services.get(f"service/{name}")

    async def find_workload(self, identifier: str) -> Optional[SourceWorkload]:
        self._record_call("find_workload", identifier)
        wanted = identifier.lower()
        for workload in self._workloads.values():
            candidates = (workload.name, workload.ip, workload.hostname, workload.fqdn)
            if any(c and c.lower() == wanted for c in candidates):
                return workload
        return None

    async def list_services_for_workload(self, workload_id: str) -> list[SourceService]:
        self._record_call("list_services_for_workload", workload_id)
        host = self._workloads[workload_id].name if workload_id in self._workloads else None
        return [
            self._services[service_id]
            for service_id, hosts in self._service_workloads.items()
            if host in hosts
        ]
