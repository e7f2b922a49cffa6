"""
ServiceNow Table API record source.

Reads the CMDB hierarchy through ``GET /api/now/table/<table>`` with Basic
authentication:

* ``pm_portfolio``       -- portfolios
* ``cmdb_ci_service``    -- business services (``u_product_portfolio`` links
  a service to its portfolio)
* ``cmdb_rel_ci``        -- parent/child relationships (service -> server)
* ``cmdb_ci_server``     -- servers
* ``cmdb_ci``            -- base CI table, used for relationship endpoints and
  for application components named ``Type@hostname``

Every HTTP or transport failure is raised as
:class:`~aperture.core.errors.RecordSourceError`.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import httpx

from aperture.config import Settings
from aperture.core.errors import RecordSourceError
from aperture.core.logging import get_logger
from aperture.models.records import AppComponent
from aperture.sources.base import (
    RecordSource,
    SourcePortfolio,
    SourceService,
    SourceWorkload,
)

logger = get_logger(__name__)

_IP_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
_SYS_ID_RE = re.compile(r"^[0-9a-f]{32}$")

# CIs that also use "@" in their names but are infrastructure, not
# application components.
_INFRA_CLASSES: frozenset[str] = frozenset(
    {
        "cmdb_ci_network_adapter",
        "cmdb_ci_ip_address",
        "dscy_router_interface",
        "dscy_route_interface",
        "dscy_route_next_hop",
        "cmdb_ci_dns_name",
    }
)


def _ref_value(value: Any) -> Optional[str]:
    """Return the ``sys_id`` of a reference field (``{"value": ...}`` or ``""``)."""
    if isinstance(value, dict):
        return value.get("value") or None
    if isinstance(value, str):
        return value or None
    return None


def _opt(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class ServiceNowSource(RecordSource):
    """:class:`RecordSource` backed by a ServiceNow instance.

    A single :class:`httpx.AsyncClient` is opened lazily and reused for the
    lifetime of the source; call :meth:`aclose` when done.

    Args:
        instance: Bare instance host (``acme.service-now.com``).
        username: Basic-auth user.
        password: Basic-auth password.
        timeout: Per-request timeout in seconds.
        page_limit: Default ``sysparm_limit``.
        transport: Optional httpx transport (tests use
            :class:`httpx.MockTransport`).
    """

    name: str = "servicenow"

    def __init__(
        self,
        instance: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        page_limit: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = f"https://{instance}"
        self._auth = httpx.BasicAuth(username, password)
        self._timeout = timeout
        self._page_limit = page_limit
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceNowSource":
        """Build a source from application settings.

        Raises:
            RecordSourceError: If the instance or credentials are missing.
        """
        if not settings.servicenow_configured:
            raise RecordSourceError("ServiceNow not configured", "configure")
        return cls(
            instance=settings.SERVICENOW_INSTANCE or "",
            username=settings.SERVICENOW_USERNAME or "",
            password=settings.SERVICENOW_PASSWORD or "",
            timeout=settings.SERVICENOW_TIMEOUT_SECONDS,
            page_limit=settings.SERVICENOW_PAGE_LIMIT,
        )

    # -- Transport -------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, table: str, query: str = "", limit: Optional[int] = None
    ) -> list[dict[str, Any]]:
        """Query *table* and return the ``result`` rows.

        Raises:
            RecordSourceError: On timeout, non-2xx status, transport error or
                a body that is not JSON.
        """
        params: dict[str, str] = {"sysparm_limit": str(limit or self._page_limit)}
        if query:
            params["sysparm_query"] = query

        logger.debug(
            "GET %s %s",
            table,
            query,
            extra={"action": "servicenow_request", "target": table},
        )
        try:
            response = await self._get_client().get(f"/api/now/table/{table}", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            error_msg = f"ServiceNow request for {table} timed out: {exc}"
            logger.warning(error_msg, extra={"action": "servicenow_timeout", "target": table})
            raise RecordSourceError(error_msg, table) from exc
        except httpx.HTTPStatusError as exc:
            error_msg = f"ServiceNow returned HTTP {exc.response.status_code} for {table}"
            logger.warning(error_msg, extra={"action": "servicenow_http_error", "target": table})
            raise RecordSourceError(error_msg, table) from exc
        except httpx.HTTPError as exc:
            error_msg = f"ServiceNow request for {table} failed: {exc}"
            logger.warning(error_msg, extra={"action": "servicenow_error", "target": table})
            raise RecordSourceError(error_msg, table) from exc
        except ValueError as exc:
            error_msg = f"ServiceNow returned invalid JSON for {table}"
            logger.warning(error_msg, extra={"action": "servicenow_bad_json", "target": table})
            raise RecordSourceError(error_msg, table) from exc

        rows = payload.get("result") if isinstance(payload, dict) else None
        return rows if isinstance(rows, list) else []

    # -- Mapping ---------------------------------------------------------------

    @staticmethod
    def _map_portfolio(row: dict[str, Any]) -> SourcePortfolio:
        return SourcePortfolio(
            sys_id=row.get("sys_id", ""),
            name=row.get("name", ""),
            state=_opt(row.get("state")),
        )

    @staticmethod
    def _map_service(row: dict[str, Any]) -> SourceService:
        return SourceService(
            sys_id=row.get("sys_id", ""),
            name=row.get("name", ""),
            full_name=_opt(row.get("u_business_service_fullname")),
            description=_opt(row.get("short_description")),
            criticality=_opt(row.get("busines_criticality")),
            environment=_opt(row.get("used_for")),
            category=_opt(row.get("category")),
            portfolio_id=_ref_value(row.get("u_product_portfolio")),
            infrastructure=_opt(row.get("u_infrastructure")),
        )

    @staticmethod
    def _map_workload(row: dict[str, Any]) -> SourceWorkload:
        virtual = row.get("virtual")
        return SourceWorkload(
            sys_id=row.get("sys_id", ""),
            name=row.get("name", ""),
            ip=_opt(row.get("ip_address")),
            hostname=_opt(row.get("host_name")),
            fqdn=_opt(row.get("fqdn")),
            os=_opt(row.get("os")),
            environment=_opt(row.get("classification")),
            class_type=_opt(row.get("sys_class_name")),
            virtual=virtual is True or virtual == "true",
            short_description=_opt(row.get("short_description")),
        )

    # -- Hierarchy walk --------------------------------------------------------

    async def list_portfolios(self) -> list[SourcePortfolio]:
        rows = await self._request("pm_portfolio", "active=true")
        return [self._map_portfolio(row) for row in rows]

    async def list_services_for_portfolio(self, portfolio_id: str) -> list[SourceService]:
        rows = await self._request(
            "cmdb_ci_service",
            f"u_product_portfolio={portfolio_id}^operational_status=1",
            limit=200,
        )
        return [self._map_service(row) for row in rows]

    async def list_workloads_for_service(self, service_id: str) -> list[SourceWorkload]:
        rels = await self._request("cmdb_rel_ci", f"parent={service_id}")
        child_ids = [cid for cid in (_ref_value(r.get("child")) for r in rels) if cid]
        if not child_ids:
            return []

        children = await self._request("cmdb_ci", f"sys_idIN{','.join(child_ids)}")
        return [
            self._map_workload(child)
            for child in children
            if "server" in (child.get("sys_class_name") or "")
        ]

    async def list_components_for_workload(self, hostname: str) -> list[AppComponent]:
        rows = await self._request("cmdb_ci", f"nameLIKE@{hostname}")

        seen: set[str] = set()
        components: list[AppComponent] = []
        for row in rows:
            class_name = row.get("sys_class_name") or ""
            name = row.get("name") or ""
            if not name or class_name in _INFRA_CLASSES or name in seen:
                continue
            seen.add(name)
            components.append(
                AppComponent(
                    name=name,
                    class_name=class_name,
                    sys_id=_opt(row.get("sys_id")),
                    short_description=_opt(row.get("short_description")),
                    server_name=hostname,
                )
            )
        return components

    # -- Point lookups ---------------------------------------------------------

    async def find_portfolio_by_name(self, name: str) -> Optional[SourcePortfolio]:
        portfolios = await self.list_portfolios()
        wanted = name.lower()
        for portfolio in portfolios:
            if portfolio.name.lower() == wanted:
                return portfolio
        for portfolio in portfolios:
            if wanted in portfolio.name.lower():
                return portfolio
        return None

    async def get_portfolio(self, portfolio_id: str) -> Optional[SourcePortfolio]:
        rows = await self._request("pm_portfolio", f"sys_id={portfolio_id}", limit=1)
        return self._map_portfolio(rows[0]) if rows else None

    async def find_service_by_name(self, name: str) -> Optional[SourceService]:
        # LIKE on the first word narrows the search; the exact match is done here.
        search_term = name.split(" ")[0]
        rows = await self._request("cmdb_ci_service", f"nameLIKE{search_term}", limit=50)
        for row in rows:
            if row.get("name") == name:
                return self._map_service(row)
        return None

    async def find_workload(self, identifier: str) -> Optional[SourceWorkload]:
        if _IP_RE.match(identifier):
            rows = await self._request("cmdb_ci_server", f"ip_address={identifier}", limit=1)
            return self._map_workload(rows[0]) if rows else None

        if _SYS_ID_RE.match(identifier):
            rows = await self._request("cmdb_ci_server", f"sys_id={identifier}", limit=1)
            return self._map_workload(rows[0]) if rows else None

        for field_name in ("name", "host_name", "fqdn"):
            workload = await self._find_server_by_field(field_name, identifier)
            if workload is not None:
                return workload
        return None

    async def _find_server_by_field(
        self, field_name: str, value: str
    ) -> Optional[SourceWorkload]:
        # cmdb_ci_server first, then the cmdb_ci base table for server subtypes
        # that live outside it.
        rows = await self._request("cmdb_ci_server", f"{field_name}={value}", limit=1)
        if not rows:
            rows = await self._request(
                "cmdb_ci", f"{field_name}={value}^sys_class_nameLIKEserver", limit=1
            )
        return self._map_workload(rows[0]) if rows else None

    async def list_services_for_workload(self, workload_id: str) -> list[SourceService]:
        rels = await self._request("cmdb_rel_ci", f"child={workload_id}")
        parent_ids = [pid for pid in (_ref_value(r.get("parent")) for r in rels) if pid]
        if not parent_ids:
            return []

        parents = await self._request("cmdb_ci", f"sys_idIN{','.join(parent_ids)}")
        # Matches both cmdb_ci_service and cmdb_ci_service_discovered.
        return [
            self._map_service(parent)
            for parent in parents
            if "cmdb_ci_service" in (parent.get("sys_class_name") or "")
        ]
