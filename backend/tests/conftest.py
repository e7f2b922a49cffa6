"""
Shared pytest fixtures for the Aperture test suite.

Provides a small CMDB catalog served by the in-memory record source, a
fetch orchestrator and session over it, and a FastAPI test application
with the record source and session store dependencies overridden.
"""

from __future__ import annotations

from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from aperture.api.deps import get_record_source, get_session_store
from aperture.api.store import SessionStore
from aperture.api.v1.router import router as v1_router
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.engine.session import ReconciliationSession
from aperture.models.records import AppComponent, ServiceInfo, WorkloadRecord
from aperture.sources.memory import InMemoryRecordSource


# ---------------------------------------------------------------------------
# Catalog and record source
# ---------------------------------------------------------------------------

@pytest.fixture()
def catalog() -> dict[str, Any]:
    """Return a four-portfolio CMDB catalog.

    Resulting browse records, in load order:

    * ``api-gw-1``        Checkout + Billing, Commerce
    * ``web-01``          Checkout + Monitoring, Commerce + Platform, NGINX
    * ``db-01``           Billing, Commerce (Dev server, Production service)
    * ``mon-01``          Monitoring, Platform
    * ``denwebarcgis01d`` Archive, Legacy, Tomcat + IIS
    """
    return {
        "portfolios": [
            {
                "name": "Commerce",
                "services": [
                    {
                        "name": "Checkout",
                        "full_name": "Online Checkout",
                        "environment": "Production",
                        "criticality": "1 - most critical",
                        "workloads": ["api-gw-1", "web-01"],
                    },
                    {
                        "name": "Billing",
                        "environment": "Production",
                        "workloads": ["api-gw-1", "db-01"],
                    },
                ],
            },
            {
                "name": "Platform",
                "services": [
                    {
                        "name": "Monitoring",
                        "environment": "Production",
                        "workloads": ["mon-01", "web-01"],
                    },
                ],
            },
            {
                "name": "Legacy",
                "services": [
                    {
                        "name": "Archive",
                        "environment": "Dev",
                        "workloads": ["denwebarcgis01d"],
                    },
                ],
            },
            {"name": "Sandbox", "services": []},
        ],
        "workloads": {
            "api-gw-1": {
                "ip": "10.0.0.5",
                "fqdn": "api-gw-1.corp.example",
                "environment": "Production",
                "class_type": "cmdb_ci_linux_server",
            },
            "web-01": {"ip": "10.0.0.10", "environment": "Production"},
            "db-01": {"ip": "10.0.0.20", "environment": "Dev"},
            "mon-01": {"ip": "10.0.0.30", "environment": "Production"},
            "denwebarcgis01d": {
                "ip": "10.0.1.40",
                "environment": "Development",
                "os": "Windows Server 2019",
                "class_type": "cmdb_ci_win_server",
            },
        },
        "components": {
            "web-01": [
                {"name": "NGINX@web-01", "class_name": "cmdb_ci_nginx_web_server"},
            ],
            "denwebarcgis01d": [
                {
                    "name": "Tomcat@denwebarcgis01d",
                    "class_name": "cmdb_ci_app_server_tomcat",
                    "sys_id": "a1",
                },
                {
                    "name": "IIS@denwebarcgis01d",
                    "class_name": "cmdb_ci_microsoft_iis_web_server",
                },
            ],
        },
    }


@pytest.fixture()
def source(catalog: dict[str, Any]) -> InMemoryRecordSource:
    return InMemoryRecordSource(catalog)


@pytest.fixture()
def orchestrator(source: InMemoryRecordSource) -> FetchOrchestrator:
    return FetchOrchestrator(source)


@pytest.fixture()
def session(orchestrator: FetchOrchestrator) -> ReconciliationSession:
    return ReconciliationSession(orchestrator, session_id="test-session")


# ---------------------------------------------------------------------------
# Record factory
# ---------------------------------------------------------------------------

def _make_record(
    hostname: str,
    services: list[str] | None = None,
    portfolios: list[str] | None = None,
    environment: str | None = None,
    service_envs: dict[str, str] | None = None,
    components: list[str] | None = None,
) -> WorkloadRecord:
    """Build a :class:`WorkloadRecord` with one descriptor per service.

    Each descriptor's portfolio is the record's first portfolio.
    """
    services = services or []
    portfolios = portfolios or []
    service_envs = service_envs or {}
    return WorkloadRecord(
        hostname=hostname,
        environment=environment,
        services=services,
        service_details=[
            ServiceInfo(
                name=name,
                portfolio=portfolios[0] if portfolios else None,
                environment=service_envs.get(name),
            )
            for name in services
        ],
        portfolios=portfolios,
        components=[
            AppComponent(name=name, class_name="cmdb_ci_app_server_tomcat")
            for name in (components or [])
        ],
    )


@pytest.fixture()
def make_record():
    """Return the :class:`WorkloadRecord` factory."""
    return _make_record


# ---------------------------------------------------------------------------
# FastAPI application with dependency overrides
# ---------------------------------------------------------------------------

@pytest.fixture()
def session_store() -> SessionStore:
    return SessionStore()


@pytest_asyncio.fixture()
async def test_app(source: InMemoryRecordSource, session_store: SessionStore):
    """Return a FastAPI application serving the in-memory catalog."""
    app = FastAPI()
    app.include_router(v1_router, prefix="/api/v1")
    app.dependency_overrides[get_record_source] = lambda: source
    app.dependency_overrides[get_session_store] = lambda: session_store

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx.AsyncClient wired to the test FastAPI app."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
