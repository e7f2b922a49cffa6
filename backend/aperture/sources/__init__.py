"""
Record sources -- the CMDB as the reconciliation engine sees it.

Downstream code only needs :func:`create_record_source` to obtain the source
selected by ``RECORD_SOURCE`` in the settings.
"""

from __future__ import annotations

from aperture.config import Settings
from aperture.core.errors import RecordSourceError
from aperture.sources.base import (
    RecordSource,
    SourcePortfolio,
    SourceService,
    SourceWorkload,
)
from aperture.sources.memory import InMemoryRecordSource
from aperture.sources.servicenow import ServiceNowSource


def create_record_source(settings: Settings) -> RecordSource:
    """Instantiate the record source named by ``settings.RECORD_SOURCE``.

    Raises:
        RecordSourceError: If the selected source is not configured.
    """
    if settings.RECORD_SOURCE == "memory":
        if not settings.CATALOG_PATH:
            raise RecordSourceError("CATALOG_PATH is required for the memory source", "configure")
        return InMemoryRecordSource.from_json(settings.CATALOG_PATH)
    return ServiceNowSource.from_settings(settings)


__all__: list[str] = [
    "RecordSource",
    "SourcePortfolio",
    "SourceService",
    "SourceWorkload",
    "InMemoryRecordSource",
    "ServiceNowSource",
    "create_record_source",
]
