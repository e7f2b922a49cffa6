"""
Shared FastAPI dependency functions for the Aperture API.

The record source and the session store live on ``app.state`` and are
created on first use, so the application starts even when the CMDB is not
configured.  Tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from aperture.api.store import SessionStore
from aperture.config import Settings, get_settings
from aperture.core.errors import RecordSourceError
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.engine.session import ReconciliationSession
from aperture.sources import RecordSource, create_record_source


def get_record_source(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> RecordSource:
    """Return the application's record source, creating it on first use.

    Raises:
        HTTPException: *503 Service Unavailable* if the configured source
            cannot be created (e.g. missing ServiceNow credentials).
    """
    source: RecordSource | None = getattr(request.app.state, "record_source", None)
    if source is None:
        try:
            source = create_record_source(settings)
        except RecordSourceError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            ) from exc
        request.app.state.record_source = source
    return source


def get_orchestrator(
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> FetchOrchestrator:
    return FetchOrchestrator.from_settings(source, settings)


def get_session_store(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> SessionStore:
    store: SessionStore | None = getattr(request.app.state, "session_store", None)
    if store is None:
        store = SessionStore.from_settings(settings)
        request.app.state.session_store = store
    return store


def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> ReconciliationSession:
    """Load a session by id or raise 404.

    Usage::

        @router.get("/{session_id}")
        async def read(session: ReconciliationSession = Depends(get_session)):
            ...

    Raises:
        HTTPException: *404 Not Found* if no session with the given id exists.
    """
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session with id '{session_id}' not found.",
        )
    return session
