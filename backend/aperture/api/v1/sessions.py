"""
Reconciliation session endpoints.

Provides the session lifecycle: creation in browse or focused mode, filter
updates, node expansion and collapse, leaving focused mode, reloading,
path highlighting, and deletion.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from aperture.api.deps import get_orchestrator, get_session, get_session_store
from aperture.api.schemas.session import (
    ExpandRequest,
    ExpansionResponse,
    FilterUpdate,
    HighlightResponse,
    SessionCreate,
    SessionView,
)
from aperture.api.store import SessionStore
from aperture.core.errors import NotExpandableError, SessionStateError
from aperture.core.logging import get_logger
from aperture.engine.orchestrator import FetchOrchestrator
from aperture.engine.session import ReconciliationSession

logger = get_logger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _conflict(exc: SessionStateError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


# ---------------------------------------------------------------------------
# POST /sessions
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=SessionView,
    status_code=status.HTTP_201_CREATED,
    summary="Open a browse or focused session",
)
async def create_session(
    body: SessionCreate,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator),
    store: SessionStore = Depends(get_session_store),
) -> SessionView:
    """Create a session and run its initial load.

    A body with ``focus`` opens a focused session on that workload; otherwise
    a browse session is opened, optionally scoped to ``portfolio``.  Upstream
    failures do not fail the request: they are reported through the
    session's ``status`` and ``error`` fields.
    """
    session = store.add(ReconciliationSession(orchestrator))
    if body.focus:
        await session.focus(body.focus)
    else:
        await session.load_browse(body.portfolio)

    logger.info(
        "Session created (%s, %s)",
        session.mode,
        session.status,
        extra={"action": "session_create", "target": session.id},
    )
    return SessionView.from_session(session)


# ---------------------------------------------------------------------------
# GET / DELETE /sessions/{session_id}
# ---------------------------------------------------------------------------


@router.get(
    "/{session_id}",
    response_model=SessionView,
    summary="Get the current session view",
)
async def read_session(
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    return SessionView.from_session(session)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Close a session",
)
async def delete_session(
    session: ReconciliationSession = Depends(get_session),
    store: SessionStore = Depends(get_session_store),
) -> Response:
    store.remove(session.id)
    logger.info("Session deleted", extra={"action": "session_delete", "target": session.id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


@router.put(
    "/{session_id}/filters",
    response_model=SessionView,
    summary="Update browse filters",
)
async def update_filters(
    body: FilterUpdate,
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    """Apply the given filters in order portfolio, service, search.

    Applying ``portfolio`` first means a ``service`` in the same body
    survives the reset that a portfolio change triggers.
    """
    if body.portfolio is not None:
        session.set_filter("portfolio", body.portfolio)
    if body.service is not None:
        session.set_filter("service", body.service)
    if body.search is not None:
        session.set_filter("search", body.search)
    return SessionView.from_session(session)


@router.delete(
    "/{session_id}/filters",
    response_model=SessionView,
    summary="Reset browse filters",
)
async def reset_filters(
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    session.reset_filters()
    return SessionView.from_session(session)


# ---------------------------------------------------------------------------
# Focused mode
# ---------------------------------------------------------------------------


@router.post(
    "/{session_id}/expand",
    response_model=ExpansionResponse,
    summary="Expand a service or portfolio node",
)
async def expand_node(
    body: ExpandRequest,
    session: ReconciliationSession = Depends(get_session),
) -> ExpansionResponse:
    """Fetch and merge the workloads behind ``node_id``.

    Raises:
        HTTPException: *409 Conflict* outside focused mode;
            *422 Unprocessable Entity* for a node that is not a service or
            portfolio.
    """
    try:
        result = await session.expand(body.node_id)
    except SessionStateError as exc:
        raise _conflict(exc) from exc
    except NotExpandableError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    return ExpansionResponse.from_result(result, session)


@router.post(
    "/{session_id}/collapse",
    response_model=SessionView,
    summary="Collapse to the focused workload",
)
async def collapse_session(
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    try:
        session.collapse_to_focus()
    except SessionStateError as exc:
        raise _conflict(exc) from exc
    return SessionView.from_session(session)


@router.post(
    "/{session_id}/exit-focus",
    response_model=SessionView,
    summary="Leave focused mode and reload browse mode",
)
async def exit_focus(
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    try:
        await session.exit_focus_mode()
    except SessionStateError as exc:
        raise _conflict(exc) from exc
    return SessionView.from_session(session)


@router.post(
    "/{session_id}/reload",
    response_model=SessionView,
    summary="Repeat the last load",
)
async def reload_session(
    session: ReconciliationSession = Depends(get_session),
) -> SessionView:
    await session.reload()
    return SessionView.from_session(session)


# ---------------------------------------------------------------------------
# GET /sessions/{session_id}/highlight/{node_id}
# ---------------------------------------------------------------------------


@router.get(
    "/{session_id}/highlight/{node_id:path}",
    response_model=HighlightResponse,
    summary="Node ids on the path through a node",
)
async def highlight_node(
    node_id: str,
    session: ReconciliationSession = Depends(get_session),
) -> HighlightResponse:
    return HighlightResponse(
        node_id=node_id,
        connected=sorted(session.highlight(node_id)),
    )
