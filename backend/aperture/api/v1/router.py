"""
Aggregated APIRouter for API version 1.

All v1 endpoint routers are included here and exposed as a single ``router``
instance that is mounted by the FastAPI application in ``aperture.main``.
The prefix ``/api/v1`` is applied by the application, so sub-routers only
declare their own resource prefix (e.g. ``/sessions``).
"""

from __future__ import annotations

from fastapi import APIRouter

from aperture.api.v1 import sessions

router = APIRouter()

router.include_router(
    sessions.router,
    prefix="/sessions",
    tags=["sessions"],
)
