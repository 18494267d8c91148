"""
Kindred — Main API Router

Aggregates all sub-routers under a single prefix so that ``kindred.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from kindred.api import matches, realtime

router = APIRouter()

router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(realtime.router, tags=["Realtime"])
