"""
API v1 Router

All endpoints require a bearer token except the root listing.
"""

from fastapi import APIRouter
from . import activity, dependencies, tasks, teams

router = APIRouter()

router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(dependencies.router, prefix="/dependencies", tags=["Dependencies"])
router.include_router(teams.router, prefix="/teams", tags=["Teams"])
router.include_router(activity.router, prefix="/activity", tags=["Activity"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/tasks",
            "/dependencies",
            "/dependencies/graph",
            "/teams",
            "/activity",
        ],
    }
