"""
Health endpoint.

  GET /health -- Liveness probe plus the active enforcement settings
"""

import time

from fastapi import APIRouter, Request

from ... import __version__
from ..models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def liveness(request: Request) -> HealthResponse:
    """Liveness probe -- returns 200 if the process is running."""
    config = request.app.state.config
    start_time = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=__version__,
        uptime_seconds=round(time.time() - start_time, 1),
        enforcement_enabled=config.enforcement_enabled,
        enforcement_pct=config.enforcement_pct,
        rewrite_available=request.app.state.generator is not None,
    )
