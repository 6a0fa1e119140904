"""Debug endpoint for in-memory pipeline metrics."""

from __future__ import annotations

from typing import cast

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sourcarr.interfaces.app_state import AppState

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/pipeline")
async def pipeline(request: Request) -> JSONResponse:
    """Return search, probe and prefer counters plus open session count."""
    state = cast(AppState, request.app.state)
    snapshot = state.metrics.snapshot()
    snapshot["sessions"] = len(state.registry)
    return JSONResponse(content=snapshot)
