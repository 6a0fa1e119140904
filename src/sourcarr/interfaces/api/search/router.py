"""Debounced catalog search for search-as-you-type views."""

from __future__ import annotations

from typing import cast

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from sourcarr.interfaces.api.sessions.serializers import source_to_dict
from sourcarr.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["search"])


@router.get("/search")
async def search(
    request: Request,
    q: str = Query(..., min_length=1, description="Search text."),
    view_id: str = Query(
        default="default",
        description="Searches from the same view supersede each other.",
    ),
) -> JSONResponse:
    """Search all providers.

    A request superseded by a newer one from the same view within the
    debounce window answers ``superseded: true`` with no results.
    Catalog failures surface as CatalogError (502).
    """
    state = cast(AppState, request.app.state)
    results = await state.search_debouncers.for_view(view_id).submit(q)
    if results is None:
        log.debug("search_superseded", view_id=view_id, query=q)
        return JSONResponse(content={"query": q, "superseded": True, "results": []})
    return JSONResponse(
        content={
            "query": q,
            "superseded": False,
            "results": [source_to_dict(r) for r in results],
        }
    )
