"""Playback session endpoints.

A session is opened per view; player signals are posted back and the
answer is the list of commands the player adapter must execute.
Resolution progress is streamed as server-sent events from
``/sessions/{id}/events``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncIterator
from typing import Any, Literal, cast

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from sourcarr.application.use_cases.playback_session import PlaybackSession
from sourcarr.domain.entities.errors import PlayerErrorKind
from sourcarr.domain.entities.playback import (
    InitialParams,
    PlayerCommand,
    SessionPhase,
)
from sourcarr.domain.entities.records import SkipConfig
from sourcarr.interfaces.api.sessions.serializers import (
    command_to_dict,
    event_to_dict,
    probe_to_dict,
    progress_to_dict,
    state_to_dict,
)
from sourcarr.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

# Seconds between keep-alive comments on an idle event stream.
SSE_HEARTBEAT_SECONDS = 15.0


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class OpenSessionRequest(BaseModel):
    view_id: str | None = Field(
        default=None,
        description="Opening a session for the same view supersedes the old one.",
    )
    title: str = ""
    source: str = ""
    id: str = ""
    year: str = ""
    search_title: str = ""
    type_name: str = ""
    prefer: bool = False

    def to_params(self) -> InitialParams:
        return InitialParams(
            title=self.title,
            source=self.source,
            id=self.id,
            year=self.year,
            search_title=self.search_title,
            type_name=self.type_name,
            prefer=self.prefer,
        )


class EpisodeRequest(BaseModel):
    index: int | None = Field(default=None, description="0-based episode index.")
    direction: Literal["next", "previous"] | None = None


class SourceRequest(BaseModel):
    source: str
    id: str
    title: str = ""


class SkipConfigRequest(BaseModel):
    enable: bool = False
    intro_time: float = 0.0
    outro_time: float = Field(
        default=0.0, description="Negative offset from the end, 0 to disable."
    )


class AdBlockRequest(BaseModel):
    enabled: bool


class PlayerSignal(BaseModel):
    event: Literal["can_play", "play", "pause", "time_update", "page_hide", "error"]
    current_time: float | None = None
    duration: float | None = None
    error_kind: PlayerErrorKind = "other"
    fatal: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _state(request: Request) -> AppState:
    return cast(AppState, request.app.state)


def _session(request: Request, session_id: str) -> PlaybackSession:
    session = _state(request).registry.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _commands(commands: list[PlayerCommand]) -> JSONResponse:
    return JSONResponse(content={"commands": [command_to_dict(c) for c in commands]})


def _sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def _event_stream(
    session: PlaybackSession, heartbeat: float
) -> AsyncIterator[str]:
    """Drain ``session.events`` until resolution is over and nothing is queued."""
    events = session.events
    while True:
        if events.empty() and session.state.phase is not SessionPhase.RESOLVING:
            yield _sse("end", {"phase": session.state.phase.value})
            return
        try:
            event = await asyncio.wait_for(events.get(), timeout=heartbeat)
        except asyncio.TimeoutError:
            yield ": keep-alive\n\n"
            continue
        name, data = event_to_dict(event)
        yield _sse(name, data)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@router.post("")
async def open_session(
    body: OpenSessionRequest, request: Request, wait: bool = True
) -> JSONResponse:
    """Resolve a new session.

    Returns 201 with the Ready state and the initial load command, or
    422 with the terminal error when resolution failed.  A session
    superseded by a newer open for the same view is answered with 409.

    With ``wait=false`` the session is registered and resolved in the
    background; the 202 answer carries only its id.  Progress then
    arrives on ``/sessions/{id}/events``.
    """
    view_id = body.view_id or uuid.uuid4().hex
    registry = _state(request).registry
    if not wait:
        session_id, session = await registry.open_in_background(
            view_id, body.to_params()
        )
        return JSONResponse(
            status_code=202,
            content={
                "session_id": session_id,
                "view_id": view_id,
                "state": state_to_dict(session.state),
            },
        )

    session_id, session = await registry.open(view_id, body.to_params())
    state = session.state
    payload = {
        "session_id": session_id,
        "view_id": view_id,
        "state": state_to_dict(state),
        "progress": [progress_to_dict(p) for p in session.progress_history],
    }
    if state.is_closed and state.error is None:
        log.info("session_open_superseded", view_id=view_id)
        return JSONResponse(
            status_code=409, content={**payload, "error": "superseded"}
        )
    if state.is_closed:
        log.info("session_open_failed", view_id=view_id, error=state.error)
        return JSONResponse(
            status_code=422, content={**payload, "error": state.error}
        )
    payload["commands"] = [command_to_dict(c) for c in session.initial_commands]
    return JSONResponse(status_code=201, content=payload)


@router.get("/{session_id}/events")
async def session_events(session_id: str, request: Request) -> StreamingResponse:
    """Server-sent events: progress, phase, history and error.

    The stream ends with an ``end`` event once the session has left
    Resolving and every queued event was delivered.  Events are consumed:
    two concurrent readers split them between each other.
    """
    session = _session(request, session_id)
    return StreamingResponse(
        _event_stream(session, SSE_HEARTBEAT_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{session_id}")
async def get_session(session_id: str, request: Request) -> JSONResponse:
    session = _session(request, session_id)
    return JSONResponse(
        content={
            "session_id": session_id,
            "state": state_to_dict(session.state),
            "position": session.position,
            "progress": [progress_to_dict(p) for p in session.progress_history],
        }
    )


@router.delete("/{session_id}")
async def close_session(session_id: str, request: Request) -> JSONResponse:
    """Final progress save, then close."""
    if not await _state(request).registry.close(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return JSONResponse(content={"closed": True})


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@router.post("/{session_id}/episode")
async def change_episode(
    session_id: str, body: EpisodeRequest, request: Request
) -> JSONResponse:
    session = _session(request, session_id)
    if body.direction == "next":
        commands = await session.next_episode()
    elif body.direction == "previous":
        commands = await session.previous_episode()
    elif body.index is not None:
        commands = await session.change_episode(body.index)
    else:
        raise HTTPException(status_code=422, detail="index or direction required")
    return _commands(commands)


@router.post("/{session_id}/source")
async def change_source(
    session_id: str, body: SourceRequest, request: Request
) -> JSONResponse:
    session = _session(request, session_id)
    commands = await session.change_source(body.source, body.id, body.title)
    return _commands(commands)


@router.post("/{session_id}/speed-test")
async def speed_test(session_id: str, request: Request) -> JSONResponse:
    session = _session(request, session_id)
    results = await session.speed_test()
    return JSONResponse(
        content={"results": {key: probe_to_dict(p) for key, p in results.items()}}
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.post("/{session_id}/skip-config")
async def update_skip_config(
    session_id: str, body: SkipConfigRequest, request: Request
) -> JSONResponse:
    session = _session(request, session_id)
    config = SkipConfig(
        enable=body.enable,
        intro_time=body.intro_time,
        outro_time=body.outro_time,
    )
    await session.update_skip_config(config)
    return JSONResponse(content={"skip_config": session.state.skip_config.to_dict()})


@router.post("/{session_id}/ad-block")
async def toggle_ad_block(
    session_id: str, body: AdBlockRequest, request: Request
) -> JSONResponse:
    session = _session(request, session_id)
    commands = await session.toggle_ad_block(body.enabled)
    return _commands(commands)


@router.get("/{session_id}/favorite")
async def get_favorite(session_id: str, request: Request) -> JSONResponse:
    session = _session(request, session_id)
    return JSONResponse(content={"favorited": await session.is_favorited()})


@router.post("/{session_id}/favorite")
async def toggle_favorite(session_id: str, request: Request) -> JSONResponse:
    session = _session(request, session_id)
    return JSONResponse(content={"favorited": await session.toggle_favorite()})


# ---------------------------------------------------------------------------
# Player signals
# ---------------------------------------------------------------------------


@router.post("/{session_id}/player")
async def player_signal(
    session_id: str, body: PlayerSignal, request: Request
) -> JSONResponse:
    session = _session(request, session_id)
    commands: list[PlayerCommand] = []
    if body.event == "can_play":
        commands = session.on_can_play(body.duration)
    elif body.event == "play":
        session.on_play()
    elif body.event == "pause":
        await session.on_pause(body.current_time, body.duration)
    elif body.event == "time_update":
        commands = await session.on_time_update(
            body.current_time or 0.0, body.duration
        )
    elif body.event == "page_hide":
        await session.on_page_hide()
    else:
        commands = await session.on_player_error(body.error_kind, body.fatal)
    return _commands(commands)
