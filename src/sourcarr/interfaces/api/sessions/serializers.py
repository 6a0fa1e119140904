"""JSON shapes of session state, events, player commands and probe results."""

from __future__ import annotations

from typing import Any

from sourcarr.domain.entities.playback import (
    HistoryUpdate,
    PhaseChanged,
    PlaybackSessionState,
    PlayerCommand,
    ProgressEvent,
    SessionError,
    SessionEvent,
)
from sourcarr.domain.entities.progress import ProgressState
from sourcarr.domain.entities.sources import ProbeResult, RawSourceResult


def source_to_dict(source: RawSourceResult) -> dict[str, Any]:
    return {
        "source": source.source,
        "id": source.id,
        "title": source.title,
        "year": source.year,
        "poster": source.poster,
        "type_name": source.type_name,
        "source_name": source.source_name,
        "episodes": list(source.episodes),
    }


def state_to_dict(state: PlaybackSessionState) -> dict[str, Any]:
    return {
        "phase": state.phase.value,
        "current_source": state.current_source,
        "current_id": state.current_id,
        "current_episode_index": state.current_episode_index,
        "current_episode_url": state.current_episode_url,
        "total_episodes": state.total_episodes,
        "resume_time_seconds": state.resume_time_seconds,
        "skip_config": state.skip_config.to_dict(),
        "ad_block_enabled": state.ad_block_enabled,
        "title": state.title,
        "year": state.year,
        "search_title": state.search_title,
        "error": state.error,
        "available_sources": [source_to_dict(s) for s in state.available_sources],
    }


def progress_to_dict(progress: ProgressState) -> dict[str, Any]:
    return {
        "stage": progress.stage,
        "progress": progress.progress,
        "message": progress.message,
        "detail": progress.detail,
        "estimated_time": progress.estimated_time,
    }


def command_to_dict(command: PlayerCommand) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": command.kind}
    if command.url is not None:
        out["url"] = command.url
    if command.position is not None:
        out["position"] = command.position
    if command.message:
        out["message"] = command.message
    if command.ad_block is not None:
        out["ad_block"] = command.ad_block
    return out


def probe_to_dict(probe: ProbeResult) -> dict[str, Any]:
    return {
        "quality": probe.quality.value,
        "load_speed": probe.load_speed,
        "ping_time_ms": round(probe.ping_time_ms, 1),
        "has_error": probe.has_error,
    }


def event_to_dict(event: SessionEvent) -> tuple[str, dict[str, Any]]:
    """Event name and payload for one session event."""
    if isinstance(event, ProgressEvent):
        return "progress", progress_to_dict(event.state)
    if isinstance(event, PhaseChanged):
        return "phase", {
            "phase": event.phase.value,
            "state": state_to_dict(event.state),
        }
    if isinstance(event, HistoryUpdate):
        return "history", {
            "source": event.source,
            "id": event.id,
            "title": event.title,
            "year": event.year,
            "search_title": event.search_title,
        }
    if isinstance(event, SessionError):
        return "error", {"message": event.message}
    raise TypeError(f"unknown session event: {type(event).__name__}")
