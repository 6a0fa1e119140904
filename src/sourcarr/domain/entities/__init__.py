from .errors import (
    CatalogError,
    ManifestFetchError,
    MissingParametersError,
    NotFoundError,
    PersistenceError,
    ProbeError,
    ResolutionError,
    SessionClosedError,
    SourcarrError,
    SourceNotFoundError,
)
from .playback import (
    HistoryUpdate,
    InitialParams,
    PhaseChanged,
    PlaybackSessionState,
    PlayerCommand,
    ProgressEvent,
    SessionError,
    SessionEvent,
    SessionPhase,
)
from .progress import PreferProgressState, ProgressState
from .records import FavoriteRecord, PlayRecord, SkipConfig
from .sources import (
    CanonicalQuery,
    ProbeResult,
    RawSourceResult,
    ScoredSource,
    VideoQuality,
    storage_key,
)

__all__ = [
    "CatalogError",
    "CanonicalQuery",
    "FavoriteRecord",
    "HistoryUpdate",
    "InitialParams",
    "ManifestFetchError",
    "MissingParametersError",
    "NotFoundError",
    "PersistenceError",
    "PhaseChanged",
    "PlayRecord",
    "PlaybackSessionState",
    "PlayerCommand",
    "PreferProgressState",
    "ProbeError",
    "ProbeResult",
    "ProgressEvent",
    "ProgressState",
    "RawSourceResult",
    "ResolutionError",
    "ScoredSource",
    "SessionClosedError",
    "SessionError",
    "SessionEvent",
    "SessionPhase",
    "SkipConfig",
    "SourceNotFoundError",
    "SourcarrError",
    "VideoQuality",
    "storage_key",
]
