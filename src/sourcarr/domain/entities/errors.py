"""Error taxonomy for source resolution and playback."""

from __future__ import annotations

from typing import Literal

PlayerErrorKind = Literal["network", "media", "other"]


class SourcarrError(Exception):
    """Base error for all sourcarr domain/use-case failures."""


class ResolutionError(SourcarrError):
    """Terminal failure while resolving a playback session.

    ``message`` is the user-facing text carried into the closed session.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ResolutionError):
    def __init__(self, message: str = "no match found") -> None:
        super().__init__(message)


class MissingParametersError(ResolutionError):
    def __init__(self, message: str = "missing required parameters") -> None:
        super().__init__(message)


class SourceNotFoundError(SourcarrError):
    """Switch target is not part of the session's available sources."""

    def __init__(self, source: str, id: str) -> None:
        super().__init__(f"source not found: {source}+{id}")
        self.source = source
        self.id = id


class ProbeError(SourcarrError):
    """Per-source probe failure (never surfaced individually to users)."""


class PersistenceError(SourcarrError):
    """Persistence collaborator failure (logged and swallowed)."""


class ManifestFetchError(SourcarrError):
    """Upstream manifest could not be fetched or decoded."""

    def __init__(self, message: str, kind: PlayerErrorKind = "network") -> None:
        super().__init__(message)
        self.kind = kind


class SessionClosedError(SourcarrError):
    """Operation attempted on a session that has already reached Closed."""


class CatalogError(SourcarrError):
    """Search/detail collaborator failure (network, non-2xx, malformed body)."""
