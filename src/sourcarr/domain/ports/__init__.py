from .cache import CachePort
from .catalog import DetailCollaborator, DownloadProgress, SearchCollaborator
from .manifest import ManifestFetcher, ManifestTransform, SourceProbePort
from .persistence import PersistenceCollaborator

__all__ = [
    "CachePort",
    "DetailCollaborator",
    "DownloadProgress",
    "ManifestFetcher",
    "ManifestTransform",
    "PersistenceCollaborator",
    "SearchCollaborator",
    "SourceProbePort",
]
