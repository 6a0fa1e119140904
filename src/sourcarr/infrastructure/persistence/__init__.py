from .playback_store import CachePlaybackStore

__all__ = ["CachePlaybackStore"]
