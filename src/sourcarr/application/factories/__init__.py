from .session_factory import PlaybackSessionFactory

__all__ = ["PlaybackSessionFactory"]
