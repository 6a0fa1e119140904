"""Sourcarr: multi-provider stream resolution and playback sessions."""

__version__ = "0.1.0"
