"""Playback infrastructure - matching, probing, scoring and manifests."""

from .manifest_fetcher import HttpManifestFetcher, load_manifest
from .source_matcher import SourceMatcher
from .source_probe import HttpSourceProbe, MemoizedSourceProbe
from .source_scorer import SourceScorer

__all__ = [
    "HttpManifestFetcher",
    "HttpSourceProbe",
    "MemoizedSourceProbe",
    "SourceMatcher",
    "SourceScorer",
    "load_manifest",
]
