"""Ports for manifest fetching and stream probing."""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from sourcarr.domain.entities.sources import ProbeResult

# Pure line-oriented text transform applied to every fetched manifest.
ManifestTransform = Callable[[str], str]


@runtime_checkable
class ManifestFetcher(Protocol):
    """Plain HTTP access to text manifests and segment byte ranges."""

    async def fetch_text(self, url: str) -> str: ...

    async def fetch_sample(self, url: str, max_bytes: int) -> int:
        """Download up to ``max_bytes`` of ``url``; returns bytes received."""
        ...


@runtime_checkable
class SourceProbePort(Protocol):
    """Measure resolution, throughput and latency of one manifest URL.

    Never raises; failures are reported as ``ProbeResult.failed()``.
    """

    async def probe(self, manifest_url: str) -> ProbeResult: ...
