"""Stream probing: effective resolution, throughput and latency.

``HttpSourceProbe`` measures one manifest URL and never raises.
``MemoizedSourceProbe`` wraps it for one playback session: every
``source+id`` is probed at most once and concurrent requests for the
same key share a single in-flight probe.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol

import structlog
from httpx import HTTPError

from sourcarr.domain.entities.errors import ProbeError
from sourcarr.domain.entities.sources import ProbeResult, RawSourceResult, VideoQuality
from sourcarr.domain.ports.manifest import SourceProbePort
from sourcarr.infrastructure.config.schema import ProbeConfig
from sourcarr.infrastructure.playback.hls import (
    best_variant,
    classify_quality,
    format_speed,
    is_master_playlist,
    media_resolution_width,
    parse_variants,
    segment_uris,
)

log = structlog.get_logger(__name__)


class _Fetcher(Protocol):
    async def fetch_text(self, url: str) -> str: ...

    async def fetch_sample(self, url: str, max_bytes: int) -> int: ...

    async def ping(self, url: str) -> float: ...


class _ProbeMetrics(Protocol):
    def record_probe(self, duration_ns: int, *, has_error: bool) -> None: ...


class HttpSourceProbe:
    """Probe an HLS manifest URL.

    Resolution: for a master playlist, the variant with the greatest
    pixel count; a media playlist carries no resolution and is
    classified ``unknown``.  Throughput: time to download a bounded
    sample of the first segment.  Latency: HEAD round-trip to the
    manifest, measured concurrently with the rest.

    Any failure (timeout, non-2xx, unparsable playlist) yields
    ``ProbeResult.failed()``.
    """

    def __init__(
        self,
        fetcher: _Fetcher,
        config: ProbeConfig | None = None,
        *,
        metrics: _ProbeMetrics | None = None,
    ) -> None:
        config = config or ProbeConfig()
        self._fetcher = fetcher
        self._timeout = config.timeout_seconds
        self._sample_bytes = config.sample_bytes
        self._ping_enabled = config.ping_enabled
        self._metrics = metrics

    async def probe(self, manifest_url: str) -> ProbeResult:
        start_ns = time.perf_counter_ns()
        try:
            result = await asyncio.wait_for(
                self._measure(manifest_url), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            log.info("source_probe_timeout", url=manifest_url, timeout=self._timeout)
            result = ProbeResult.failed()
        except (HTTPError, ProbeError) as e:
            log.info("source_probe_failed", url=manifest_url, error=str(e))
            result = ProbeResult.failed()
        except Exception as e:  # noqa: BLE001
            log.warning(
                "source_probe_unexpected_error",
                url=manifest_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = ProbeResult.failed()

        if self._metrics is not None:
            self._metrics.record_probe(
                time.perf_counter_ns() - start_ns, has_error=result.has_error
            )
        return result

    async def _measure(self, manifest_url: str) -> ProbeResult:
        ping_task: asyncio.Task[float] | None = None
        if self._ping_enabled:
            ping_task = asyncio.create_task(self._fetcher.ping(manifest_url))
        try:
            quality, media_url, media_content = await self._resolve_media(
                manifest_url
            )
            segments = segment_uris(media_content, media_url)
            if not segments:
                raise ProbeError("media playlist has no segments")

            sample_start = time.monotonic()
            received = await self._fetcher.fetch_sample(
                segments[0], self._sample_bytes
            )
            elapsed = time.monotonic() - sample_start
            bytes_per_sec = received / elapsed if elapsed > 0 else float(received)

            ping_ms = await ping_task if ping_task is not None else 0.0
        finally:
            if ping_task is not None and not ping_task.done():
                ping_task.cancel()

        log.debug(
            "source_probe_measured",
            url=manifest_url,
            quality=quality.value,
            bytes_per_sec=round(bytes_per_sec, 1),
            ping_ms=round(ping_ms, 1),
        )
        return ProbeResult(
            quality=quality,
            load_speed=format_speed(bytes_per_sec),
            ping_time_ms=ping_ms,
            has_error=False,
            bytes_per_sec=bytes_per_sec,
        )

    async def _resolve_media(
        self, manifest_url: str
    ) -> tuple[VideoQuality, str, str]:
        """Return ``(quality, media_playlist_url, media_playlist_text)``."""
        content = await self._fetcher.fetch_text(manifest_url)
        if not is_master_playlist(content):
            width = media_resolution_width(content)
            return classify_quality(width), manifest_url, content

        variant = best_variant(parse_variants(content, manifest_url))
        if variant is None:
            raise ProbeError("master playlist lists no variants")
        media_content = await self._fetcher.fetch_text(variant.uri)
        return classify_quality(variant.width), variant.uri, media_content


class MemoizedSourceProbe:
    """Per-session probe cache keyed by ``source+id``.

    Results (including failures) are kept for the lifetime of the
    session.  A second request for a key that is still being probed
    awaits the same task instead of starting another probe.
    """

    def __init__(self, probe: SourceProbePort) -> None:
        self._probe = probe
        self._results: dict[str, ProbeResult] = {}
        self._inflight: dict[str, asyncio.Task[ProbeResult]] = {}

    def get(self, key: str) -> ProbeResult | None:
        return self._results.get(key)

    def has(self, key: str) -> bool:
        return key in self._results

    def snapshot(self) -> dict[str, ProbeResult]:
        return dict(self._results)

    async def probe_source(self, source: RawSourceResult) -> ProbeResult:
        key = source.key
        cached = self._results.get(key)
        if cached is not None:
            return cached

        url = source.probe_url()
        if url is None:
            result = ProbeResult.failed()
            self._results[key] = result
            return result

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._probe.probe(url))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._store(k, t))
        else:
            log.debug("source_probe_coalesced", key=key)

        return await asyncio.shield(task)

    def _store(self, key: str, task: asyncio.Task[ProbeResult]) -> None:
        self._inflight.pop(key, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("source_probe_task_failed", key=key, error=str(exc))
            self._results[key] = ProbeResult.failed()
            return
        self._results[key] = task.result()

    async def aclose(self) -> None:
        """Cancel probes that are still running (session teardown)."""
        pending = list(self._inflight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()
