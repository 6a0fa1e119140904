"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
CacheBackend = Literal["memory", "diskcache", "redis"]

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", ""}


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class CacheConfig(BaseSettings):
    """Storage backend for play records, skip configs and favorites."""

    backend: CacheBackend = Field(
        default="memory",
        description="Storage backend: 'memory', 'diskcache' (SQLite) or 'redis'",
    )
    directory: Path = Field(
        default=Path("./.cache/sourcarr"),
        description="Diskcache SQLite DB path (only when backend=diskcache)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (only when backend=redis)",
    )
    ttl_seconds: int = Field(
        default=0,
        description="TTL for stored records (seconds). 0 = never expire.",
    )
    max_concurrent: int = Field(
        default=10,
        description="Max parallel cache ops (semaphore limit)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",  # CACHE_BACKEND, CACHE_REDIS_URL, ...
        case_sensitive=False,
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("ttl_seconds")
    @classmethod
    def _validate_ttl(cls, v: int) -> int:
        if v < 0:
            raise ValueError("ttl_seconds must be >= 0")
        return v

    @property
    def is_remote(self) -> bool:
        """True when records live on a non-local Redis host."""
        if self.backend != "redis":
            return False
        host = urlparse(self.redis_url).hostname or ""
        return host not in _LOCAL_HOSTS


class CatalogConfig(BaseModel):
    """Provider aggregation API (search + detail endpoints)."""

    base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the provider aggregation API.",
    )
    search_path: str = Field(
        default="/api/search",
        description="Search endpoint path (query parameter 'q').",
    )
    detail_path: str = Field(
        default="/api/detail",
        description="Detail endpoint path (query parameters 'source', 'id').",
    )
    search_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for one search round-trip.",
    )
    detail_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for one detail fetch.",
    )
    referer: str | None = Field(
        default=None,
        description="Optional Referer header sent with manifest requests.",
    )

    @field_validator("search_timeout_seconds", "detail_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("catalog timeouts must be > 0")
        return v


class ProbeConfig(BaseModel):
    """Stream probing (resolution, throughput, latency)."""

    timeout_seconds: float = Field(
        default=8.0,
        description="Overall per-source probe timeout in seconds.",
    )
    sample_bytes: int = Field(
        default=512 * 1024,
        description="Max segment bytes downloaded to measure throughput.",
    )
    ping_enabled: bool = Field(
        default=True,
        description="Measure round-trip latency to the manifest host.",
    )

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("probe.timeout_seconds must be > 0")
        return v

    @field_validator("sample_bytes")
    @classmethod
    def _validate_sample(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("probe.sample_bytes must be > 0")
        return v


class PreferConfig(BaseModel):
    """Source preference scoring.

    Score = quality * quality_weight + speed * speed_weight + ping * ping_weight,
    each factor on a 0-100 scale.
    """

    enabled: bool = Field(
        default=True,
        description="Probe and rank candidates before playback.",
    )
    batches: int = Field(
        default=2,
        description="Number of sequential probe batches.",
    )
    quality_scores: dict[str, float] = Field(
        default={
            "4K": 100,
            "2K": 85,
            "1080p": 75,
            "720p": 60,
            "480p": 40,
            "SD": 20,
            "unknown": 0,
        },
        description="Per-quality score (0-100).",
    )
    quality_weight: float = Field(default=0.4)
    speed_weight: float = Field(default=0.4)
    ping_weight: float = Field(default=0.2)
    speed_ceiling_kbps: float = Field(
        default=2048.0,
        description="Throughput (KB/s) that scores 100.",
    )
    ping_ceiling_ms: float = Field(
        default=2000.0,
        description="Latency (ms) at which the ping score reaches 0.",
    )
    unknown_speed_score: float = Field(
        default=30.0,
        description="Speed score for unknown or unparsable speeds.",
    )

    @field_validator("batches")
    @classmethod
    def _validate_batches(cls, v: int) -> int:
        if v < 1:
            raise ValueError("prefer.batches must be >= 1")
        return v

    @field_validator("speed_ceiling_kbps", "ping_ceiling_ms")
    @classmethod
    def _validate_ceiling(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("prefer ceilings must be > 0")
        return v


class MatcherConfig(BaseModel):
    """Same-work matching of provider results."""

    episode_tolerance: int = Field(
        default=5,
        description="Max episode-count difference in the strict pass.",
    )
    bracket_pairs: list[str] = Field(
        default=["[]", "()", "［］", "（）", "【】"],
        description=(
            "Open/close character pairs whose enclosed text is stripped "
            "from titles before comparison."
        ),
    )

    @field_validator("bracket_pairs")
    @classmethod
    def _validate_pairs(cls, v: list[str]) -> list[str]:
        for pair in v:
            if len(pair) != 2:
                raise ValueError(
                    f"bracket pair must be exactly two characters, got: {pair!r}"
                )
        return v


class PlaybackConfig(BaseModel):
    """Playback session behaviour."""

    ad_block_default: bool = Field(
        default=True,
        description="Filter discontinuity markers from manifests by default.",
    )
    skip_check_interval_seconds: float = Field(
        default=1.5,
        description="Min playback time between intro/outro skip checks.",
    )
    episode_change_settle_seconds: float = Field(
        default=0.1,
        description="Debounce window of the episode-changing phase.",
    )
    search_debounce_seconds: float = Field(
        default=0.1,
        description="Debounce window for rapid successive searches.",
    )
    min_save_position_seconds: float = Field(
        default=1.0,
        description="Progress below this position is never saved.",
    )
    save_interval_seconds: float | None = Field(
        default=None,
        description=(
            "Periodic progress-save interval. If unset, derived from the "
            "storage backend (5s local, 10s redis, 20s remote redis)."
        ),
    )

    session_idle_seconds: float = Field(
        default=1800.0,
        ge=0.0,
        description=(
            "Close sessions and drop per-view search debouncers untouched "
            "for this long. 0 disables idle expiry."
        ),
    )
    idle_sweep_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="How often idle sessions are looked for.",
    )

    def resolve_save_interval(self, cache: CacheConfig) -> float:
        if self.save_interval_seconds is not None:
            return self.save_interval_seconds
        if cache.backend == "redis":
            return 20.0 if cache.is_remote else 10.0
        return 5.0


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned
      (http/logging/cache/catalog/probe/prefer/matcher/playback).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow
      strict precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    app_name: str = Field(default="sourcarr", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP client (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default HTTP timeout in seconds.",
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "http_follow_redirects",
            AliasPath("http", "follow_redirects"),
        ),
        description="Whether HTTP client follows redirects.",
    )
    http_user_agent: str = Field(
        default="Sourcarr/0.1.0",
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    cache: CacheConfig = Field(default_factory=CacheConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    prefer: PreferConfig = Field(default_factory=PreferConfig)
    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        return self

    @property
    def save_interval_seconds(self) -> float:
        return self.playback.resolve_save_interval(self.cache)

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": self.cache.model_dump(mode="json"),
            "catalog": self.catalog.model_dump(),
            "probe": self.probe.model_dump(),
            "prefer": self.prefer.model_dump(),
            "matcher": self.matcher.model_dump(),
            "playback": self.playback.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py creates EnvOverrides() to read SOURCARR_* variables, converts
    them to a dict of set values and merges that into YAML/defaults before
    validating AppConfig.

    Supported env var examples (flat, explicit):
    - SOURCARR_LOG_LEVEL
    - SOURCARR_CATALOG_BASE_URL
    - SOURCARR_PREFER_ENABLED
    - SOURCARR_PLAYBACK_SAVE_INTERVAL_SECONDS
    """

    model_config = SettingsConfigDict(
        env_prefix="SOURCARR_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    catalog_base_url: Optional[str] = None
    catalog_referer: Optional[str] = None

    probe_timeout_seconds: Optional[float] = None

    prefer_enabled: Optional[bool] = None

    playback_ad_block_default: Optional[bool] = None
    playback_save_interval_seconds: Optional[float] = None
    playback_session_idle_seconds: Optional[float] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
