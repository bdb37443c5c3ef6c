"""
Pydantic v2 Configuration Models for ContentSync

Provides strict, typed configuration for every ContentSync subsystem:
- HTTP client settings (timeouts, TLS, pooling)
- Retry policy for transient repository failures
- Fetch cache policy (TTL, bounded entry count)
- Traversal policy (bounded concurrency, dependency cascade)
- Logging configuration
- Per-source repository settings (paths, types, locales, environments)
- Per-source attribute mappings
- Top-level ContentSyncConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

import re
from typing import ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.mapping.models import ContentMapping, normalize_sub_type

# ============================================================================
# Shared Policy Models
# ============================================================================


class RetryPolicy(BaseModel):
    """Retry policy applied by the HTTP layer."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    retry_statuses: List[int] = Field(
        default=[429, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    max_attempts: int = Field(default=3, description="Maximum attempts per request")
    base_delay_ms: int = Field(default=200, description="Base delay in ms")
    max_delay_ms: int = Field(default=4000, description="Maximum delay in ms")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("base_delay_ms", "max_delay_ms")
    @classmethod
    def validate_delays(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Delay values must be >= 0")
        return v


class HttpClientConfig(BaseModel):
    """Configuration for HTTP client behavior."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    user_agent: str = Field(default="CmsToIndex/ContentSync", description="User-Agent string")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    pool_connections: int = Field(default=10, description="Keep-alive connections")
    pool_maxsize: int = Field(default=20, description="Max pool size (total connections)")

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v


class CachePolicy(BaseModel):
    """Bounds for the repository response cache."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    ttl_seconds: int = Field(default=300, description="Entry lifetime in seconds")
    max_entries: int = Field(default=1000, description="Maximum cached URLs")

    @field_validator("ttl_seconds", "max_entries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Cache bounds must be >= 1")
        return v


class TraversalPolicy(BaseModel):
    """How the tree walk fans out."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    concurrent: bool = Field(
        default=False, description="Try bounded-concurrency fan-out before sequential"
    )
    parallelism: int = Field(default=10, description="Max in-flight child fetches per node")
    follow_dependencies: bool = Field(
        default=True, description="Re-index dependents after explicit path runs"
    )

    @field_validator("parallelism")
    @classmethod
    def validate_parallelism(cls, v: int) -> int:
        if v < 1:
            raise ValueError("parallelism must be >= 1")
        return v


class LoggingConfig(BaseModel):
    """Logging level and optional JSON-lines file."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    json_path: Optional[str] = Field(default=None, description="Write JSON log lines here")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


# ============================================================================
# Source Models
# ============================================================================


class LocalePath(BaseModel):
    """Locale assigned to every node under ``path``."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    locale: str
    path: str


class SourceConfig(BaseModel):
    """One repository source to synchronise."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    name: str = Field(description="Unique source name")
    id: Optional[str] = Field(default=None, description="Stable source identifier")
    enabled: bool = True
    url: str = Field(description="Repository base URL, e.g. https://author.example.com")
    username: Optional[str] = None
    password: Optional[str] = None
    provider: str = Field(default=c.DEFAULT_PROVIDER)

    root_path: str = Field(description="Walk starts here; nodes outside it are never indexed")
    content_type: Optional[str] = Field(default=None, description="Indexable node type")
    sub_type: Optional[str] = Field(default=None, description="static-file or content-fragment")
    once: bool = Field(
        default=False,
        description=(
            "Skip paths matching once_pattern on every full run. This is a static "
            'switch; no per-path "already processed" marker is stored'
        ),
    )
    once_pattern: Optional[str] = Field(default=None, description="Regex matched from path start")

    default_locale: str = Field(default="en_US")
    locale_paths: List[LocalePath] = Field(default_factory=list)

    author: bool = Field(default=True, description="Emit jobs for the authoring environment")
    publish: bool = Field(default=False, description="Emit jobs for the publishing environment")
    author_site: str = Field(default="")
    publish_site: str = Field(default="")
    author_url_prefix: str = Field(default="")
    publish_url_prefix: str = Field(default="")
    site_name: Optional[str] = Field(default=None, description="Injected as the 'site' attribute")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("root_path")
    @classmethod
    def validate_root_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("root_path must be absolute")
        return v

    @field_validator("once_pattern")
    @classmethod
    def validate_once_pattern(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v.strip():
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"once_pattern is not a valid regex: {exc}") from exc
        return v

    @field_validator("sub_type")
    @classmethod
    def validate_sub_type(cls, v: Optional[str]) -> Optional[str]:
        return normalize_sub_type(v)

    @model_validator(mode="after")
    def validate_credentials(self) -> "SourceConfig":
        if self.password and not self.username:
            raise ValueError("password given without username")
        return self

    @property
    def key(self) -> str:
        return self.id or self.name

    def locale_for(self, path: str) -> str:
        """First configured locale whose path prefixes ``path``, else the default."""
        for entry in self.locale_paths:
            if path.startswith(entry.path):
                return entry.locale
        return self.default_locale


# ============================================================================
# Top-level Config
# ============================================================================


class ContentSyncConfig(BaseModel):
    """Top-level ContentSync configuration."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    http: HttpClientConfig = Field(default_factory=HttpClientConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    cache: CachePolicy = Field(default_factory=CachePolicy)
    traversal: TraversalPolicy = Field(default_factory=TraversalPolicy)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sources: List[SourceConfig] = Field(default_factory=list)
    mappings: Dict[str, ContentMapping] = Field(
        default_factory=dict, description="Content mapping per source name"
    )

    @field_validator("sources")
    @classmethod
    def validate_unique_sources(cls, v: List[SourceConfig]) -> List[SourceConfig]:
        names = [source.name for source in v]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source names: {duplicates}")
        return v

    def source(self, name_or_id: str) -> Optional[SourceConfig]:
        """Look up a source by name, falling back to its id."""
        for source in self.sources:
            if source.name == name_or_id:
                return source
        for source in self.sources:
            if source.id == name_or_id:
                return source
        return None

    def mapping_for(self, source: SourceConfig) -> Optional[ContentMapping]:
        return self.mappings.get(source.name) or (
            self.mappings.get(source.id) if source.id else None
        )

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        import hashlib
        import json

        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()


__all__ = [
    "CachePolicy",
    "ContentSyncConfig",
    "HttpClientConfig",
    "LocalePath",
    "LoggingConfig",
    "RetryPolicy",
    "SourceConfig",
    "TraversalPolicy",
]
