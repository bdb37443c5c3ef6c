"""
ContentSync Configuration Package

Public API for loading, validating, and introspecting ContentSync configuration.

Example:
    from CmsToIndex.ContentSync.config import load_config

    config = load_config(
        path="contentsync.yaml",
        cli_overrides={"traversal": {"concurrent": True}},
    )
    source = config.source("corporate-site")
"""

from .loader import (
    export_config_schema,
    load_config,
    validate_config_file,
)
from .models import (
    CachePolicy,
    ContentSyncConfig,
    HttpClientConfig,
    LocalePath,
    LoggingConfig,
    RetryPolicy,
    SourceConfig,
    TraversalPolicy,
)

__all__ = [
    # Models
    "ContentSyncConfig",
    "SourceConfig",
    "LocalePath",
    "HttpClientConfig",
    "RetryPolicy",
    "CachePolicy",
    "TraversalPolicy",
    "LoggingConfig",
    # Loading/validation
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
