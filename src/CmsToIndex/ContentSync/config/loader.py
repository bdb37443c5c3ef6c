# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.config.loader",
#   "purpose": "Build ContentSyncConfig from a YAML/JSON file, CMSTOINDEX_* variables and CLI overrides",
#   "sections": [
#     {
#       "id": "file-loading",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "environment-overlay",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "entry-point",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Source and Mapping Configuration Loader

A crawler deployment is described by one document holding the repository
sources and their content mappings. That document is layered:

1. **File**: ``contentsync.yaml`` (or ``.json``) with ``sources`` and ``mappings``
2. **Environment**: ``CMSTOINDEX_*`` variables, e.g. credentials injected by a scheduler
3. **CLI**: overrides built by the command line (``--verbose`` raises the log level)

Later layers win. Nested keys in variable names are separated by ``__``:
  CMSTOINDEX_TRAVERSAL__PARALLELISM=4  →  traversal.parallelism=4
  CMSTOINDEX_CACHE__TTL_SECONDS=60     →  cache.ttl_seconds=60
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Collection, Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from CmsToIndex.ContentSync.errors import ConfigurationError

from .models import ContentSyncConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "CMSTOINDEX_"

# Names the config file itself (read by the CLI), never a config key.
CONFIG_PATH_ENVVAR = f"{DEFAULT_ENV_PREFIX}CONFIG"


# ============================================================================
# Layers
# ============================================================================


def _parse_yaml(text: str) -> Any:
    return yaml.safe_load(text) or {}


_PARSERS = {
    ".yaml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".yml": (_parse_yaml, yaml.YAMLError, "YAML"),
    ".json": (json.loads, json.JSONDecodeError, "JSON"),
}


def _read_file(path: str) -> dict[str, Any]:
    """
    Parse the configuration document at ``path``.

    Raises:
        ConfigurationError: missing or unreadable file, unknown suffix, bad
            syntax, or a document whose root is not a mapping
    """
    document = Path(path)
    if not document.is_file():
        raise ConfigurationError(f"Config file not found: {path}")

    parser = _PARSERS.get(document.suffix.lower())
    if parser is None:
        raise ConfigurationError(
            f"Unsupported file format: {document.suffix}. Use .yaml, .yml or .json"
        )
    parse, syntax_error, label = parser

    try:
        raw = document.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = parse(raw)
    except syntax_error as exc:
        raise ConfigurationError(f"Invalid {label} in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping in {path}")
    return data


def _set_path(target: dict[str, Any], segments: list[str], value: Any) -> None:
    """Assign ``value`` at ``segments``, replacing scalars met on the way."""
    head, *rest = segments
    if not rest:
        target[head] = value
        return
    child = target.get(head)
    if not isinstance(child, dict):
        child = target[head] = {}
    _set_path(child, rest, value)


def _coerce_env_value(value: str) -> Any:
    """Decode JSON literals (numbers, booleans, lists, objects); other text stays a string."""
    try:
        return json.loads(value)
    except ValueError:
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return value


def _merge_env_overrides(
    data: dict[str, Any],
    env_prefix: str = DEFAULT_ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
    exclude: Collection[str] = (),
) -> dict[str, Any]:
    """Overlay ``{env_prefix}*`` variables onto ``data``, except names in ``exclude``."""
    env = os.environ if environ is None else environ
    for name in sorted(env):
        if not name.startswith(env_prefix) or name == env_prefix or name in exclude:
            continue
        segments = [part for part in name[len(env_prefix) :].lower().split("__") if part]
        if not segments:
            continue
        _set_path(data, segments, _coerce_env_value(env[name]))
        _LOGGER.debug("Environment override: %s → %s", name, ".".join(segments))
    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Deep-merge ``cli_overrides`` into ``data``; nested mappings merge key by key."""
    for key, value in (cli_overrides or {}).items():
        current = data.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _merge_cli_overrides(current, value)
        else:
            data[key] = dict(value) if isinstance(value, Mapping) else value
        _LOGGER.debug("CLI override: %s", key)
    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ContentSyncConfig:
    """
    Compose and validate the crawler configuration.

    Without ``path`` the document starts empty, so environment and CLI layers
    alone can describe a deployment. ``environ`` replaces ``os.environ``.

    Raises:
        ConfigurationError: unreadable file or a merged document that fails
            validation (a ``ValueError`` subclass)
    """
    data: dict[str, Any] = {}

    if path:
        try:
            data = _read_file(path)
        except ConfigurationError as e:
            _LOGGER.error("Failed to load config: %s", e)
            raise
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, env_prefix, environ, exclude={CONFIG_PATH_ENVVAR})
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = ContentSyncConfig.model_validate(data)
    except ValidationError as e:
        _LOGGER.error("Configuration validation failed: %s", e)
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    _LOGGER.info("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config


def validate_config_file(path: str) -> bool:
    """Validate a config file; raises ``ValueError`` when invalid."""
    load_config(path=path, environ={})
    return True


def export_config_schema() -> dict[str, Any]:
    """JSON Schema for ContentSyncConfig (Pydantic v2 format)."""
    return ContentSyncConfig.model_json_schema()
