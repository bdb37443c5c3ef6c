"""
Extension Registry

String-keyed plug-in point for mapping customisation:
- @register_extension(name) decorator for extension classes
- get_extension(name) returning a cached instance, or None for unknown keys
- Protocols describing the four extension kinds

An unknown key is a normal "no extension" outcome and is only logged.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Type, runtime_checkable

if TYPE_CHECKING:
    from CmsToIndex.ContentSync.config.models import SourceConfig
    from CmsToIndex.ContentSync.mapping.models import SourceAttr, TargetAttr
    from CmsToIndex.ContentSync.mapping.values import MultiValue, TargetAttrValueMap
    from CmsToIndex.ContentSync.node import EnvironmentNode

_LOGGER = logging.getLogger(__name__)

# ============================================================================
# Extension kinds
# ============================================================================


@runtime_checkable
class AttributeExtension(Protocol):
    """Produces the values of one target attribute."""

    def extract(
        self,
        target: "TargetAttr",
        source_attr: Optional["SourceAttr"],
        node: "EnvironmentNode",
        source: "SourceConfig",
    ) -> Optional["MultiValue"]: ...


@runtime_checkable
class DeltaDateExtension(Protocol):
    """Computes the change-fingerprint date of a node."""

    def delta_date(self, node: "EnvironmentNode", source: "SourceConfig") -> Optional[datetime]: ...


@runtime_checkable
class UrlResolverExtension(Protocol):
    """Maps a public URL back to a repository id."""

    def id_from_url(self, url: str, source: "SourceConfig") -> Optional[str]: ...


@runtime_checkable
class ContentExtension(Protocol):
    """Contributes extra attributes for every node of a mapping model."""

    def contribute(
        self, node: "EnvironmentNode", source: "SourceConfig"
    ) -> "TargetAttrValueMap": ...


# ============================================================================
# Registry
# ============================================================================

_REGISTRY: Dict[str, Type[Any]] = {}
_INSTANCES: Dict[str, Any] = {}
_LOCK = threading.Lock()


def register_extension(name: str):
    """Decorator to register an extension class under ``name``."""

    def deco(cls: Type[Any]) -> Type[Any]:
        with _LOCK:
            if name in _REGISTRY:
                _LOGGER.warning("Overriding already-registered extension: %s", name)
            _REGISTRY[name] = cls
            _INSTANCES.pop(name, None)
        cls._extension_name = name  # type: ignore[attr-defined]
        _LOGGER.debug("Registered extension: %s → %s", name, cls.__name__)
        return cls

    return deco


def get_registry() -> Dict[str, Type[Any]]:
    """Get the extension registry (copy)."""
    _ensure_builtins()
    with _LOCK:
        return dict(_REGISTRY)


def get_extension(name: Optional[str]) -> Optional[Any]:
    """Return the shared instance registered under ``name`` or ``None``."""
    if not name or not name.strip():
        return None
    _ensure_builtins()
    key = name.strip()
    with _LOCK:
        instance = _INSTANCES.get(key)
        if instance is not None:
            return instance
        cls = _REGISTRY.get(key)
        if cls is None:
            _LOGGER.warning("Unknown extension %r; available: %s", key, sorted(_REGISTRY))
            return None
        instance = cls()
        _INSTANCES[key] = instance
        return instance


def unregister_extension(name: str) -> None:
    """Remove ``name`` from the registry (tests only)."""
    with _LOCK:
        _REGISTRY.pop(name, None)
        _INSTANCES.pop(name, None)


def _ensure_builtins() -> None:
    # Import for its registration side effect.
    from CmsToIndex.ContentSync.extensions import builtin  # noqa: F401


__all__ = [
    "AttributeExtension",
    "ContentExtension",
    "DeltaDateExtension",
    "UrlResolverExtension",
    "get_extension",
    "get_registry",
    "register_extension",
    "unregister_extension",
]
