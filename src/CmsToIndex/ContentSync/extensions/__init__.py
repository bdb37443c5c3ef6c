"""Mapping extensions resolved by string key.

Importing this package registers the built-in extensions.
"""

from .registry import (
    AttributeExtension,
    ContentExtension,
    DeltaDateExtension,
    UrlResolverExtension,
    get_extension,
    get_registry,
    register_extension,
    unregister_extension,
)

from . import builtin  # noqa: E402,F401  (registers built-ins)

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
