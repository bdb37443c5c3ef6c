"""Pure helpers over decoded JSON trees.

Values are the plain Python rendering of JSON: ``dict``, ``list``, ``str``,
``int``/``float``, ``bool`` and ``None``. Nothing here depends on the HTTP
layer or mutates its input.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional, Sequence

LOGGER = logging.getLogger(__name__)

JsonObject = Mapping[str, Any]


def iter_strings(value: Any) -> Iterator[str]:
    """Yield every string leaf below ``value``, depth first."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for child in value.values():
            yield from iter_strings(child)
    elif isinstance(value, list):
        for child in value:
            yield from iter_strings(child)


def find_references(value: Any, marker: str) -> frozenset[str]:
    """Return all string leaves starting with ``marker``."""
    return frozenset(text for text in iter_strings(value) if text.startswith(marker))


def descend(root: Any, segments: Sequence[str]) -> Optional[JsonObject]:
    """Follow ``segments`` through nested objects.

    Returns ``None`` when a segment is missing or does not hold an object.
    """
    current = root
    for segment in segments:
        if not isinstance(current, Mapping):
            return None
        current = current.get(segment)
    if isinstance(current, Mapping):
        return current
    return None


def child_object(value: Any, key: str) -> JsonObject:
    """Return ``value[key]`` when it is an object, otherwise an empty mapping."""
    if isinstance(value, Mapping):
        child = value.get(key)
        if isinstance(child, Mapping):
            return child
    return {}


def render_scalar(value: Any) -> Optional[str]:
    """Render a JSON scalar the way it reads in the repository UI.

    Objects and ``null`` have no scalar rendering and yield ``None``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def render_values(value: Any) -> list[str]:
    """Render a property into zero or more strings, one per array element."""
    if isinstance(value, list):
        rendered = (render_scalar(item) for item in value)
        return [item for item in rendered if item is not None]
    single = render_scalar(value)
    return [] if single is None else [single]


__all__ = [
    "JsonObject",
    "child_object",
    "descend",
    "find_references",
    "iter_strings",
    "render_scalar",
    "render_values",
]
