# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.node",
#   "purpose": "Typed view of one repository node parsed from its JSON subtree",
#   "sections": [
#     {
#       "id": "indexevent",
#       "name": "IndexEvent",
#       "anchor": "class-indexevent",
#       "kind": "class"
#     },
#     {
#       "id": "environment",
#       "name": "Environment",
#       "anchor": "class-environment",
#       "kind": "class"
#     },
#     {
#       "id": "parse-repository-date",
#       "name": "parse_repository_date",
#       "anchor": "function-parse-repository-date",
#       "kind": "function"
#     },
#     {
#       "id": "contentnode",
#       "name": "ContentNode",
#       "anchor": "class-contentnode",
#       "kind": "class"
#     },
#     {
#       "id": "parse-node",
#       "name": "parse_node",
#       "anchor": "function-parse-node",
#       "kind": "function"
#     },
#     {
#       "id": "environmentnode",
#       "name": "EnvironmentNode",
#       "anchor": "class-environmentnode",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Content node model.

**Purpose**
-----------
Turn the JSON subtree returned for a repository path into a
:class:`ContentNode`: identity, node type, timestamps, publication state,
content-fragment flag and the cross-reference paths found anywhere in the
subtree.

**Responsibilities**
--------------------
- Never raise while parsing; malformed dates leave the field unset and log
  a warning.
- Scan every string leaf for references under the content root so cascade
  re-indexing works for nodes that are not themselves indexed.
- Project a configurable sub-object ("data path") onto a flat attribute map
  with ISO-8601 normalisation of repository dates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Mapping, Optional

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.tree import child_object, descend, find_references

if TYPE_CHECKING:
    from CmsToIndex.ContentSync.config.models import SourceConfig

LOGGER = logging.getLogger(__name__)

_REPOSITORY_DATE = re.compile(
    r"(?P<weekday>[A-Za-z]{3}) (?P<month>[A-Za-z]{3}) "
    r"(?P<rest>\d{1,2} \d{4} \d{1,2}:\d{2}:\d{2}) GMT(?P<offset>[+-]\d{4})$"
)


class IndexEvent(str, Enum):
    """Lifecycle event attached to an explicit indexing request."""

    NONE = "none"
    INDEXING = "indexing"
    DEINDEXING = "deindexing"
    PUBLISHING = "publishing"
    UNPUBLISHING = "unpublishing"


class Environment(str, Enum):
    """Delivery environment a job is emitted for."""

    AUTHORING = "authoring"
    PUBLISHING = "publishing"


# ============================================================================
# Dates
# ============================================================================


def parse_repository_date(value: Any) -> Optional[datetime]:
    """Parse a repository timestamp such as ``Mon Jan 01 2024 10:30:00 GMT+0000``.

    Day and month names are matched against English tables, so the result does
    not depend on the process locale. Returns ``None`` for anything that is
    not a string in that format.
    """
    if not isinstance(value, str):
        return None
    match = _REPOSITORY_DATE.match(value.strip())
    if match is None or match["weekday"].title() not in c.DAY_NAMES:
        return None
    month = match["month"].title()
    if month not in c.MONTH_NAMES:
        return None
    numeric = f"{c.MONTH_NAMES.index(month) + 1:02d} {match['rest']} {match['offset']}"
    try:
        return datetime.strptime(numeric, c.EXTERNAL_DATE_FORMAT)
    except ValueError:
        return None


def to_iso_utc(value: datetime) -> str:
    """Format ``value`` as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    return value.astimezone(timezone.utc).strftime(c.ISO_UTC_FORMAT)


# ============================================================================
# Node model
# ============================================================================


@dataclass
class ContentNode:
    """Parsed view of one repository path.

    ``path`` is the node identity and cannot be reassigned; ``attributes`` is
    empty until :meth:`set_data_path` projects a sub-object onto it.
    """

    path: str
    raw: Mapping[str, Any]
    type: str = ""
    content: Mapping[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None
    publication_at: Optional[datetime] = None
    delivered: bool = False
    is_content_fragment: bool = False
    title: str = ""
    template: str = ""
    model: Optional[str] = None
    dependencies: FrozenSet[str] = frozenset()
    attributes: Dict[str, Any] = field(default_factory=dict)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "path" and "path" in self.__dict__:
            raise AttributeError("ContentNode.path cannot be reassigned")
        object.__setattr__(self, name, value)

    @property
    def url(self) -> str:
        return self.path + c.HTML_EXTENSION

    @property
    def has_content(self) -> bool:
        return bool(self.content)

    def set_data_path(self, data_path: str) -> bool:
        """Project the object at ``data_path`` (below the content object) onto ``attributes``.

        Returns ``False`` and keeps the previous attributes when any segment is
        missing or not an object.
        """
        if not data_path:
            LOGGER.warning("Empty data path requested for %s", self.path)
            return False
        target = descend(self.content, data_path.split("/"))
        if target is None:
            LOGGER.warning("Data path %r not found or not an object for %s", data_path, self.path)
            return False

        projected: Dict[str, Any] = {}
        for key, value in target.items():
            if key.endswith(c.LAST_MODIFIED_SUFFIX):
                continue
            parsed = parse_repository_date(value)
            projected[key] = to_iso_utc(parsed) if parsed is not None else value
        self.attributes = projected
        LOGGER.debug("Projected %d attributes from %s for %s", len(projected), data_path, self.path)
        return True


def _parse_date_field(path: str, source: Mapping[str, Any], *keys: str) -> Optional[datetime]:
    for key in keys:
        if key not in source:
            continue
        parsed = parse_repository_date(source[key])
        if parsed is None:
            LOGGER.warning("Unparseable %s value %r for %s", key, source[key], path)
        return parsed
    return None


def _is_activated(content: Mapping[str, Any], key: str) -> bool:
    return content.get(key) == c.ACTIVATE


def parse_node(
    path: str,
    raw: Mapping[str, Any],
    event: IndexEvent = IndexEvent.NONE,
    now: Optional[datetime] = None,
) -> ContentNode:
    """Build a :class:`ContentNode` from the JSON subtree fetched for ``path``."""
    node_type = raw.get(c.JCR_PRIMARY_TYPE)
    node = ContentNode(
        path=path,
        raw=raw,
        type=node_type if isinstance(node_type, str) else "",
        dependencies=find_references(raw, c.CONTENT_ROOT),
    )
    node.created_at = _parse_date_field(path, raw, c.JCR_CREATED)

    content = child_object(raw, c.JCR_CONTENT)
    if not content:
        return node
    node.content = content

    if event is IndexEvent.PUBLISHING:
        LOGGER.info("Publishing event forces delivered state for %s", path)
        node.delivered = True
    elif event is IndexEvent.UNPUBLISHING:
        LOGGER.info("Unpublishing event forces undelivered state for %s", path)
        node.delivered = False
    else:
        node.delivered = _is_activated(content, c.CQ_LAST_REPLICATION_ACTION) and _is_activated(
            content, c.CQ_LAST_REPLICATION_ACTION_PUBLISH
        )

    title = content.get(c.JCR_TITLE)
    template = content.get(c.CQ_TEMPLATE)
    node.title = title if isinstance(title, str) else ""
    node.template = template if isinstance(template, str) else ""
    node.is_content_fragment = content.get(c.CONTENT_FRAGMENT) is True

    model = child_object(content, c.DATA_FOLDER).get(c.CQ_MODEL)
    node.model = model if isinstance(model, str) else None

    node.last_modified_at = _parse_date_field(
        path, content, c.JCR_LAST_MODIFIED, c.CQ_LAST_MODIFIED
    )
    if c.CQ_LAST_REPLICATED_PUBLISH in content or c.CQ_LAST_REPLICATED in content:
        node.publication_at = _parse_date_field(
            path, content, c.CQ_LAST_REPLICATED_PUBLISH, c.CQ_LAST_REPLICATED
        )
    else:
        node.publication_at = now or datetime.now(timezone.utc)
    return node


# ============================================================================
# Environment binding
# ============================================================================


@dataclass(frozen=True)
class EnvironmentNode:
    """A node evaluated for one delivery environment."""

    node: ContentNode
    environment: Environment

    def url_prefix(self, source: "SourceConfig") -> str:
        if self.environment is Environment.AUTHORING:
            return source.author_url_prefix
        return source.publish_url_prefix

    def site(self, source: "SourceConfig") -> str:
        if self.environment is Environment.AUTHORING:
            return source.author_site
        return source.publish_site


__all__ = [
    "ContentNode",
    "Environment",
    "EnvironmentNode",
    "IndexEvent",
    "parse_node",
    "parse_repository_date",
    "to_iso_utc",
]
