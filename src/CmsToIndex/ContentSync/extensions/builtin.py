"""Built-in extensions, registered under stable keys.

=====================  =========================================================
key                    produces
=====================  =========================================================
``content-url``        public URL (environment prefix + path + ``.html``)
``content-id``         repository path
``type-name``          node primary type
``creation-date``      creation timestamp (ISO-8601 UTC)
``modification-date``  last modification, else creation timestamp
``publication-date``   last replication timestamp
``html2text``          plain text of an HTML attribute
``page-components``    plain text of responsive-grid components
``content-tags``       tag ids from the node's tags endpoint
``delta-date``         change fingerprint: modification, creation, now
=====================  =========================================================
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional
from urllib.parse import urlsplit

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.config.models import SourceConfig
from CmsToIndex.ContentSync.extensions.registry import register_extension
from CmsToIndex.ContentSync.fetch import get_fetcher
from CmsToIndex.ContentSync.mapping.models import SourceAttr, TargetAttr
from CmsToIndex.ContentSync.mapping.values import MultiValue
from CmsToIndex.ContentSync.node import EnvironmentNode, to_iso_utc
from CmsToIndex.ContentSync.text import html_to_text
from CmsToIndex.ContentSync.tree import child_object, render_scalar

LOGGER = logging.getLogger(__name__)


def _date_value(value: Optional[datetime]) -> MultiValue:
    return MultiValue() if value is None else MultiValue.single(to_iso_utc(value))


# ============================================================================
# Identity
# ============================================================================


@register_extension("content-url")
class ContentUrl:
    """Public URL of a node, also able to map such a URL back to its path."""

    @staticmethod
    def url_for(node: EnvironmentNode, source: SourceConfig) -> str:
        return f"{node.url_prefix(source)}{node.node.path}{c.HTML_EXTENSION}"

    def extract(
        self,
        target: TargetAttr,
        source_attr: Optional[SourceAttr],
        node: EnvironmentNode,
        source: SourceConfig,
    ) -> MultiValue:
        return MultiValue.single(self.url_for(node, source))

    def id_from_url(self, url: str, source: SourceConfig) -> Optional[str]:
        """Path component of ``url`` without the file extension of its last segment."""
        path = urlsplit(url).path
        if not path:
            return "/"
        last_slash = path.rfind("/")
        last_dot = path.rfind(".")
        if last_dot > last_slash:
            return path[:last_dot]
        return path


@register_extension("content-id")
class ContentId:
    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        return MultiValue.single(node.node.path)


@register_extension("type-name")
class TypeName:
    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        return MultiValue.single(node.node.type) if node.node.type else MultiValue()


# ============================================================================
# Dates
# ============================================================================


@register_extension("creation-date")
class CreationDate:
    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        return _date_value(node.node.created_at)


@register_extension("modification-date")
class ModificationDate:
    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        return _date_value(node.node.last_modified_at or node.node.created_at)


@register_extension("publication-date")
class PublicationDate:
    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        return _date_value(node.node.publication_at)


@register_extension("delta-date")
class DefaultDeltaDate:
    """Last modification, else creation, else the current time."""

    def delta_date(self, node: EnvironmentNode, source: SourceConfig) -> datetime:
        content = node.node
        if content.last_modified_at is not None:
            return content.last_modified_at
        if content.created_at is not None:
            return content.created_at
        return datetime.now(timezone.utc)


# ============================================================================
# Text
# ============================================================================


@register_extension("html2text")
class Html2Text:
    """Plain text of the source attribute, read from the projected attributes."""

    def extract(
        self,
        target: TargetAttr,
        source_attr: Optional[SourceAttr],
        node: EnvironmentNode,
        source: SourceConfig,
    ) -> MultiValue:
        name = source_attr.name if source_attr is not None else None
        if not name:
            return MultiValue()
        value = node.node.attributes.get(name)
        if value is None:
            value = node.node.content.get(name)
        text = render_scalar(value)
        return MultiValue.single(html_to_text(text)) if text else MultiValue()


def _component_html(component: Mapping[str, Any]) -> str:
    parts: List[str] = []
    text = component.get(c.TEXT)
    if isinstance(text, str):
        parts.append(text)
    for key, value in component.items():
        if key.startswith(c.COMPONENT_SKIP_PREFIXES) or not isinstance(value, Mapping):
            continue
        parts.append(_component_html(value))
    return "".join(parts)


@register_extension("page-components")
class PageComponents:
    """Text of every responsive grid directly under the page's ``root`` node."""

    separator = "\n"

    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        root = child_object(node.node.content, c.ROOT)
        if not root:
            return MultiValue()
        texts: List[str] = []
        for key, child in root.items():
            if not isinstance(child, Mapping):
                continue
            if child.get(c.SLING_RESOURCE_TYPE) != c.RESPONSIVE_GRID:
                continue
            html = _component_html(child)
            text = html_to_text(html) if html.strip() else ""
            if text:
                texts.append(text)
            else:
                LOGGER.debug("Empty component %s under %s", key, node.node.path)
        if not texts:
            return MultiValue()
        return MultiValue.single(self.separator.join(texts))


# ============================================================================
# Tags
# ============================================================================


@register_extension("content-tags")
class ContentTags:
    """Tag ids listed by ``{path}/jcr:content.tags.json``."""

    def extract(self, target, source_attr, node: EnvironmentNode, source) -> MultiValue:
        document = get_fetcher().fetch(node.node.path + c.TAGS_ENDPOINT_SUFFIX, source, True)
        if not document:
            return MultiValue()
        tags = document.get("tags")
        if not isinstance(tags, list):
            return MultiValue()
        return MultiValue(
            tag["tagID"]
            for tag in tags
            if isinstance(tag, Mapping) and isinstance(tag.get("tagID"), str)
        )


__all__ = [
    "ContentId",
    "ContentTags",
    "ContentUrl",
    "CreationDate",
    "DefaultDeltaDate",
    "Html2Text",
    "ModificationDate",
    "PageComponents",
    "PublicationDate",
    "TypeName",
]
