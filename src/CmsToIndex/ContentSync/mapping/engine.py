# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.mapping.engine",
#   "purpose": "Resolve a node's target attributes from the session's mapping model",
#   "sections": [
#     {
#       "id": "attributemappingengine",
#       "name": "AttributeMappingEngine",
#       "anchor": "class-attributemappingengine",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Attribute mapping engine.

**Purpose**
-----------
Turn one environment-bound node into a :class:`TargetAttrValueMap` by walking
the target attributes of the session's mapping model.

**Resolution order per target attribute**
-----------------------------------------
1. Literal ``text_value`` wins outright.
2. An extension with no source list resolves the whole attribute.
3. Otherwise every source attribute contributes, in order: through its own
   extension when it names one, else by reading the node property (content
   object first, then projected attributes). Tag sources additionally expand
   into facet attributes. ``unique_values`` de-duplicates the target's list.

A failure inside one target attribute is logged and contributes nothing; the
other attributes still resolve.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.errors import ExtensionError
from CmsToIndex.ContentSync.extensions import get_extension
from CmsToIndex.ContentSync.fetch import RepositoryFetcher, get_fetcher
from CmsToIndex.ContentSync.mapping.models import SourceAttr, TargetAttr
from CmsToIndex.ContentSync.mapping.tags import TagResolver
from CmsToIndex.ContentSync.mapping.values import MultiValue, TargetAttrValueMap
from CmsToIndex.ContentSync.node import ContentNode, EnvironmentNode
from CmsToIndex.ContentSync.text import html_to_text
from CmsToIndex.ContentSync.tree import render_values

LOGGER = logging.getLogger(__name__)


def read_property(node: ContentNode, name: Optional[str]) -> Any:
    """Value of ``name`` from the content object, else from projected attributes."""
    if not name:
        return None
    if name in node.content:
        return node.content[name]
    return node.attributes.get(name)


class AttributeMappingEngine:
    """Resolve mapping models against nodes."""

    def __init__(self, fetcher: Optional[RepositoryFetcher] = None) -> None:
        self.fetcher = fetcher or get_fetcher()
        self.tags = TagResolver(self.fetcher)

    def resolve(self, session, node: EnvironmentNode) -> TargetAttrValueMap:
        result = TargetAttrValueMap()
        model = session.model
        if model is None:
            LOGGER.debug("No mapping model; nothing to resolve for %s", node.node.path)
            return result

        for target in model.target_attrs:
            try:
                result.merge(self.resolve_target(session, target, node))
            except Exception:
                LOGGER.exception(
                    "Attribute %s failed for %s", target.name, session.describe(node.node.path)
                )

        if model.extension:
            try:
                result.merge(self._run_content_extension(model.extension, node, session))
            except Exception:
                LOGGER.exception(
                    "Content extension %s failed for %s",
                    model.extension,
                    session.describe(node.node.path),
                )
        return result

    # ------------------------------------------------------------------ targets

    def resolve_target(
        self, session, target: TargetAttr, node: EnvironmentNode
    ) -> TargetAttrValueMap:
        if target.text_value:
            return TargetAttrValueMap.single_item(target.name, [target.text_value])

        if target.resolved_by_extension:
            values = self._run_attribute_extension(target.extension, target, None, node, session)
            return TargetAttrValueMap.single_item(target.name, values)

        contributions = TargetAttrValueMap()
        for source_attr in target.source_attrs or []:
            contributions.merge(self.resolve_source(session, target, source_attr, node))
        return contributions

    def resolve_source(
        self, session, target: TargetAttr, source_attr: SourceAttr, node: EnvironmentNode
    ) -> TargetAttrValueMap:
        if source_attr.extension:
            values = self._run_attribute_extension(
                source_attr.extension, target, source_attr, node, session
            )
            result = TargetAttrValueMap.single_item(target.name, values)
        else:
            result = TargetAttrValueMap()
            raw = read_property(node.node, source_attr.name)
            values = self._render(raw, source_attr.convert_html_to_text)
            if values:
                result.add(target.name, values)

        if source_attr.name == c.CQ_TAGS:
            if result.get(target.name):
                tags: List[str] = list(result[target.name])
            else:
                tags = render_values(read_property(node.node, c.CQ_TAGS))
            result.merge(self.tags.resolve(tags, session, node))

        if source_attr.unique_values and target.name in result:
            result[target.name] = result[target.name].unique()
        return result

    @staticmethod
    def _render(raw: Any, convert_html: bool) -> MultiValue:
        values = render_values(raw)
        if convert_html:
            values = [text for text in (html_to_text(value) for value in values) if text]
        return MultiValue(values)

    # --------------------------------------------------------------- extensions

    def _run_attribute_extension(
        self,
        key: Optional[str],
        target: TargetAttr,
        source_attr: Optional[SourceAttr],
        node: EnvironmentNode,
        session,
    ) -> MultiValue:
        extension = get_extension(key)
        if extension is None:
            return MultiValue()
        if not hasattr(extension, "extract"):
            LOGGER.warning("Extension %s cannot resolve attributes (target %s)", key, target.name)
            return MultiValue()
        try:
            values = extension.extract(target, source_attr, node, session.source)
        except Exception as exc:
            raise ExtensionError(str(exc), extension=key, path=node.node.path) from exc
        if values is None:
            return MultiValue()
        if isinstance(values, str):
            return MultiValue.single(values)
        return values if isinstance(values, MultiValue) else MultiValue(values)

    def _run_content_extension(
        self, key: str, node: EnvironmentNode, session
    ) -> TargetAttrValueMap:
        extension = get_extension(key)
        if extension is None or not hasattr(extension, "contribute"):
            return TargetAttrValueMap()
        try:
            contributed = extension.contribute(node, session.source)
        except Exception as exc:
            raise ExtensionError(str(exc), extension=key, path=node.node.path) from exc
        if isinstance(contributed, TargetAttrValueMap):
            return contributed
        result = TargetAttrValueMap()
        for name, values in (contributed or {}).items():
            result.add(name, [values] if isinstance(values, str) else values)
        return result


__all__ = ["AttributeMappingEngine", "read_property"]
