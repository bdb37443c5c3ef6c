"""Tag taxonomy resolution.

Tags are stored on nodes as ``facet:value`` strings (``category:news``). Each
one becomes a value of the attribute named after its facet, labelled from the
taxonomy node ``/content/_cq_tags/{facet}/{value}``:

1. the label for the node's exact locale (``jcr:title.en_US``)
2. the label for its language (``jcr:title.en``)
3. the default label (``jcr:title``)
4. the raw tag value

The first time a run meets a facet, an attribute spec is registered for it on
the session (multi-valued facet, labelled from ``/content/_cq_tags/{facet}``).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.fetch import RepositoryFetcher
from CmsToIndex.ContentSync.mapping.models import AttributeSpec
from CmsToIndex.ContentSync.mapping.values import TargetAttrValueMap
from CmsToIndex.ContentSync.node import EnvironmentNode

LOGGER = logging.getLogger(__name__)

DEFAULT_LABEL = "default"
_TITLE_PREFIX = c.JCR_TITLE + "."


def normalize_locale(locale: str) -> str:
    """``EN-us`` / ``en_us`` → ``en_US``; single-part locales are lower-cased."""
    parts = locale.replace("-", "_").split("_")
    if len(parts) == 2 and parts[0] and parts[1]:
        return f"{parts[0].lower()}_{parts[1].upper()}"
    return locale.lower()


def tag_labels(document: Mapping[str, Any]) -> Dict[str, str]:
    """Locale → label map of a taxonomy node; the plain title is stored as ``default``."""
    labels: Dict[str, str] = {}
    title = document.get(c.JCR_TITLE)
    if isinstance(title, str):
        labels[DEFAULT_LABEL] = title
    for key, value in document.items():
        if key.startswith(_TITLE_PREFIX) and isinstance(value, str):
            labels[normalize_locale(key[len(_TITLE_PREFIX) :])] = value
    return labels


def pick_label(labels: Mapping[str, str], locale: str, raw_value: str) -> str:
    normalized = normalize_locale(locale)
    language = normalized.split("_", 1)[0]
    for key in (normalized, language, DEFAULT_LABEL):
        if key in labels:
            return labels[key]
    return raw_value


def split_tag(tag: str) -> Optional[Tuple[str, str]]:
    """``"facet:value"`` → ``("facet", "value")``; ``None`` when malformed."""
    if ":" not in tag:
        return None
    facet, value = tag.split(":", 1)
    facet, value = facet.strip(), value.strip()
    if not facet or not value:
        return None
    return facet, value


class TagResolver:
    """Resolve tag strings to facet attributes, registering facet specs on the session."""

    def __init__(self, fetcher: RepositoryFetcher) -> None:
        self.fetcher = fetcher

    def resolve(self, tags: Iterable[str], session, node: EnvironmentNode) -> TargetAttrValueMap:
        result = TargetAttrValueMap()
        locale = session.source.locale_for(node.node.path)
        for tag in tags:
            parsed = split_tag(tag) if isinstance(tag, str) else None
            if parsed is None:
                LOGGER.debug("Skipping malformed tag %r on %s", tag, node.node.path)
                continue
            facet, value = parsed
            if not session.has_attribute_spec(facet):
                session.register_attribute_spec(self.facet_spec(facet, session.source))
            result.add_single(facet, self.label(facet, value, locale, session.source))
        return result

    def label(self, facet: str, value: str, locale: str, source) -> str:
        document = self.fetcher.fetch(f"{c.TAGS_ROOT}/{facet}/{value}", source, use_cache=True)
        if not document:
            return value
        return pick_label(tag_labels(document), locale, value)

    def facet_spec(self, facet: str, source) -> AttributeSpec:
        document = self.fetcher.fetch(f"{c.TAGS_ROOT}/{facet}", source, use_cache=True)
        labels = tag_labels(document) if document else {}
        return AttributeSpec(
            name=facet,
            description=labels.get(DEFAULT_LABEL),
            type="string",
            mandatory=False,
            multi_valued=True,
            facet=True,
            facet_name=labels,
        )


__all__ = ["TagResolver", "normalize_locale", "pick_label", "split_tag", "tag_labels"]
