"""Per-run state shared by traversal, mapping and job building.

A :class:`Session` lives for exactly one run (full or explicit paths). The
only part that changes during the run is the attribute-spec list, which grows
when tag resolution discovers new facets; that list is guarded by a lock so
bounded-concurrency traversal can register facets from worker threads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from CmsToIndex.ContentSync.config.models import ContentSyncConfig, SourceConfig, TraversalPolicy
from CmsToIndex.ContentSync.logging_config import generate_correlation_id
from CmsToIndex.ContentSync.mapping.models import (
    AttributeSpec,
    ContentMapping,
    MappingModel,
    select_model,
)
from CmsToIndex.ContentSync.node import IndexEvent

LOGGER = logging.getLogger(__name__)


class PathAttribute(str, Enum):
    """How the entries of a :class:`PathList` identify content."""

    ID = "id"
    URL = "url"


@dataclass
class PathList:
    """Explicit indexing request for a source."""

    paths: List[str] = field(default_factory=list)
    event: IndexEvent = IndexEvent.NONE
    recursive: bool = True
    attribute: PathAttribute = PathAttribute.ID


@dataclass
class Session:
    """Resolved configuration and mutable facet registry for one run."""

    source: SourceConfig
    traversal: TraversalPolicy = field(default_factory=TraversalPolicy)
    mapping: Optional[ContentMapping] = None
    model: Optional[MappingModel] = None
    event: IndexEvent = IndexEvent.NONE
    standalone: bool = False
    recursive: bool = True
    site_name: Optional[str] = None
    transaction_id: str = field(default_factory=generate_correlation_id)
    attribute_specs: List[AttributeSpec] = field(default_factory=list)
    _spec_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def provider(self) -> str:
        return self.source.provider

    @property
    def source_name(self) -> str:
        return self.source.name

    @property
    def content_type(self) -> Optional[str]:
        return self.source.content_type

    @property
    def sub_type(self) -> Optional[str]:
        if self.model is not None and self.model.sub_type:
            return self.model.sub_type
        return self.source.sub_type

    def register_attribute_spec(self, spec: AttributeSpec) -> bool:
        """Add ``spec`` unless an attribute of that name is already declared."""
        with self._spec_lock:
            if any(existing.name == spec.name for existing in self.attribute_specs):
                return False
            self.attribute_specs.append(spec)
        LOGGER.debug("Registered attribute spec %s for %s", spec.name, self.source_name)
        return True

    def has_attribute_spec(self, name: str) -> bool:
        with self._spec_lock:
            return any(existing.name == name for existing in self.attribute_specs)

    def specs_for(self, names) -> List[AttributeSpec]:
        """Declared specs whose name is in ``names``, in declaration order."""
        wanted = set(names)
        with self._spec_lock:
            return [spec for spec in self.attribute_specs if spec.name in wanted]

    def describe(self, path: str) -> str:
        return f"{self.source_name}:{path} [tx={self.transaction_id}]"


def build_session(
    config: ContentSyncConfig,
    source: SourceConfig,
    *,
    event: IndexEvent = IndexEvent.NONE,
    standalone: bool = False,
    recursive: bool = True,
    site_name: Optional[str] = None,
) -> Session:
    """Create the session for one run of ``source``."""
    mapping = config.mapping_for(source)
    model = select_model(mapping, source.content_type) if source.content_type else None
    if mapping is not None and model is None:
        LOGGER.warning(
            "No mapping model for content type %r in source %s", source.content_type, source.name
        )
    specs = list(mapping.target_attr_definitions) if mapping is not None else []
    return Session(
        source=source,
        traversal=config.traversal,
        mapping=mapping,
        model=model,
        event=event,
        standalone=standalone,
        recursive=recursive,
        site_name=site_name if site_name is not None else source.site_name,
        attribute_specs=specs,
    )


__all__ = ["PathAttribute", "PathList", "Session", "build_session"]
