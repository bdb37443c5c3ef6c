# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.jobs",
#   "purpose": "Delta fingerprints and CREATE/DELETE job construction per delivery environment",
#   "sections": [
#     {
#       "id": "jobaction",
#       "name": "JobAction",
#       "anchor": "class-jobaction",
#       "kind": "class"
#     },
#     {
#       "id": "jobitem",
#       "name": "JobItem",
#       "anchor": "class-jobitem",
#       "kind": "class"
#     },
#     {
#       "id": "flatten-attributes",
#       "name": "flatten_attributes",
#       "anchor": "function-flatten-attributes",
#       "kind": "function"
#     },
#     {
#       "id": "jobbuilder",
#       "name": "JobBuilder",
#       "anchor": "class-jobbuilder",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Delta and job construction.

**Purpose**
-----------
Decide, for one parsed node, which index instructions to emit and build them:

- one CREATE job per enabled environment (authoring always; publishing only
  when the node is delivered)
- a forced DELETE on the publishing environment when an explicitly requested
  node is no longer delivered
- one DELETE per previously recorded index entry when a requested path has
  disappeared from the repository

The CREATE checksum is the epoch-millisecond value of the node's delta date,
so an unchanged node always yields the same checksum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.extensions import get_extension
from CmsToIndex.ContentSync.extensions.builtin import DefaultDeltaDate
from CmsToIndex.ContentSync.mapping.engine import AttributeMappingEngine
from CmsToIndex.ContentSync.mapping.models import AttributeSpec
from CmsToIndex.ContentSync.mapping.values import TargetAttrValueMap
from CmsToIndex.ContentSync.node import ContentNode, Environment, EnvironmentNode
from CmsToIndex.ContentSync.session import Session
from CmsToIndex.ContentSync.sinks import JobSink
from CmsToIndex.ContentSync.state import IndexingContext

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class JobAction(str, Enum):
    CREATE = "create"
    DELETE = "delete"


@dataclass(frozen=True)
class JobItem:
    """One instruction for the downstream indexing queue."""

    action: JobAction
    object_id: str
    sites: Tuple[str, ...]
    locale: str
    environment: Environment
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    checksum: Optional[str] = None
    dependencies: FrozenSet[str] = frozenset()
    specs: Tuple[AttributeSpec, ...] = ()
    source: str = ""
    provider: str = c.DEFAULT_PROVIDER
    standalone: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "object_id": self.object_id,
            "sites": list(self.sites),
            "locale": self.locale,
            "environment": self.environment.value,
            "attributes": {
                name: list(value) if isinstance(value, tuple) else value
                for name, value in self.attributes.items()
            },
            "checksum": self.checksum,
            "dependencies": sorted(self.dependencies),
            "specs": [spec.model_dump(mode="json") for spec in self.specs],
            "source": self.source,
            "provider": self.provider,
            "standalone": self.standalone,
        }


def epoch_millis(value: datetime) -> int:
    """Milliseconds since the Unix epoch; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def flatten_attributes(values: TargetAttrValueMap, site_name: Optional[str]) -> Dict[str, Any]:
    """Collapse resolved values into job attributes.

    The first value of a name is stored as a scalar; a second one turns it
    into a list. Blank values are dropped.
    """
    attributes: Dict[str, Any] = {}
    if site_name and site_name.strip():
        attributes[c.SITE_ATTRIBUTE] = site_name
    for name, multi_value in values.items():
        for value in multi_value:
            if value is None or not str(value).strip():
                continue
            if name not in attributes:
                attributes[name] = value
            elif isinstance(attributes[name], list):
                attributes[name].append(value)
            else:
                attributes[name] = [attributes[name], value]
    return attributes


def _freeze(attributes: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy of ``attributes``; multi-valued entries become tuples."""
    return MappingProxyType(
        {
            name: tuple(value) if isinstance(value, list) else value
            for name, value in attributes.items()
        }
    )


class JobBuilder:
    """Build and emit the jobs for parsed nodes of one source."""

    def __init__(
        self,
        engine: AttributeMappingEngine,
        sink: JobSink,
        context: Optional[IndexingContext] = None,
    ) -> None:
        self.engine = engine
        self.sink = sink
        self.context = context

    # ------------------------------------------------------------------ delta

    def delta_date(self, session: Session, node: EnvironmentNode) -> datetime:
        """Custom delta extension result, else modification, creation or now."""
        key = session.mapping.delta_extension if session.mapping is not None else None
        extension = get_extension(key) if key else None
        if extension is not None and hasattr(extension, "delta_date"):
            try:
                value = extension.delta_date(node, session.source)
            except Exception:
                LOGGER.exception("Delta extension %s failed for %s", key, node.node.path)
            else:
                if value is not None:
                    return value
        return DefaultDeltaDate().delta_date(node, session.source)

    # ----------------------------------------------------------------- builders

    def build_create_job(
        self,
        session: Session,
        node: EnvironmentNode,
        locale: str,
        attributes: Mapping[str, Any],
    ) -> JobItem:
        checksum = str(epoch_millis(self.delta_date(session, node)))
        return JobItem(
            action=JobAction.CREATE,
            object_id=node.node.path,
            sites=(node.site(session.source),),
            locale=locale,
            environment=node.environment,
            attributes=_freeze(attributes),
            checksum=checksum,
            dependencies=node.node.dependencies,
            specs=tuple(session.specs_for(attributes.keys())),
            source=session.source_name,
            provider=session.provider,
            standalone=session.standalone,
        )

    def build_delete_job(
        self,
        session: Session,
        sites: Sequence[str],
        locale: str,
        path: str,
        environment: Environment,
        dependencies: FrozenSet[str] = frozenset(),
    ) -> JobItem:
        return JobItem(
            action=JobAction.DELETE,
            object_id=path,
            sites=tuple(sites),
            locale=locale,
            environment=environment,
            dependencies=dependencies,
            source=session.source_name,
            provider=session.provider,
            standalone=session.standalone,
        )

    # -------------------------------------------------------------- eligibility

    def data_path_for(self, session: Session, node: ContentNode) -> Optional[str]:
        """Sub-object projected onto the node's attributes for asset sources."""
        if session.content_type != c.DAM_ASSET:
            return None
        if session.sub_type == c.CONTENT_FRAGMENT_SUB_TYPE and node.is_content_fragment:
            return c.DATA_MASTER
        if session.sub_type == c.STATIC_FILE:
            return c.METADATA
        return None

    def is_eligible(self, session: Session, node: ContentNode) -> bool:
        if not node.path.startswith(session.source.root_path):
            LOGGER.debug("Skipping %s outside root path %s", node.path, session.source.root_path)
            return False
        if session.content_type is None:
            LOGGER.warning("Content type is not configured for %s", session.source_name)
            return False
        if session.content_type == c.DAM_ASSET and self.data_path_for(session, node) is None:
            LOGGER.debug("Skipping asset %s: not a content fragment or static file", node.path)
            return False
        return True

    # ----------------------------------------------------------------- emission

    def index_node(self, session: Session, node: ContentNode) -> List[JobItem]:
        """Emit the jobs for ``node`` in every enabled environment."""
        if not self.is_eligible(session, node):
            return []
        data_path = self.data_path_for(session, node)
        if data_path:
            node.set_data_path(data_path)

        source = session.source
        emitted: List[JobItem] = []
        if source.author:
            emitted.append(self._emit_create(session, EnvironmentNode(node, Environment.AUTHORING)))
        if source.publish:
            publishing = EnvironmentNode(node, Environment.PUBLISHING)
            if node.delivered:
                emitted.append(self._emit_create(session, publishing))
            elif session.standalone:
                job = self.build_delete_job(
                    session,
                    [source.publish_site],
                    source.locale_for(node.path),
                    node.path,
                    Environment.PUBLISHING,
                    dependencies=node.dependencies,
                )
                LOGGER.info("Forcing delete, not published: %s", session.describe(node.path))
                self.emit(job)
                emitted.append(job)
            else:
                LOGGER.info("Ignoring delete, not published: %s", session.describe(node.path))
        return emitted

    def delete_missing(self, session: Session, path: str) -> List[JobItem]:
        """One DELETE per recorded index entry of ``path``."""
        if self.context is None:
            LOGGER.debug("No indexing context; cannot delete %s", path)
            return []
        records = self.context.find_records(path, session.source_name, session.provider)
        if not records:
            LOGGER.debug("No recorded index entries for %s", session.describe(path))
            return []

        emitted: List[JobItem] = []
        for record in records:
            try:
                job = self.build_delete_job(
                    session,
                    record.sites,
                    record.locale,
                    record.object_id,
                    Environment(record.environment),
                )
                LOGGER.info(
                    "Delete for missing content %s (%s)", session.describe(path), record.environment
                )
                self.emit(job)
                emitted.append(job)
            except Exception:
                LOGGER.exception("Failed to delete %s for record %s", path, record)
        return emitted

    def emit(self, job: JobItem) -> None:
        if not self.sink.add(job):
            LOGGER.warning("Sink rejected %s job for %s", job.action.value, job.object_id)

    def _emit_create(self, session: Session, node: EnvironmentNode) -> JobItem:
        values = self.engine.resolve(session, node)
        attributes = flatten_attributes(values, session.site_name)
        locale = session.source.locale_for(node.node.path)
        job = self.build_create_job(session, node, locale, attributes)
        self.emit(job)
        return job


__all__ = ["JobAction", "JobBuilder", "JobItem", "epoch_millis", "flatten_attributes"]
