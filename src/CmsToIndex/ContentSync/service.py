"""Entry points for running content synchronisation.

:class:`ContentSyncService` wires fetcher, mapping engine, job builder and
traversal engine for a loaded :class:`ContentSyncConfig` and exposes the
operations a trigger surface (CLI, scheduler, webhook) needs:

* :meth:`ContentSyncService.index_all_by_name` / :meth:`~ContentSyncService.index_all_by_id`
  run a guarded full walk of one source.
* :meth:`ContentSyncService.index_paths` indexes explicit paths (or public
  URLs) as a standalone run, then refreshes content that depends on them.

No method raises for engine failures; problems are logged.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.config.models import ContentSyncConfig, SourceConfig
from CmsToIndex.ContentSync.errors import UnknownSourceError
from CmsToIndex.ContentSync.extensions import get_extension
from CmsToIndex.ContentSync.fetch import RepositoryFetcher, get_fetcher
from CmsToIndex.ContentSync.jobs import JobBuilder
from CmsToIndex.ContentSync.mapping.engine import AttributeMappingEngine
from CmsToIndex.ContentSync.node import IndexEvent
from CmsToIndex.ContentSync.session import PathAttribute, PathList, Session, build_session
from CmsToIndex.ContentSync.sinks import JobSink
from CmsToIndex.ContentSync.state import IndexingContext
from CmsToIndex.ContentSync.traversal import RunningSources, TraversalEngine
from CmsToIndex.ContentSync.tree import child_object

LOGGER = logging.getLogger(__name__)

DEFAULT_URL_EXTENSION = "content-url"


class ContentSyncService:
    """Run full and explicit-path synchronisation for configured sources."""

    def __init__(
        self,
        config: ContentSyncConfig,
        sink: JobSink,
        *,
        fetcher: Optional[RepositoryFetcher] = None,
        context: Optional[IndexingContext] = None,
        running: Optional[RunningSources] = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.context = context
        self.fetcher = fetcher or get_fetcher(config.cache, config.retry)
        self.engine = AttributeMappingEngine(self.fetcher)
        self.builder = JobBuilder(self.engine, sink, context)
        self.traversal = TraversalEngine(self.fetcher, self.builder, running, context)

    # ---------------------------------------------------------------- sources

    def _require_source(self, key: str, *, by_id: bool = False) -> SourceConfig:
        for source in self.config.sources:
            if (source.id if by_id else source.name) == key:
                return source
        raise UnknownSourceError(f"Source '{key}' not found")

    def resolve_site_name(self, source: SourceConfig) -> Optional[str]:
        """Configured site name, else the title of the source's root node."""
        if source.site_name:
            return source.site_name
        raw = self.fetcher.fetch(source.root_path, source, use_cache=True)
        title = child_object(raw, c.JCR_CONTENT).get(c.JCR_TITLE) if raw else None
        if isinstance(title, str) and title.strip():
            return title
        LOGGER.error("No site name for root path %s (%s)", source.root_path, source.key)
        return None

    def session_for(
        self, source: SourceConfig, path_list: Optional[PathList] = None, standalone: bool = False
    ) -> Session:
        return build_session(
            self.config,
            source,
            event=path_list.event if path_list is not None else IndexEvent.NONE,
            standalone=standalone,
            recursive=path_list.recursive if path_list is not None else True,
            site_name=self.resolve_site_name(source),
        )

    # -------------------------------------------------------------- full runs

    def index_all_by_name(self, name: str) -> bool:
        try:
            source = self._require_source(name)
        except UnknownSourceError as exc:
            LOGGER.error("%s", exc)
            return False
        return self.index_all(source)

    def index_all_by_id(self, source_id: str) -> bool:
        try:
            source = self._require_source(source_id, by_id=True)
        except UnknownSourceError as exc:
            LOGGER.error("%s", exc)
            return False
        return self.index_all(source)

    def index_all(self, source: SourceConfig) -> bool:
        """Guarded full run; ``False`` when skipped."""
        if not source.enabled:
            LOGGER.warning("Source %s is disabled", source.name)
            return False
        try:
            session = self.session_for(source)
        except Exception:
            LOGGER.exception("Cannot prepare session for %s", source.name)
            return False
        return self.traversal.run_full(session)

    def is_source_running(self, name: str) -> bool:
        return self.traversal.running.is_running(name)

    @property
    def running_sources_count(self) -> int:
        return len(self.traversal.running)

    # --------------------------------------------------------- explicit paths

    def index_paths(self, source_name: str, path_list: PathList) -> List[str]:
        """Standalone run over ``path_list``; returns the ids that were processed."""
        if not path_list.paths:
            LOGGER.warning("Received empty path list for source '%s'", source_name)
            return []
        try:
            source = self._require_source(source_name)
        except UnknownSourceError as exc:
            LOGGER.error("%s", exc)
            return []

        ids = list(path_list.paths)
        if path_list.attribute is PathAttribute.URL:
            ids = self.resolve_ids_from_urls(source, path_list.paths)
            if not ids:
                LOGGER.warning("No ids resolved from URLs for source '%s'", source_name)
                return []

        LOGGER.info("Processing %d path(s) for source '%s'", len(ids), source_name)
        try:
            session = self.session_for(source, path_list, standalone=True)
            self.traversal.run_paths(session, ids)
            self.traversal.run_dependents(session, ids)
        except Exception:
            LOGGER.exception("Explicit-path run failed for source '%s'", source_name)
        return ids

    def resolve_ids_from_urls(self, source: SourceConfig, urls: List[str]) -> List[str]:
        """Map public URLs to repository ids through the ``url`` attribute's extension."""
        key = self._url_extension_key(source)
        extension = get_extension(key)
        if extension is None or not hasattr(extension, "id_from_url"):
            LOGGER.warning("Extension %s cannot resolve URLs for %s", key, source.name)
            return []
        ids: List[str] = []
        for url in urls:
            try:
                resolved = extension.id_from_url(url, source)
            except Exception:
                LOGGER.exception("Failed to resolve id from URL %s", url)
                continue
            LOGGER.debug("Resolved id from URL '%s': %s", url, resolved)
            if resolved and resolved.strip():
                ids.append(resolved)
        return ids

    def _url_extension_key(self, source: SourceConfig) -> str:
        mapping = self.config.mapping_for(source)
        if mapping is not None:
            for spec in mapping.target_attr_definitions:
                if spec.name == c.URL_ATTRIBUTE and spec.extension:
                    return spec.extension
        return DEFAULT_URL_EXTENSION


__all__ = ["ContentSyncService", "DEFAULT_URL_EXTENSION"]
