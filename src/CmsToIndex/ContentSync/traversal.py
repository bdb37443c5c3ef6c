# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.traversal",
#   "purpose": "Walk the repository tree for full and explicit-path runs",
#   "sections": [
#     {
#       "id": "is-not-once-config",
#       "name": "is_not_once_config",
#       "anchor": "function-is-not-once-config",
#       "kind": "function"
#     },
#     {
#       "id": "runningsources",
#       "name": "RunningSources",
#       "anchor": "class-runningsources",
#       "kind": "class"
#     },
#     {
#       "id": "sequentialstrategy",
#       "name": "SequentialStrategy",
#       "anchor": "class-sequentialstrategy",
#       "kind": "class"
#     },
#     {
#       "id": "boundedconcurrencystrategy",
#       "name": "BoundedConcurrencyStrategy",
#       "anchor": "class-boundedconcurrencystrategy",
#       "kind": "class"
#     },
#     {
#       "id": "fallbackstrategy",
#       "name": "FallbackStrategy",
#       "anchor": "class-fallbackstrategy",
#       "kind": "class"
#     },
#     {
#       "id": "traversalengine",
#       "name": "TraversalEngine",
#       "anchor": "class-traversalengine",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Traversal engine.

**Purpose**
-----------
Drive one run over a source: fetch the root (full run) or each requested path
(explicit run), hand every node whose type matches the session's content type
to the :class:`~CmsToIndex.ContentSync.jobs.JobBuilder`, and recurse into
child keys of the fetched JSON.

**Responsibilities**
--------------------
- Child filtering: reserved namespace prefixes are skipped, image file names
  are skipped unless the source indexes static files, and once-only sources
  skip paths matching their once pattern.
- Fan-out: a strategy turns a list of child paths into ``(path, raw)`` pairs.
  The bounded strategy fetches up to ``parallelism`` children at a time on a
  thread pool and yields them in completion order; nodes are always parsed
  and processed on the calling thread.
- Fallback: when the bounded strategy fails, the children it had not yet
  delivered are fetched sequentially and a warning is logged.
- Guard: at most one full run per source at a time (:class:`RunningSources`).
  Explicit-path runs are never guarded.
- Missing paths: an explicit path that cannot be fetched (or any path under a
  de-indexing event) yields one DELETE per recorded index entry.

Every public entry point logs and absorbs failures; a bad node never aborts
the run.
"""

from __future__ import annotations

import dataclasses
import logging
import re
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Set, Tuple

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.config.models import SourceConfig, TraversalPolicy
from CmsToIndex.ContentSync.errors import StrategyExecutionError
from CmsToIndex.ContentSync.fetch import RepositoryFetcher
from CmsToIndex.ContentSync.jobs import JobBuilder
from CmsToIndex.ContentSync.node import ContentNode, IndexEvent, parse_node
from CmsToIndex.ContentSync.session import Session
from CmsToIndex.ContentSync.state import IndexingContext

LOGGER = logging.getLogger(__name__)

Raw = Optional[Dict[str, Any]]
FetchFn = Callable[[str], Raw]


# ============================================================================
# Child filtering
# ============================================================================


def is_not_once_config(path: str, source: SourceConfig) -> bool:
    """``False`` when ``path`` matches the source's once pattern from its start."""
    pattern = source.once_pattern
    if not pattern or not pattern.strip():
        return True
    return re.match(pattern, path) is None


def has_image_extension(name: str) -> bool:
    return name.lower().endswith(c.IMAGE_EXTENSIONS)


def is_indexable_child(source: SourceConfig, name: str) -> bool:
    if name.startswith(c.RESERVED_PREFIXES):
        return False
    return source.sub_type == c.STATIC_FILE or not has_image_extension(name)


def should_process(source: SourceConfig, path: str) -> bool:
    return not source.once or is_not_once_config(path, source)


# ============================================================================
# Run guard
# ============================================================================


class RunningSources:
    """Names of sources with a full run in progress."""

    def __init__(self) -> None:
        self._names: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, name: str) -> bool:
        with self._lock:
            if name in self._names:
                return False
            self._names.add(name)
            return True

    def release(self, name: str) -> None:
        with self._lock:
            self._names.discard(name)

    def is_running(self, name: str) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


# ============================================================================
# Fan-out strategies
# ============================================================================


class TraversalStrategy(Protocol):
    def iter_fetched(self, paths: List[str], fetch: FetchFn) -> Iterator[Tuple[str, Raw]]:
        ...


class SequentialStrategy:
    """Fetch children one after another, in key order."""

    def iter_fetched(self, paths: List[str], fetch: FetchFn) -> Iterator[Tuple[str, Raw]]:
        for path in paths:
            yield path, fetch(path)


class BoundedConcurrencyStrategy:
    """Fetch children on a thread pool with at most ``parallelism`` in flight."""

    def __init__(self, parallelism: int = 10) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be >= 1")
        self.parallelism = parallelism

    def iter_fetched(self, paths: List[str], fetch: FetchFn) -> Iterator[Tuple[str, Raw]]:
        if not paths:
            return
        pending = iter(paths)
        futures: Dict[Future, str] = {}
        exhausted = False
        max_workers = min(self.parallelism, len(paths))

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            while futures or not exhausted:
                while not exhausted and len(futures) < max_workers:
                    try:
                        path = next(pending)
                    except StopIteration:
                        exhausted = True
                        break
                    futures[executor.submit(fetch, path)] = path

                if not futures:
                    break

                done, _ = wait(list(futures), return_when=FIRST_COMPLETED)
                for future in done:
                    path = futures.pop(future)
                    try:
                        raw = future.result()
                    except Exception as exc:
                        for other in futures:
                            other.cancel()
                        raise StrategyExecutionError(
                            f"Concurrent fetch failed: {exc}", path=path
                        ) from exc
                    yield path, raw


class FallbackStrategy:
    """Run ``primary``; on failure finish the remaining paths with ``secondary``."""

    def __init__(self, primary: TraversalStrategy, secondary: Optional[TraversalStrategy] = None):
        self.primary = primary
        self.secondary = secondary or SequentialStrategy()

    def iter_fetched(self, paths: List[str], fetch: FetchFn) -> Iterator[Tuple[str, Raw]]:
        delivered: Set[str] = set()
        try:
            for path, raw in self.primary.iter_fetched(paths, fetch):
                delivered.add(path)
                yield path, raw
        except Exception as exc:
            remaining = [path for path in paths if path not in delivered]
            LOGGER.warning(
                "Concurrent traversal failed, falling back to sequential for %d path(s): %s",
                len(remaining),
                exc,
            )
            yield from self.secondary.iter_fetched(remaining, fetch)


def strategy_for(policy: TraversalPolicy) -> TraversalStrategy:
    if policy.concurrent:
        return FallbackStrategy(BoundedConcurrencyStrategy(policy.parallelism))
    return SequentialStrategy()


# ============================================================================
# Engine
# ============================================================================


class TraversalEngine:
    """Walk sources and feed matching nodes to the job builder.

    Attributes:
        fetcher: Repository fetcher used for every node (uncached).
        builder: Job builder receiving nodes of the session's content type.
        running: Guard shared by every engine serving the same process.
        context: Index state used for the dependency cascade.
    """

    def __init__(
        self,
        fetcher: RepositoryFetcher,
        builder: JobBuilder,
        running: Optional[RunningSources] = None,
        context: Optional[IndexingContext] = None,
        strategy: Optional[TraversalStrategy] = None,
    ) -> None:
        self.fetcher = fetcher
        self.builder = builder
        self.running = running if running is not None else RunningSources()
        self.context = context
        self.strategy = strategy

    # -------------------------------------------------------------- full runs

    def run_full(self, session: Session) -> bool:
        """Walk ``session.source`` from its root; ``False`` when a run is already active."""
        name = session.source_name
        if not self.running.try_acquire(name):
            LOGGER.warning("Skipping full run: source %s is already being processed", name)
            return False
        try:
            LOGGER.info("Starting full run for %s [tx=%s]", name, session.transaction_id)
            if not session.content_type or not session.content_type.strip():
                LOGGER.warning("Content type is not configured for source %s", name)
                return True
            root = session.source.root_path
            raw = self._fetch(session, root)
            if raw is None:
                LOGGER.warning("Root path %s not found for source %s", root, name)
                return True
            self._navigate(session, root, raw)
        except Exception:
            LOGGER.exception("Full run failed for source %s", name)
        finally:
            self.running.release(name)
            LOGGER.info("Completed full run for %s [tx=%s]", name, session.transaction_id)
        return True

    # --------------------------------------------------------- explicit paths

    def run_paths(self, session: Session, paths: Iterable[str]) -> None:
        """Index each of ``paths``; paths that are gone produce DELETE jobs."""
        requested = [path for path in paths if path and path.strip()]
        LOGGER.info(
            "Indexing %d path(s) for %s [tx=%s]",
            len(requested),
            session.source_name,
            session.transaction_id,
        )
        for path in requested:
            try:
                self._index_path(session, path)
            except Exception:
                LOGGER.exception("Failed to index %s", session.describe(path))

    def run_dependents(self, session: Session, paths: Iterable[str]) -> List[str]:
        """Re-index content that references any of ``paths``; returns the dependents."""
        if not session.traversal.follow_dependencies:
            LOGGER.debug("Dependency processing is disabled")
            return []
        if self.context is None:
            LOGGER.debug("No indexing context; skipping dependency processing")
            return []
        changed = [path for path in paths if path]
        if not changed:
            return []
        try:
            dependents = self.context.find_dependents(
                changed, session.source_name, session.provider
            )
        except Exception:
            LOGGER.exception("Dependency lookup failed for %s", session.source_name)
            return []
        if not dependents:
            LOGGER.debug("No dependents found for %d path(s)", len(changed))
            return []
        LOGGER.info("Processing %d dependent(s) for %s", len(dependents), session.source_name)
        self.run_paths(dataclasses.replace(session, event=IndexEvent.NONE), dependents)
        return dependents

    # --------------------------------------------------------------- internals

    def _index_path(self, session: Session, path: str) -> None:
        if session.event is IndexEvent.DEINDEXING:
            self.builder.delete_missing(session, path)
            return
        raw = self._fetch(session, path)
        if raw is None:
            LOGGER.debug("Content not found, deleting %s", session.describe(path))
            self.builder.delete_missing(session, path)
            return
        self._navigate(session, path, raw)

    def _navigate(self, session: Session, path: str, raw: Dict[str, Any]) -> None:
        node = parse_node(path, raw, session.event)
        LOGGER.debug("Navigating %s (type %s)", path, node.type)
        self._process(session, node)
        if session.recursive:
            self._navigate_children(session, node)

    def _process(self, session: Session, node: ContentNode) -> None:
        if node.type != session.content_type:
            return
        try:
            self.builder.index_node(session, node)
        except Exception:
            LOGGER.exception("Failed to build jobs for %s", session.describe(node.path))

    def _navigate_children(self, session: Session, node: ContentNode) -> None:
        source = session.source
        children = [
            f"{node.path.rstrip('/')}/{name}"
            for name in node.raw
            if is_indexable_child(source, name)
        ]
        children = [path for path in children if should_process(source, path)]
        if not children:
            return

        strategy = self.strategy or strategy_for(session.traversal)
        for child_path, raw in strategy.iter_fetched(children, lambda p: self._fetch(session, p)):
            if raw is None:
                LOGGER.debug("Child not found: %s", child_path)
                continue
            try:
                self._navigate(session, child_path, raw)
            except Exception:
                LOGGER.exception("Failed to process %s", session.describe(child_path))

    def _fetch(self, session: Session, path: str) -> Raw:
        return self.fetcher.fetch(path, session.source)


__all__ = [
    "BoundedConcurrencyStrategy",
    "FallbackStrategy",
    "RunningSources",
    "SequentialStrategy",
    "TraversalEngine",
    "TraversalStrategy",
    "is_indexable_child",
    "is_not_once_config",
    "should_process",
    "strategy_for",
]
