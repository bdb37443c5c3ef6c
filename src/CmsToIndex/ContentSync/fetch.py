# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.fetch",
#   "purpose": "Authenticated tree-as-JSON fetches with array disambiguation and a bounded TTL cache",
#   "sections": [
#     {
#       "id": "responsecache",
#       "name": "ResponseCache",
#       "anchor": "class-responsecache",
#       "kind": "class"
#     },
#     {
#       "id": "repositoryfetcher",
#       "name": "RepositoryFetcher",
#       "anchor": "class-repositoryfetcher",
#       "kind": "class"
#     },
#     {
#       "id": "get-fetcher",
#       "name": "get_fetcher",
#       "anchor": "function-get-fetcher",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Repository fetch layer.

**Purpose**
-----------
Read one repository path as a JSON subtree. The repository renders a node and
all its descendants at ``{base}{path}.infinity.json``; paths that already end
in ``.json`` are requested verbatim.

**Responsibilities**
--------------------
- Authenticate with HTTP basic auth from the source configuration
- Follow an array response (ambiguous match) to its first element, one level
- Turn every failure (transport, status, body shape, JSON) into ``None``
- Optionally memoise raw bodies, absences included, per exact URL

**Fail-Soft Semantics**
-----------------------
:meth:`RepositoryFetcher.fetch` never raises. Callers treat ``None`` as
"content is gone" and converge index state through DELETE jobs.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from CmsToIndex.ContentSync import constants as c
from CmsToIndex.ContentSync.config.models import CachePolicy, RetryPolicy, SourceConfig
from CmsToIndex.ContentSync.errors import FetchError
from CmsToIndex.ContentSync.http_session import get_http_session, request_with_retries

__all__ = [
    "RepositoryFetcher",
    "ResponseCache",
    "build_fetch_url",
    "get_fetcher",
    "reset_fetcher",
    "set_fetcher",
]

LOGGER = logging.getLogger(__name__)


def build_fetch_url(base_url: str, path: str) -> str:
    """``{base}{path}`` for ``.json`` paths, ``{base}{path}.infinity.json`` otherwise."""
    if path.endswith(c.JSON_EXTENSION):
        return f"{base_url}{path}"
    return f"{base_url}{path}{c.INFINITY_JSON}"


# ============================================================================
# Cache
# ============================================================================


@dataclass(frozen=True)
class _CacheEntry:
    stored_at: float
    body: Optional[str]


class ResponseCache:
    """Thread-safe, size-bounded TTL cache of raw response bodies keyed by URL.

    ``None`` bodies (absent documents) are cached like any other value. When
    full, the oldest entry is evicted. Concurrent misses for one URL may load
    twice; the last writer wins.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = int(max_entries)
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_policy(cls, policy: CachePolicy) -> "ResponseCache":
        return cls(ttl_seconds=policy.ttl_seconds, max_entries=policy.max_entries)

    def lookup(self, url: str) -> tuple[bool, Optional[str]]:
        """Return ``(hit, body)``; expired entries count as misses and are dropped."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(url)
            if entry is None:
                return False, None
            if now - entry.stored_at >= self.ttl_seconds:
                del self._entries[url]
                return False, None
            return True, entry.body

    def store(self, url: str, body: Optional[str]) -> None:
        now = self._clock()
        with self._lock:
            self._entries.pop(url, None)
            while len(self._entries) >= self.max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[url] = _CacheEntry(stored_at=now, body=body)

    def get_or_load(self, url: str, loader: Callable[[], Optional[str]]) -> Optional[str]:
        hit, body = self.lookup(url)
        if hit:
            LOGGER.debug("Cache hit: %s", url)
            return body
        # Loader runs outside the lock.
        body = loader()
        self.store(url, body)
        return body

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ============================================================================
# Fetcher
# ============================================================================


class RepositoryFetcher:
    """Fetch repository paths as JSON objects.

    Attributes:
        client: HTTPX client used for every request (shared session by default).
        cache: Response cache consulted when ``use_cache`` is requested.
        retry: Retry policy applied by the HTTP layer.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        cache: Optional[ResponseCache] = None,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self.client = client or get_http_session()
        self.cache = cache or ResponseCache()
        self.retry = retry or RetryPolicy()

    def fetch(
        self, path: str, source: SourceConfig, use_cache: bool = False
    ) -> Optional[dict[str, Any]]:
        """Return the JSON object for ``path`` or ``None`` when it cannot be resolved."""
        return self._fetch(path, source, use_cache, follow_array=True)

    def _fetch(
        self, path: str, source: SourceConfig, use_cache: bool, follow_array: bool
    ) -> Optional[dict[str, Any]]:
        url = build_fetch_url(source.url, path)
        if use_cache:
            body = self.cache.get_or_load(url, lambda: self._load_quietly(url, source))
        else:
            body = self._load_quietly(url, source)
        if body is None:
            return None

        text = body.lstrip()
        if text.startswith("["):
            if not follow_array or path.endswith(c.JSON_EXTENSION):
                LOGGER.info("Array response treated as not found: %s", url)
                return None
            first = self._first_element(url, text)
            if first is None:
                return None
            LOGGER.debug("Following array response %s -> %s", path, first)
            return self._fetch(first, source, use_cache, follow_array=False)

        if text.startswith("{"):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                LOGGER.warning("Invalid JSON object from %s: %s", url, exc)
                return None
            return decoded if isinstance(decoded, dict) else None

        LOGGER.info("Unexpected response shape from %s", url)
        return None

    def _first_element(self, url: str, text: str) -> Optional[str]:
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Invalid JSON array from %s: %s", url, exc)
            return None
        if not decoded or not isinstance(decoded[0], str) or not decoded[0]:
            LOGGER.info("Array response without a usable path: %s", url)
            return None
        return decoded[0]

    def _load_quietly(self, url: str, source: SourceConfig) -> Optional[str]:
        try:
            return self._load(url, source)
        except FetchError as exc:
            LOGGER.warning("Fetch failed for %s: %s", url, exc)
            return None

    def _load(self, url: str, source: SourceConfig) -> Optional[str]:
        auth = httpx.BasicAuth(source.username, source.password or "") if source.username else None
        try:
            response = request_with_retries(
                self.client, "GET", url, policy=self.retry, auth=auth, follow_redirects=True
            )
        except httpx.HTTPError as exc:
            raise FetchError(f"{type(exc).__name__}: {exc}", url=url) from exc

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code}", url=url, status_code=response.status_code
            )
        body = response.text
        if not body or not body.strip():
            LOGGER.info("Empty response body: %s", url)
            return None
        return body


# ============================================================================
# Shared fetcher
# ============================================================================

_SHARED_FETCHER: Optional[RepositoryFetcher] = None
_FETCHER_LOCK = threading.Lock()


def get_fetcher(
    cache_policy: Optional[CachePolicy] = None, retry: Optional[RetryPolicy] = None
) -> RepositoryFetcher:
    """Process-wide fetcher sharing one response cache across runs."""
    global _SHARED_FETCHER

    if _SHARED_FETCHER is not None:
        return _SHARED_FETCHER
    with _FETCHER_LOCK:
        if _SHARED_FETCHER is None:
            cache = ResponseCache.from_policy(cache_policy) if cache_policy else ResponseCache()
            _SHARED_FETCHER = RepositoryFetcher(cache=cache, retry=retry)
        return _SHARED_FETCHER


def set_fetcher(fetcher: RepositoryFetcher) -> None:
    """Install ``fetcher`` as the process-wide instance (used by tests and wiring)."""
    global _SHARED_FETCHER

    with _FETCHER_LOCK:
        _SHARED_FETCHER = fetcher


def reset_fetcher() -> None:
    """Drop the process-wide fetcher (tests only)."""
    global _SHARED_FETCHER

    with _FETCHER_LOCK:
        _SHARED_FETCHER = None
