# === NAVMAP v1 ===
# {
#   "module": "CmsToIndex.ContentSync.http_session",
#   "purpose": "Shared HTTPX client factory and tenacity retry wrapper for repository requests",
#   "sections": [
#     {
#       "id": "build-http-client",
#       "name": "build_http_client",
#       "anchor": "function-build-http-client",
#       "kind": "function"
#     },
#     {
#       "id": "get-http-session",
#       "name": "get_http_session",
#       "anchor": "function-get-http-session",
#       "kind": "function"
#     },
#     {
#       "id": "reset-http-session",
#       "name": "reset_http_session",
#       "anchor": "function-reset-http-session",
#       "kind": "function"
#     },
#     {
#       "id": "request-with-retries",
#       "name": "request_with_retries",
#       "anchor": "function-request-with-retries",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTP session factory for repository access.

**Purpose**
-----------
Provides one pooled HTTPX client per process for talking to the content
repository, plus a tenacity-backed retry wrapper for transient failures.

**Design Principle**
--------------------
Retrying is the HTTP layer's concern. Callers above this module (the fetch
cache, the traversal engine) never retry; they only see a final response or
an exception once the retry budget is spent.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, retry_if_result

from CmsToIndex.ContentSync.config.models import HttpClientConfig, RetryPolicy

LOGGER = logging.getLogger(__name__)

_SHARED_SESSION: httpx.Client | None = None
_SESSION_LOCK = threading.Lock()

_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
)


def build_http_client(
    config: HttpClientConfig | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create a new pooled client. ``transport`` is for tests (``httpx.MockTransport``)."""
    cfg = config or HttpClientConfig()
    timeout = httpx.Timeout(timeout=cfg.timeout_read_s, connect=cfg.timeout_connect_s)
    client = httpx.Client(
        timeout=timeout,
        verify=cfg.verify_tls,
        headers={"User-Agent": cfg.user_agent, "Accept": "application/json"},
        limits=httpx.Limits(
            max_connections=cfg.pool_maxsize,
            max_keepalive_connections=cfg.pool_connections,
        ),
        transport=transport,
    )
    LOGGER.debug(
        "HTTP client created: UA=%s, timeout=%ss, pool=%s/%s",
        cfg.user_agent,
        cfg.timeout_read_s,
        cfg.pool_connections,
        cfg.pool_maxsize,
    )
    return client


def get_http_session(config: HttpClientConfig | None = None) -> httpx.Client:
    """
    Acquire or create the shared HTTP client.

    **Guarantees**

        - Reuses TCP/TLS connections across fetches and threads
        - Lazy initialization; ``config`` only applies to the first call

    Use :func:`reset_http_session` in tests to force re-initialization.
    """
    global _SHARED_SESSION

    if _SHARED_SESSION is not None:
        return _SHARED_SESSION

    with _SESSION_LOCK:
        if _SHARED_SESSION is None:
            _SHARED_SESSION = build_http_client(config)
        return _SHARED_SESSION


def reset_http_session() -> None:
    """Close and drop the shared client (tests only)."""
    global _SHARED_SESSION

    with _SESSION_LOCK:
        if _SHARED_SESSION is not None:
            _SHARED_SESSION.close()
            _SHARED_SESSION = None
            LOGGER.debug("HTTP session reset")


# ============================================================================
# Retries
# ============================================================================


def _log_before_sleep(retry_state: RetryCallState) -> None:
    next_action = retry_state.next_action
    wait_ms = int(next_action.sleep * 1000) if next_action is not None else 0
    LOGGER.warning(
        "retry attempt=%s wait_ms=%s elapsed_s=%.1f",
        retry_state.attempt_number,
        wait_ms,
        retry_state.seconds_since_start or 0.0,
    )


def _last_response(retry_state: RetryCallState) -> Any:
    # Out of attempts on a retryable status: hand back the final response.
    return retry_state.outcome.result() if retry_state.outcome is not None else None


def build_retrying(policy: RetryPolicy | None = None) -> tenacity.Retrying:
    """Tenacity controller for transient transport errors and retryable statuses."""
    cfg = policy or RetryPolicy()
    statuses = frozenset(cfg.retry_statuses)
    return tenacity.Retrying(
        retry=retry_if_exception(lambda exc: isinstance(exc, _RETRYABLE_EXCEPTIONS))
        | retry_if_result(lambda response: response.status_code in statuses),
        stop=tenacity.stop_after_attempt(cfg.max_attempts),
        wait=tenacity.wait_random_exponential(
            multiplier=cfg.base_delay_ms / 1000.0,
            max=cfg.max_delay_ms / 1000.0,
        ),
        sleep=time.sleep,
        before_sleep=_log_before_sleep,
        retry_error_callback=_last_response,
        reraise=True,
    )


def request_with_retries(
    client: httpx.Client,
    method: str,
    url: str,
    *,
    policy: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Issue ``method url`` through ``client`` under the retry policy."""
    retrying = build_retrying(policy)
    return retrying(client.request, method, url, **kwargs)


__all__ = [
    "build_http_client",
    "build_retrying",
    "get_http_session",
    "request_with_retries",
    "reset_http_session",
]
