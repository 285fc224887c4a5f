"""Concurrency controls for provider calls and heavy endpoints.

Caps the number of *concurrent* outbound LLM / embedding requests per worker
process and bounds each call with a timeout.  There is no retry here: a
timed-out call fails and the caller decides what to do.

The endpoint middleware is pure ASGI (not BaseHTTPMiddleware) so it never
buffers response bodies.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Coroutine

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)


class ProviderLimiter:
    """Semaphore + timeout around async provider calls.

    The semaphore is created lazily so it binds to the running event loop.
    """

    def __init__(self, max_concurrent: int = 10, timeout: float = 60) -> None:
        self._max_concurrent = max_concurrent
        self._timeout = timeout
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
            logger.info("Provider concurrency semaphore initialized (max=%d)", self._max_concurrent)
        return self._semaphore

    async def call(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Execute an async provider function with concurrency and time limits.

        Usage::

            resp = await limiter.call(litellm.acompletion, model=..., messages=...)

        Raises:
            asyncio.TimeoutError: the call exceeded the configured timeout.
        """
        async with self._get_semaphore():
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self._timeout)


# ── Heavy endpoint concurrency middleware (pure ASGI) ─────────
# Requests that exceed the limit receive 503 instead of queuing forever.

DEFAULT_HEAVY_PATHS = frozenset({
    "/api/chat/query",
})


class ConcurrencyLimitMiddleware:
    """Reject heavy requests when the worker is at capacity.

    Returns HTTP 503 with a Retry-After header for overloaded endpoints.
    Lightweight endpoints (health, auth, admin) pass through unaffected.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_concurrent: int = 15,
        heavy_paths: frozenset[str] = DEFAULT_HEAVY_PATHS,
    ) -> None:
        self.app = app
        self._max_concurrent = max_concurrent
        self._heavy_paths = heavy_paths
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
            logger.info("Heavy endpoint semaphore initialized (max=%d)", self._max_concurrent)
        return self._semaphore

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") not in self._heavy_paths:
            await self.app(scope, receive, send)
            return

        sem = self._get_semaphore()
        if sem.locked():
            logger.warning("Concurrency limit reached for %s, returning 503", scope.get("path"))
            body = json.dumps(
                {"detail": "Server busy: too many concurrent requests. Please retry."}
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", b"5"),
                ],
            })
            await send({"type": "http.response.body", "body": body})
            return

        async with sem:
            await self.app(scope, receive, send)
