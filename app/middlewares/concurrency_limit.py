from __future__ import annotations

import asyncio
import json

from starlette.types import ASGIApp, Receive, Scope, Send

_EXEMPT_PREFIXES = ("/api/v1/health",)


class ConcurrencyLimitMiddleware:
    """Cap in-flight HTTP requests; callers waiting past the timeout get a 429 envelope."""

    def __init__(self, app: ASGIApp, limit: int, timeout_seconds: float | None = None) -> None:
        self.app = app
        self._timeout = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self._semaphore = asyncio.Semaphore(limit) if limit > 0 else None

    async def _reject(self, send: Send) -> None:
        retry_after = str(max(1, int(self._timeout or 1)))
        body = json.dumps(
            {
                "code": "server_busy",
                "message": "Server is handling too many requests",
                "data": None,
                "details": {"detail": "Concurrency limit reached. Please retry."},
            }
        ).encode()
        await send(
            {
                "type": "http.response.start",
                "status": 429,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", retry_after.encode()),
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or self._semaphore is None
            or scope.get("path", "").startswith(_EXEMPT_PREFIXES)
        ):
            await self.app(scope, receive, send)
            return

        try:
            if self._timeout is None:
                await self._semaphore.acquire()
            else:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await self._reject(send)
            return
        try:
            await self.app(scope, receive, send)
        finally:
            self._semaphore.release()
