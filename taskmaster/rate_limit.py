"""In-memory fixed-window rate limiting for the /api/ surface."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.requests import Request

from taskmaster.errors import RateLimited
from taskmaster.responses import error_response

logger = logging.getLogger(__name__)


@dataclass
class Window:
    started_at: float
    count: int


@dataclass(frozen=True)
class Decision:
    allowed: bool
    remaining: int
    retry_after: int


class FixedWindowLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``.

    Thread-safe. Expired windows are swept every ``sweep_every`` hits so the
    table does not grow with every client ever seen.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = 256,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._sweep_every = sweep_every
        self._windows: dict[str, Window] = {}
        self._lock = threading.Lock()
        self._hits = 0

    def hit(self, key: str) -> Decision:
        with self._lock:
            now = self._clock()
            self._hits += 1
            if self._hits % self._sweep_every == 0:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = Window(started_at=now, count=0)
                self._windows[key] = window

            window.count += 1
            remaining = max(0, self.limit - window.count)
            if window.count > self.limit:
                retry_after = max(1, int(window.started_at + self.window_seconds - now + 0.999))
                return Decision(allowed=False, remaining=0, retry_after=retry_after)
            return Decision(allowed=True, remaining=remaining, retry_after=0)

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, w in self._windows.items()
            if now - w.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]


def client_identifier(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RateLimitMiddleware:
    """ASGI middleware applying ``limiter`` to paths under ``prefix``."""

    def __init__(self, app, limiter: Optional[FixedWindowLimiter], prefix: str = "/api/"):
        self.app = app
        self.limiter = limiter
        self.prefix = prefix

    async def __call__(self, scope, receive, send):
        if (
            scope["type"] != "http"
            or self.limiter is None
            or not scope.get("path", "").startswith(self.prefix)
            or scope.get("method", "").upper() == "OPTIONS"
        ):
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        client_id = client_identifier(request)
        decision = self.limiter.hit(client_id)
        limit_headers = {
            "X-RateLimit-Limit": str(self.limiter.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
        }

        if not decision.allowed:
            logger.warning(
                "Rate limit exceeded for %s on %s (retry in %ss)",
                client_id, scope.get("path"), decision.retry_after,
            )
            exc = RateLimited(decision.retry_after)
            response = error_response(
                exc.status_code, exc.message, headers={**exc.headers, **limit_headers}
            )
            await response(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                for name, value in limit_headers.items():
                    headers.append((name.lower().encode(), value.encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)
