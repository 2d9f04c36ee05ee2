"""In-memory fixed-window rate limiting middleware."""

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from presskit.core.errors import RateLimitError, app_error_handler
from presskit.core.logging import get_request_id

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."

_CONTACT_PATH = re.compile(r"^/api/v1/epks/[^/]+/contact/?$")


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int
    window_seconds: int


class FixedWindowLimiter:
    """Counts hits per key inside fixed windows of `window_seconds`."""

    @dataclass
    class Window:
        opened_at: float
        hits: int = 0

    def __init__(self, limit: int, time_fn: Callable[[], float], window_seconds: int = 60):
        self.limit = limit
        self.window_seconds = window_seconds
        self.time_fn = time_fn
        self.windows: Dict[str, "FixedWindowLimiter.Window"] = {}

    def _current(self, key: str) -> "FixedWindowLimiter.Window":
        now = self.time_fn()
        window = self.windows.get(key)
        if window is None or now - window.opened_at >= self.window_seconds:
            window = self.windows[key] = self.Window(opened_at=now)
        return window

    def allow(self, key: str) -> bool:
        window = self._current(key)
        if window.hits >= self.limit:
            return False
        window.hits += 1
        return True

    def remaining(self, key: str) -> int:
        window = self.windows.get(key)
        return self.limit - window.hits if window else self.limit

    def reset_in(self, key: str) -> int:
        window = self._current(key)
        return max(1, int(window.opened_at + self.window_seconds - self.time_fn()))


def category_for_request(request: Request) -> Optional[str]:
    path = request.url.path
    method = request.method.upper()
    if path.startswith("/api/v1/auth") and method == "POST":
        return "auth"
    if method == "POST" and _CONTACT_PATH.match(path):
        return "contact"
    if path.startswith("/api/"):
        return "api"
    return None


def build_rate_limit_policies(settings) -> Dict[str, RateLimitPolicy]:
    return {
        "api": RateLimitPolicy(settings.RATE_LIMIT_MAX, settings.RATE_LIMIT_WINDOW_SECONDS),
        "auth": RateLimitPolicy(settings.AUTH_RATE_LIMIT_MAX, 3600),
        "contact": RateLimitPolicy(settings.CONTACT_RATE_LIMIT_MAX, 3600),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, policies: Dict[str, RateLimitPolicy], enabled: bool = True, time_fn: Optional[Callable[[], float]] = None):
        super().__init__(app)
        self.enabled = enabled
        self.time_fn = time_fn or time.monotonic
        self.policies = policies
        self.limiters: Dict[str, FixedWindowLimiter] = {
            name: FixedWindowLimiter(policy.limit, self.time_fn, policy.window_seconds)
            for name, policy in policies.items()
            if policy.limit > 0
        }

    def _client_key(self, request: Request, category: str) -> str:
        ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "unknown")
        return f"{category}:{ip.split(',')[0].strip()}"

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.method.upper() == "OPTIONS":
            return await call_next(request)

        category = category_for_request(request)
        limiter = self.limiters.get(category)
        if not limiter:
            return await call_next(request)

        key = self._client_key(request, category)
        if limiter.allow(key):
            response = await call_next(request)
            response.headers["X-RateLimit-Limit"] = str(limiter.limit)
            response.headers["X-RateLimit-Remaining"] = str(limiter.remaining(key))
            return response

        rid = getattr(request.state, "request_id", None) or get_request_id()
        response = await app_error_handler(request, RateLimitError(RATE_LIMIT_MESSAGE, request_id=rid))
        reset_in = limiter.reset_in(key)
        response.headers["Retry-After"] = str(reset_in)
        response.headers["X-RateLimit-Limit"] = str(limiter.limit)
        response.headers["X-RateLimit-Remaining"] = "0"
        response.headers["X-RateLimit-Reset"] = str(reset_in)
        return response
