# src/profilegate_backend/app/api/ratelimit.py
# In-memory sliding-window limiter for the credential-bearing auth routes.
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request

from profilegate_backend.app.core.errors import AuthError, ErrorKind
from profilegate_backend.app.core.trace import auth_trace

log = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many authentication attempts, please try again later."


class AuthRateLimiter:
    def __init__(
        self,
        max_requests: int = 20,
        window_sec: int = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
        *,
        trust_proxy: bool = False,
    ):
        self.max_requests = max_requests
        self.window_sec = window_sec
        self.clock = clock
        self.trust_proxy = trust_proxy
        self.buckets: Dict[str, Deque[float]] = {}

    def client_ip(self, request: Request) -> str:
        # X-Forwarded-For is client-controlled unless a proxy we trust sets it
        if self.trust_proxy:
            forwarded = request.headers.get("x-forwarded-for")
            if forwarded and forwarded.split(",")[0].strip():
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _cleanup(self, bucket: Deque[float], now: float) -> None:
        cutoff = now - self.window_sec
        while bucket and bucket[0] <= cutoff:
            bucket.popleft()

    def prune(self) -> None:
        """Drop every bucket whose hits have all left the window."""
        now = self.clock()
        for key in list(self.buckets):
            self._cleanup(self.buckets[key], now)
            if not self.buckets[key]:
                del self.buckets[key]

    def hit(self, key: str) -> Optional[int]:
        """Record one request for key; returns seconds to wait when over the limit."""
        now = self.clock()
        bucket = self.buckets.get(key)
        if bucket is not None:
            self._cleanup(bucket, now)
        if bucket and len(bucket) >= self.max_requests:
            retry_after = max(1, int(bucket[0] + self.window_sec - now))
            auth_trace("ratelimit.hit", key=key, hits=len(bucket), retry_after=retry_after)
            return retry_after
        if bucket is None:
            # new key: drop buckets that have emptied
            self.prune()
            bucket = self.buckets[key] = deque()
        bucket.append(now)
        return None

    def reset(self) -> None:
        self.buckets.clear()

    async def __call__(self, request: Request) -> None:
        key = self.client_ip(request)
        retry_after = self.hit(key)
        if retry_after is not None:
            log.warning("auth rate limit exceeded for %s", key)
            raise AuthError(ErrorKind.RATE_LIMITED, RATE_LIMIT_MESSAGE, {"retry_after": retry_after})
