"""
Fixed-window rate limiters for the Flag Gateway.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis.asyncio as redis
from fastapi import Request

from shared.logging import get_logger


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    current_count: int
    limit: int
    reset_in_seconds: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current_count)

    def headers(self) -> Dict[str, str]:
        """Rate limiting metadata as standard response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_in_seconds)
        return headers


@dataclass
class _WindowCounter:
    count: int
    window_start: float
    window_expires_at: float


class FixedWindowRateLimiter:
    """Process-local fixed-window limiter.

    A client's window opens on its first request and lasts ``window_seconds``.
    A request at exactly ``window_expires_at`` belongs to the next window.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._counters: Dict[str, _WindowCounter] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("flag_gateway.rate_limiter")

    async def admit(self, client_key: str) -> RateLimitDecision:
        """Count a request for ``client_key`` and decide whether it may proceed."""
        now = self._clock()
        with self._lock:
            counter = self._counters.get(client_key)
            if counter is None or now >= counter.window_expires_at:
                counter = _WindowCounter(
                    count=1,
                    window_start=now,
                    window_expires_at=now + self.window_seconds,
                )
                self._counters[client_key] = counter
                self._prune(now)
                allowed = True
            elif counter.count >= self.max_requests:
                allowed = False
            else:
                counter.count += 1
                allowed = True

            reset_in = max(0, math.ceil(counter.window_expires_at - now))
            decision = RateLimitDecision(
                allowed=allowed,
                current_count=counter.count,
                limit=self.max_requests,
                reset_in_seconds=reset_in,
            )

        if not allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                current_count=decision.current_count,
                limit=self.max_requests,
            )
        return decision

    def _prune(self, now: float) -> None:
        # Expired counters are dead weight; drop them when the table grows.
        if len(self._counters) < 1024:
            return
        expired = [key for key, counter in self._counters.items() if now >= counter.window_expires_at]
        for key in expired:
            del self._counters[key]

    async def close(self) -> None:
        with self._lock:
            self._counters.clear()

    async def ping(self) -> str:
        return "ok"


# GET, compare and INCR run atomically inside Redis so replicas share one count.
_ADMIT_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if not current then
    redis.call('SET', KEYS[1], 1, 'PX', ARGV[2])
    return {1, 1, tonumber(ARGV[2])}
end
local ttl = redis.call('PTTL', KEYS[1])
if tonumber(current) >= tonumber(ARGV[1]) then
    return {0, tonumber(current), ttl}
end
local count = redis.call('INCR', KEYS[1])
return {1, count, ttl}
"""


class RedisFixedWindowRateLimiter:
    """Fixed-window limiter with counters kept in Redis.

    Keys expire with the window, so a counter is recreated rather than reset.
    Redis failures fail open: the request is admitted and the error logged.
    """

    def __init__(self, redis_url: str, max_requests: int = 100, window_seconds: float = 900):
        self.redis_url = redis_url
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.logger = get_logger("flag_gateway.rate_limiter")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_key: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_key}"

    async def admit(self, client_key: str) -> RateLimitDecision:
        """Count a request for ``client_key`` and decide whether it may proceed."""
        window_ms = int(self.window_seconds * 1000)
        try:
            redis_client = await self._get_redis()
            allowed, count, ttl_ms = await redis_client.eval(
                _ADMIT_SCRIPT, 1, self._make_key(client_key), self.max_requests, window_ms
            )
        except Exception as e:
            self.logger.error("Rate limit check error", client_key=client_key, error=str(e))
            return RateLimitDecision(
                allowed=True,
                current_count=0,
                limit=self.max_requests,
                reset_in_seconds=math.ceil(self.window_seconds),
            )

        ttl_ms = int(ttl_ms)
        if ttl_ms < 0:
            ttl_ms = window_ms
        decision = RateLimitDecision(
            allowed=bool(int(allowed)),
            current_count=int(count),
            limit=self.max_requests,
            reset_in_seconds=math.ceil(ttl_ms / 1000),
        )

        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                current_count=decision.current_count,
                limit=self.max_requests,
            )
        return decision

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def ping(self) -> str:
        redis_client = await self._get_redis()
        await redis_client.ping()
        return "ok"


class ClientKeyResolver:
    """Derive the rate limiting key for a request.

    ``ip`` keys on the network address alone. ``ip_user_agent`` appends the
    User-Agent so clients sharing an address are counted separately. One
    strategy is chosen per deployment and used for every request.
    """

    STRATEGIES = ("ip", "ip_user_agent")

    def __init__(self, strategy: str = "ip", trust_proxy_headers: bool = False):
        if strategy not in self.STRATEGIES:
            raise ValueError(f"Unknown client key strategy: {strategy}")
        self.strategy = strategy
        self.trust_proxy_headers = trust_proxy_headers

    def __call__(self, request: Request) -> str:
        client_ip = self.client_ip(request)
        if self.strategy == "ip_user_agent":
            user_agent = request.headers.get("User-Agent") or "unknown"
            return f"{client_ip}|{user_agent}"
        return client_ip

    def client_ip(self, request: Request) -> str:
        """Extract the caller IP, honouring proxy headers when trusted."""
        if self.trust_proxy_headers:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()

            for header in ("CF-Connecting-IP", "X-Real-IP"):
                value = request.headers.get(header)
                if value:
                    return value.strip()

        return request.client.host if request.client else "unknown"
