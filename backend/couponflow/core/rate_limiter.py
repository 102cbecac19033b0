"""Fixed-window rate limiter backed by a shared counter store.

Counters are keyed by ``<endpoint class>:<identifier>`` and expire on their
own, so the store is the only shared state. The limiter fails open: if the
store is unreachable or unconfigured, requests are allowed and a warning is
logged.
"""

import functools
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any, Protocol

import redis

from couponflow.core.config import settings
from couponflow.core.exceptions import RateLimited

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit"
UNKNOWN_IDENTIFIER = "unknown"


class EndpointClass(str, Enum):
    EMAIL_SUBMIT = "email_submit"
    SURVEY_SUBMIT = "survey_submit"
    EMAIL_OPT_IN = "email_opt_in"
    COUPON_ISSUE = "coupon_issue"
    COUPON_CHECK = "coupon_check"
    GENERAL = "general"
    ACCOUNT_CHANGE = "account_change"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int


RATE_LIMITS: dict[EndpointClass, RateLimitConfig] = {
    EndpointClass.EMAIL_SUBMIT: RateLimitConfig(max_requests=5, window_ms=60_000),
    EndpointClass.SURVEY_SUBMIT: RateLimitConfig(max_requests=3, window_ms=60_000),
    EndpointClass.EMAIL_OPT_IN: RateLimitConfig(max_requests=5, window_ms=60_000),
    # Minting new codes is stricter than checking for an existing one
    EndpointClass.COUPON_ISSUE: RateLimitConfig(max_requests=3, window_ms=10_000),
    EndpointClass.COUPON_CHECK: RateLimitConfig(max_requests=20, window_ms=60_000),
    EndpointClass.GENERAL: RateLimitConfig(max_requests=20, window_ms=60_000),
    EndpointClass.ACCOUNT_CHANGE: RateLimitConfig(max_requests=5, window_ms=3_600_000),
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds

    def retry_after_seconds(self, now_ms: int | None = None) -> int:
        """Whole seconds until the window resets, never less than one."""
        now = _now_ms() if now_ms is None else now_ms
        return max(1, math.ceil((self.reset_at - now) / 1000))


class CounterStore(Protocol):
    def get(self, key: str) -> int | None: ...

    def start(self, key: str, window_ms: int) -> bool: ...

    def increment(self, key: str, window_ms: int) -> int: ...

    def ttl_ms(self, key: str) -> int | None: ...


class RedisCounterStore:
    """Counter store on Redis. INCR and PEXPIRE run in one MULTI block."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        return cls(redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> int | None:
        value = self.client.get(key)
        return int(value) if value is not None else None

    def start(self, key: str, window_ms: int) -> bool:
        """Create the counter at 1. Returns False if another request beat us to it."""
        return bool(self.client.set(key, 1, px=window_ms, nx=True))

    def increment(self, key: str, window_ms: int) -> int:
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.pexpire(key, window_ms)
        count, _ = pipe.execute()
        return int(count)

    def ttl_ms(self, key: str) -> int | None:
        ttl = self.client.pttl(key)
        # -2: key missing, -1: key without expiry
        return int(ttl) if ttl is not None and ttl >= 0 else None


class InMemoryCounterStore:
    """Single-process counter store with monotonic-clock expiry.

    Only suitable for development and tests: counters are not shared across
    processes and are lost on restart. Expired counters are swept out on
    ``start`` at most once per ``prune_interval`` seconds.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        prune_interval: float = 60.0,
    ) -> None:
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = Lock()
        self._clock = clock
        self._prune_interval = prune_interval
        self._next_prune = clock() + prune_interval

    def _live(self, key: str, now: float) -> tuple[int, float] | None:
        entry = self._counters.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._counters[key]
            return None
        return entry

    def _prune(self, now: float) -> None:
        if now < self._next_prune:
            return
        expired = [key for key, (_, expires_at) in self._counters.items() if expires_at <= now]
        for key in expired:
            del self._counters[key]
        self._next_prune = now + self._prune_interval

    def get(self, key: str) -> int | None:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else None

    def start(self, key: str, window_ms: int) -> bool:
        now = self._clock()
        with self._lock:
            self._prune(now)
            if self._live(key, now) is not None:
                return False
            self._counters[key] = (1, now + window_ms / 1000)
            return True

    def increment(self, key: str, window_ms: int) -> int:
        now = self._clock()
        with self._lock:
            entry = self._live(key, now)
            count = (entry[0] if entry else 0) + 1
            self._counters[key] = (count, now + window_ms / 1000)
            return count

    def ttl_ms(self, key: str) -> int | None:
        now = self._clock()
        with self._lock:
            entry = self._live(key, now)
            if entry is None:
                return None
            return int((entry[1] - now) * 1000)


class RateLimiter:
    """Fixed-window limiter over a :class:`CounterStore`.

    A ``None`` store means rate limiting is unconfigured; every check is then
    allowed.
    """

    def __init__(self, store: CounterStore | None):
        self.store = store

    def check(
        self,
        identifier: str,
        endpoint_class: EndpointClass,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult:
        """Count one request for ``identifier`` and decide whether it may proceed."""
        config = config or RATE_LIMITS[endpoint_class]
        now = _now_ms()

        if self.store is None:
            logger.warning(
                "Rate limiting not configured, allowing %s request for %s",
                endpoint_class.value,
                identifier,
            )
            return self._open(config, now)

        key = f"{KEY_PREFIX}:{endpoint_class.value}:{identifier}"
        try:
            count = self.store.get(key)
            if count is None and self.store.start(key, config.window_ms):
                return RateLimitResult(
                    allowed=True,
                    remaining=config.max_requests - 1,
                    reset_at=now + config.window_ms,
                )

            if count is not None and count >= config.max_requests:
                ttl = self.store.ttl_ms(key)
                reset_at = now + ttl if ttl is not None else now + config.window_ms
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

            count = self.store.increment(key, config.window_ms)
        except redis.RedisError as exc:
            logger.warning(
                "Rate limit store unavailable, allowing %s request for %s: %s",
                endpoint_class.value,
                identifier,
                exc,
            )
            return self._open(config, now)

        if count > config.max_requests:
            # Lost a race with concurrent requests between read and increment
            return RateLimitResult(allowed=False, remaining=0, reset_at=now + config.window_ms)

        return RateLimitResult(
            allowed=True,
            remaining=max(config.max_requests - count, 0),
            reset_at=now + config.window_ms,
        )

    def enforce(
        self,
        identifier: str,
        endpoint_class: EndpointClass,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult:
        """Like :meth:`check` but raises :class:`RateLimited` when denied."""
        result = self.check(identifier, endpoint_class, config)
        if not result.allowed:
            logger.info("Rate limit hit for %s on %s", identifier, endpoint_class.value)
            raise RateLimited(endpoint_class.value, result.retry_after_seconds())
        return result

    @staticmethod
    def _open(config: RateLimitConfig, now: int) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=config.max_requests,
            reset_at=now + config.window_ms,
        )


def _header_value(headers: Mapping[str, Any], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value or None


def get_client_identifier(
    email: str | None = None,
    headers: Mapping[str, Any] | None = None,
) -> str:
    """Pick the rate-limit bucket for a request.

    Email-scoped endpoints use the email. Otherwise the first address in
    ``X-Forwarded-For``, then ``X-Real-IP``. Clients with no signal at all share
    the ``unknown`` bucket.
    """
    if email:
        return f"email:{email.strip().lower()}"

    if headers:
        forwarded = _header_value(headers, "x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return f"ip:{first}"
        real_ip = _header_value(headers, "x-real-ip")
        if real_ip:
            return f"ip:{real_ip.strip()}"

    return UNKNOWN_IDENTIFIER


def build_counter_store() -> CounterStore | None:
    """Create the counter store selected by settings, or None when unconfigured."""
    backend = settings.RATE_LIMIT_BACKEND
    if backend == "memory":
        return InMemoryCounterStore()
    if backend == "redis" and settings.REDIS_URL:
        return RedisCounterStore.from_url(settings.REDIS_URL)
    logger.warning("Rate limiting disabled (backend=%s, REDIS_URL set=%s)", backend, bool(settings.REDIS_URL))
    return None


@functools.lru_cache
def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter; the counters themselves live in the store."""
    return RateLimiter(build_counter_store())


def check_rate_limit(identifier: str, endpoint_class: EndpointClass) -> RateLimitResult:
    """Check ``identifier`` against the default limits for ``endpoint_class``."""
    return get_rate_limiter().check(identifier, endpoint_class)


def enforce(identifier: str, endpoint_class: EndpointClass) -> RateLimitResult:
    return get_rate_limiter().enforce(identifier, endpoint_class)
