"""In-memory throttling for the unauthenticated auth endpoints.

NOTE:
- Works per-process only. With multiple Uvicorn workers or multiple pods,
  limits will not be shared.
"""
from bisect import bisect_right
from collections import defaultdict
from typing import Dict, List, NamedTuple, Optional, Tuple
import logging
import threading
import time

from fastapi import HTTPException, Request

from portal.config import settings

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0


class Limit(NamedTuple):
    per_minute: int
    per_hour: int


class RateLimiter:
    """
    Sliding one-minute and one-hour windows per (bucket, client) pair.
    Only allowed attempts are recorded. Thread-safe.
    """

    def __init__(self, limits: Dict[str, Limit], default: Limit):
        self._lock = threading.Lock()
        self._limits = dict(limits)
        self._default = default
        # {(bucket, client): ascending monotonic timestamps within the last hour}
        self._hits: Dict[Tuple[str, str], List[float]] = defaultdict(list)
        self._last_sweep = 0.0

    def limit_for(self, bucket: str) -> Limit:
        return self._limits.get(bucket, self._default)

    def hit(self, bucket: str, client: str, now: Optional[float] = None) -> Optional[Tuple[Limit, int]]:
        """
        Record one attempt. Returns None when allowed, otherwise the exceeded
        limit and the seconds until an attempt leaves the full window.
        """
        now = time.monotonic() if now is None else now
        limit = self.limit_for(bucket)

        with self._lock:
            if now - self._last_sweep >= MINUTE:
                self._sweep(now)
            hits = self._hits[(bucket, client)]
            del hits[:bisect_right(hits, now - HOUR)]

            recent = hits[bisect_right(hits, now - MINUTE):]
            if len(recent) >= limit.per_minute:
                return limit, max(1, int(recent[0] + MINUTE - now))
            if len(hits) >= limit.per_hour:
                return limit, max(1, int(hits[0] + HOUR - now))

            hits.append(now)
            return None

    def _sweep(self, now: float) -> None:
        """Drop clients with no attempt inside the hour window. Caller holds the lock."""
        cutoff = now - HOUR
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]
        self._last_sweep = now

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._hits)

    def clear(self):
        """Forget every recorded attempt."""
        with self._lock:
            self._hits.clear()


rate_limiter = RateLimiter(
    limits={
        "password-reset": Limit(
            settings.password_reset_rate_limit_per_minute,
            settings.password_reset_rate_limit_per_hour,
        ),
    },
    default=Limit(settings.auth_rate_limit_per_minute, settings.auth_rate_limit_per_hour),
)


def client_ip(request: Optional[Request]) -> str:
    if request is None or request.client is None:
        return "unknown"
    return request.client.host


def rate_limit_check(bucket: str, request: Optional[Request]) -> None:
    """Raise 429 when the caller's address is over the limit for ``bucket``."""
    client = client_ip(request)
    exceeded = rate_limiter.hit(bucket, client)
    if exceeded is None:
        return

    limit, retry_after = exceeded
    logger.warning("Rate limit exceeded bucket=%s client=%s", bucket, client)
    raise HTTPException(
        status_code=429,
        detail="Too many requests, please try again later",
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limit.per_minute),
            "X-RateLimit-Remaining": "0",
        },
    )
