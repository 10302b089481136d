"""Per-client rate limiting for the visitor log endpoint."""
import asyncio
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from fastapi import Depends, HTTPException, Request, status

from geolog.config import Settings
from geolog.dependencies import get_settings
from geolog.services.client_info import get_client_ip


class RateLimiter:
    """
    Sliding-window request counter kept in process memory.

    Counts are per worker process; they are lost on restart and not shared
    between replicas. Keys whose hits have all expired are dropped, so memory
    is bounded by the number of clients seen within one window.
    """

    def __init__(self):
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self.lock = asyncio.Lock()
        self.last_sweep = 0.0

    def _sweep(self, cutoff: float) -> None:
        stale = [key for key, hits in self.hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self.hits[key]

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int = 30,
        window_seconds: int = 60
    ) -> bool:
        """
        Record a hit for ``key`` and enforce the limit.

        Args:
            key: Client identifier (IP address)
            max_requests: Hits allowed inside the window
            window_seconds: Window length in seconds

        Returns:
            bool: True when the hit is allowed

        Raises:
            HTTPException: 429 once the window is full
        """
        async with self.lock:
            now = time.monotonic()
            cutoff = now - window_seconds

            if now - self.last_sweep >= window_seconds:
                self._sweep(cutoff)
                self.last_sweep = now

            hits = self.hits[key]

            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= max_requests:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Too many requests. Please try again in {window_seconds} seconds.",
                    headers={"Retry-After": str(window_seconds)}
                )

            hits.append(now)
            return True

    def reset(self) -> None:
        """Forget all recorded hits."""
        self.hits.clear()
        self.last_sweep = 0.0


rate_limiter = RateLimiter()


async def limit_visitor_log(
    request: Request,
    settings: Settings = Depends(get_settings)
) -> None:
    """Dependency enforcing the per-IP limit on the visitor log endpoint."""
    await rate_limiter.check_rate_limit(
        get_client_ip(request, settings.trust_forwarded_headers),
        max_requests=settings.log_rate_limit_requests,
        window_seconds=settings.log_rate_limit_window,
    )
