"""Fixed-window rate limiter for the fallback chat gateway.

Counts requests per client id in buckets keyed by the client id and the
current window number, stored in the durable key-value store. A bucket
is never deleted; it simply stops being addressed once the window rolls
over and expires through its TTL.

The read-increment-write sequence is not atomic, so concurrent requests
from one client inside a window may under-count.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from fallback_gateway.kv import KeyValueStore, KeyValueStoreError

_logger = logging.getLogger("gateway")

ANONYMOUS_CLIENT = "anon"


class RateLimitExceeded(Exception):
    """Raised when a client exceeds their rate limit."""

    def __init__(self, client_id: str, detail: str) -> None:
        self.client_id = client_id
        self.detail = detail
        super().__init__(detail)


def _parse_count(raw: Optional[str]) -> int:
    if raw is None:
        return 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 0


@dataclass
class RateLimiter:
    """Per-client fixed-window limiter over a key-value store.

    Every call increments the bucket, including calls that end up being
    rejected, so a client hammering the gateway keeps its budget spent.
    """

    store: KeyValueStore
    requests_per_window: int = 60
    window_seconds: int = 600
    ttl_seconds: int = 660

    def bucket_key(self, client_id: Optional[str], now: Optional[float] = None) -> str:
        """Return the store key for the client's current window."""
        if now is None:
            now = time.time()
        epoch = int(now // self.window_seconds)
        return "rl:{}:{}".format(client_id or ANONYMOUS_CLIENT, epoch)

    async def admit(self, client_id: Optional[str]) -> bool:
        """Count one request for the client and report whether it is allowed.

        Args:
            client_id: The caller's identifier (``"anon"`` when empty).

        Returns:
            True if the post-increment count is within the window budget.
        """
        key = self.bucket_key(client_id)

        try:
            current = _parse_count(await self.store.get(key))
        except KeyValueStoreError as exc:
            _logger.warning("Rate limit read failed for %s: %s", key, exc)
            current = 0

        current += 1

        try:
            await self.store.put(key, str(current), self.ttl_seconds)
        except KeyValueStoreError as exc:
            _logger.warning("Rate limit write failed for %s: %s", key, exc)

        return current <= self.requests_per_window

    async def check(self, client_id: Optional[str]) -> None:
        """Admit the request or raise.

        Raises:
            RateLimitExceeded: If the client has exceeded their limit.
        """
        if not await self.admit(client_id):
            client = client_id or ANONYMOUS_CLIENT
            raise RateLimitExceeded(
                client,
                "Request rate exceeded for client_id {} ({} req/{}s).".format(
                    client, self.requests_per_window, self.window_seconds
                ),
            )
