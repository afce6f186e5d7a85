"""
retrieval.py — Rate-Limited, Retrying, Cache-Aware Fetching

Request lifecycle:

    QUEUED → RATE_LIMITED (wait) → IN_FLIGHT → SUCCEEDED | FAILED
                                        ↑               │ retryable, attempts left
                                        └── backoff ────┘
    → TERMINAL_SUCCESS | TERMINAL_FAILURE

One RateLimitedQueue is shared by every retrieval session. Its lock only
guards the next-start timestamp, so request starts are spaced by
`min_request_interval` while the requests themselves (and backoff sleeps)
run outside the lock.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

import httpx

from .config import RetrievalConfig
from .errors import NetworkFailure, TransactionNotFound
from .ledger import RETRYABLE_STATUS, LedgerClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class RequestState(str, Enum):
    QUEUED = "queued"
    RATE_LIMITED = "rate_limited"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TERMINAL_SUCCESS = "terminal_success"
    TERMINAL_FAILURE = "terminal_failure"


def is_retryable(error: BaseException) -> bool:
    """Rate limits, 5xx, timeouts and connection errors are retryable."""
    if isinstance(error, NetworkFailure):
        return error.retryable
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS
    return isinstance(error, httpx.TransportError)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """min(base * 2^attempt, max)"""
    return min(base_delay * (2 ** attempt), max_delay)


# =============================================================================
# CACHE
# =============================================================================

class TTLCache(Generic[V]):
    """
    Time-bounded cache. Expired entries are removed when next touched;
    when full, the oldest entry is evicted. Safe across threads and tasks.
    """

    def __init__(self, ttl: float = 300.0, max_size: int = 100, clock: Clock = time.monotonic):
        self.ttl = ttl
        self.max_size = max_size
        self.clock = clock
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if self.clock() - stored_at > self.ttl:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (self.clock(), value)

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# QUEUE
# =============================================================================

@dataclass
class QueueStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retried_requests: int = 0
    rate_limited_requests: int = 0
    total_wait: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = (
            self.successful_requests / self.total_requests if self.total_requests else 0.0
        )
        return data


class RateLimitedQueue:
    """Shared request gate: spacing between starts, bounded retries with backoff."""

    def __init__(
        self,
        config: Optional[RetrievalConfig] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ):
        self.config = config or RetrievalConfig()
        self.sleep = sleep
        self.clock = clock
        self.stats = QueueStats()
        self._lock = asyncio.Lock()
        self._next_start = 0.0

    async def _wait_for_slot(self, label: str) -> None:
        async with self._lock:
            wait = self._next_start - self.clock()
            if wait > 0:
                logger.debug(f"[{label}] {RequestState.RATE_LIMITED.value}: waiting {wait:.3f}s")
                self.stats.rate_limited_requests += 1
                self.stats.total_wait += wait
                await self.sleep(wait)
            start = max(self.clock(), self._next_start)
            self._next_start = start + self.config.min_request_interval

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "request") -> T:
        """
        Run `operation` through the gate.

        Retryable failures are retried up to `max_retries` times; exhaustion
        raises NetworkFailure. Non-retryable errors propagate immediately.
        """
        cfg = self.config
        self.stats.total_requests += 1
        logger.debug(f"[{label}] {RequestState.QUEUED.value}")

        attempt = 0
        while True:
            await self._wait_for_slot(label)
            logger.debug(f"[{label}] {RequestState.IN_FLIGHT.value} (attempt {attempt + 1})")
            try:
                result = await operation()
            except (NetworkFailure, httpx.HTTPError) as e:
                if not is_retryable(e):
                    self.stats.failed_requests += 1
                    logger.error(f"[{label}] {RequestState.TERMINAL_FAILURE.value}: {e}")
                    if isinstance(e, NetworkFailure):
                        raise
                    raise NetworkFailure(f"{label}: {e}", retryable=False) from e
                if attempt >= cfg.max_retries:
                    self.stats.failed_requests += 1
                    logger.error(
                        f"[{label}] {RequestState.TERMINAL_FAILURE.value} after {attempt + 1} attempts: {e}"
                    )
                    raise NetworkFailure(f"{label}: gave up after {attempt + 1} attempts: {e}") from e

                delay = backoff_delay(attempt, cfg.base_delay, cfg.max_delay)
                logger.warning(
                    f"[{label}] {RequestState.FAILED.value} ({e}); retry {attempt + 1}/{cfg.max_retries} in {delay:.1f}s"
                )
                self.stats.retried_requests += 1
                await self.sleep(delay)
                attempt += 1
                continue

            self.stats.successful_requests += 1
            logger.debug(f"[{label}] {RequestState.TERMINAL_SUCCESS.value}")
            return result

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.to_dict()

    def reset_stats(self) -> None:
        self.stats = QueueStats()


# =============================================================================
# READER
# =============================================================================

class ChunkReader:
    """Fetch raw transaction payloads: cache first, then the shared queue."""

    def __init__(
        self,
        ledger: LedgerClient,
        queue: Optional[RateLimitedQueue] = None,
        cache: Optional[TTLCache] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        config = config or (queue.config if queue else RetrievalConfig())
        self.ledger = ledger
        self.queue = queue or RateLimitedQueue(config)
        self.cache = cache if cache is not None else TTLCache(config.cache_ttl, config.cache_max_size)

    async def fetch(self, ref: str) -> bytes:
        cached = self.cache.get(ref)
        if cached is not None:
            logger.debug(f"Cache hit for {ref}")
            return cached

        async def _fetch() -> bytes:
            payload = await self.ledger.fetch_transaction_payload(ref)
            if payload is None:
                raise TransactionNotFound(ref)
            return payload

        payload = await self.queue.run(_fetch, label=ref[:12])
        self.cache.set(ref, payload)
        return payload
