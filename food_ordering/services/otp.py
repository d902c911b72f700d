"""
One-Time Password Store

Codes live in a bounded, expiring key/value store instead of an unbounded
process-wide dict:

    - entries are kept in insertion order (the arena); when the store is
      full the oldest entry is evicted
    - a min-heap of (expires_at, generation, key) is the expiry index;
      expired entries are evicted on every access

Delivery of the code (SMS) is delegated to the notification service.
"""

import heapq
import itertools
import logging
import secrets
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Generic, Hashable, Optional, TypeVar

from food_ordering.core.config import get_settings

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float
    generation: int


class ExpiringStore(Generic[K, V]):
    """
    Thread-safe key/value store with a TTL per entry and a hard capacity.

    Args:
        ttl_seconds: Default lifetime of an entry
        max_entries: Capacity; inserting beyond it evicts the oldest entry
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[K, _Entry[V]]" = OrderedDict()
        self._expiry: list[tuple[float, int, K]] = []
        self._generations = itertools.count()
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        while self._expiry and self._expiry[0][0] <= now:
            _, generation, key = heapq.heappop(self._expiry)
            entry = self._entries.get(key)
            if entry is not None and entry.generation == generation:
                del self._entries[key]

    def _compact_index(self) -> None:
        # Replaced and popped entries leave stale heap records behind
        if len(self._expiry) > 2 * len(self._entries) + 64:
            self._expiry = [
                (e.expires_at, e.generation, k) for k, e in self._entries.items()
            ]
            heapq.heapify(self._expiry)

    def set(self, key: K, value: V, ttl_seconds: Optional[float] = None) -> None:
        now = self._clock()
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._evict_expired(now)
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Store full, evicted {evicted!r}")
            entry = _Entry(value=value, expires_at=now + ttl, generation=next(self._generations))
            self._entries[key] = entry
            heapq.heappush(self._expiry, (entry.expires_at, entry.generation, key))
            self._compact_index()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            self._evict_expired(self._clock())
            entry = self._entries.get(key)
            return entry.value if entry else None

    def pop(self, key: K) -> Optional[V]:
        with self._lock:
            self._evict_expired(self._clock())
            entry = self._entries.pop(key, None)
            return entry.value if entry else None

    def __contains__(self, key: K) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._entries)


@dataclass
class _Challenge:
    code: str
    attempts: int = 0


class OtpService:
    """Issues and verifies single-use numeric codes keyed by phone number."""

    MAX_ATTEMPTS = 5

    def __init__(self, store: ExpiringStore, length: int = 4):
        self.store = store
        self.length = length

    @staticmethod
    def _key(phone: str) -> str:
        return "".join(ch for ch in phone if ch.isdigit())

    def issue(self, phone: str) -> str:
        """Create (or replace) the code for ``phone`` and return it."""
        low = 10 ** (self.length - 1)
        code = str(low + secrets.randbelow(9 * low))
        self.store.set(self._key(phone), _Challenge(code=code))
        logger.info(f"OTP issued for {phone}")
        return code

    def verify(self, phone: str, code: str) -> bool:
        """
        Check ``code`` for ``phone``.

        A correct code is consumed. Wrong guesses count against the
        challenge, which is discarded after ``MAX_ATTEMPTS`` failures.
        """
        key = self._key(phone)
        challenge = self.store.get(key)
        if challenge is None:
            return False

        if secrets.compare_digest(challenge.code.encode(), code.strip().encode()):
            self.store.pop(key)
            return True

        challenge.attempts += 1
        if challenge.attempts >= self.MAX_ATTEMPTS:
            self.store.pop(key)
            logger.warning(f"OTP for {phone} discarded after {challenge.attempts} failed attempts")
        return False


@lru_cache()
def get_otp_service() -> OtpService:
    settings = get_settings()
    store: ExpiringStore[str, _Challenge] = ExpiringStore(
        ttl_seconds=settings.otp_ttl_seconds,
        max_entries=settings.otp_max_entries,
    )
    return OtpService(store, length=settings.otp_length)
