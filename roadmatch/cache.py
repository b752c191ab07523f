"""
Shared state for the match controller: a geohash-keyed TTL cache of matched
points and the set of vehicles with a match in flight.

Both structures are safe to use from several threads at once.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterator, Optional, Set

from .geo import geohash_encode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpatialCacheEntry:
    lat: float
    lng: float
    heading: Optional[float]
    timestamp: float


class SpatialCache:
    """
    Last matched point per geohash cell.

    Reads drop entries older than ``ttl_s``; :meth:`sweep` removes them across
    the whole cache and can run on a background timer via
    :meth:`start_sweeper`.
    """

    def __init__(
        self,
        ttl_s: float,
        precision: int = 6,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_s = ttl_s
        self.precision = precision
        self.clock = clock
        self._entries: Dict[str, SpatialCacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_sweeper = threading.Event()

    def key(self, lat: float, lng: float) -> str:
        return geohash_encode(lat, lng, self.precision)

    def get(self, lat: float, lng: float) -> Optional[SpatialCacheEntry]:
        key = self.key(lat, lng)
        now = self.clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now - entry.timestamp < self.ttl_s:
                return entry
            del self._entries[key]
        return None

    def put(
        self,
        lat: float,
        lng: float,
        matched_lat: float,
        matched_lng: float,
        heading: Optional[float] = None,
    ) -> SpatialCacheEntry:
        entry = SpatialCacheEntry(matched_lat, matched_lng, heading, self.clock())
        with self._lock:
            self._entries[self.key(lat, lng)] = entry
        return entry

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now - entry.timestamp >= self.ttl_s]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired snap cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start_sweeper(self, interval_s: float) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_sweeper.clear()

        def run():
            while not self._stop_sweeper.wait(interval_s):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="snap-cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None


class PendingOperationSet:
    """Vehicle ids with a match in flight. Presence is an exclusive claim."""

    def __init__(self):
        self._ids: Set[Hashable] = set()
        self._lock = threading.Lock()

    def try_acquire(self, vehicle_id: Hashable) -> bool:
        with self._lock:
            if vehicle_id in self._ids:
                return False
            self._ids.add(vehicle_id)
            return True

    def release(self, vehicle_id: Hashable) -> None:
        with self._lock:
            self._ids.discard(vehicle_id)

    @contextmanager
    def hold(self, vehicle_id: Hashable) -> Iterator[bool]:
        """
        Claim ``vehicle_id`` for the duration of the block. Yields ``False``
        when another operation already holds it; a successful claim is released
        on every exit path.
        """
        acquired = self.try_acquire(vehicle_id)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(vehicle_id)

    def __contains__(self, vehicle_id: Hashable) -> bool:
        with self._lock:
            return vehicle_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
