"""
Decides, for every raw vehicle position, whether to use it as-is, reuse a
cached match, or run the map matcher, and keeps a bounded trail per vehicle.

Per vehicle the controller is either idle or has one match in flight. While
a match is in flight, further positions for that vehicle go straight into
the trail with their raw coordinates.
"""
from __future__ import annotations

import bisect
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional

from .cache import PendingOperationSet, SpatialCache
from .conf import MatchingConfig
from .exceptions import InvalidCoordinates, NoRoadData
from .geo import detect_coordinate_swap, is_valid_coordinates
from .matcher import MapMatcher, Matched

logger = logging.getLogger(__name__)

RAW = "raw"
CACHED = "cached"
MATCHED = "matched"


@dataclass(frozen=True)
class TrackedPosition:
    vehicle_id: Hashable
    lat: float
    lng: float
    heading: float
    timestamp: float
    source: str
    confidence: Optional[float] = None

    def as_dict(self) -> Dict:
        return {
            "lat": round(self.lat, 6),
            "lng": round(self.lng, 6),
            "heading": round(self.heading, 1),
            "timestamp": self.timestamp,
            "source": self.source,
            "confidence": None if self.confidence is None else round(self.confidence, 3),
        }


class Trail:
    """Time-ordered positions, capped at ``max_length`` (oldest dropped first)."""

    def __init__(self, max_length: int):
        self.max_length = max_length
        self._positions: List[TrackedPosition] = []
        self._timestamps: List[float] = []

    def append(self, position: TrackedPosition) -> bool:
        index = bisect.bisect_right(self._timestamps, position.timestamp)
        if index == 0 and len(self._positions) >= self.max_length:
            # Older than everything kept in a full trail.
            return False
        self._positions.insert(index, position)
        self._timestamps.insert(index, position.timestamp)
        overflow = len(self._positions) - self.max_length
        if overflow > 0:
            del self._positions[:overflow]
            del self._timestamps[:overflow]
        return True

    @property
    def last(self) -> Optional[TrackedPosition]:
        return self._positions[-1] if self._positions else None

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self):
        return iter(list(self._positions))


PositionListener = Callable[[Hashable, TrackedPosition], None]


class ThrottleAndFallbackController:
    def __init__(
        self,
        matcher: MapMatcher,
        config: Optional[MatchingConfig] = None,
        cache: Optional[SpatialCache] = None,
        pending: Optional[PendingOperationSet] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.matcher = matcher
        self.config = config or MatchingConfig()
        self.clock = clock
        self.wall_clock = wall_clock
        if cache is None:
            cache = SpatialCache(
                ttl_s=self.config.cache_ttl_s,
                precision=self.config.geohash_precision,
                clock=clock,
            )
        self.cache = cache
        self.pending = pending if pending is not None else PendingOperationSet()
        self.routing_enabled = self.config.routing_enabled

        self._lock = threading.RLock()
        self._trails: Dict[Hashable, Trail] = defaultdict(lambda: Trail(self.config.max_trail_length))
        self._last_snap: Dict[Hashable, float] = {}
        self._listeners: List[PositionListener] = []

    def subscribe(self, listener: PositionListener) -> None:
        self._listeners.append(listener)

    def enable_routing(self, enabled: bool) -> None:
        self.routing_enabled = enabled
        logger.info("Road matching %s", "enabled" if enabled else "disabled")

    def submit_position(
        self,
        vehicle_id: Hashable,
        lat: float,
        lng: float,
        heading: Optional[float] = None,
        timestamp: Optional[float] = None,
    ) -> TrackedPosition:
        """
        Accept a raw position for ``vehicle_id`` and return what went into its
        trail. Raises ``InvalidCoordinates`` for NaN or out-of-range input; the
        update is dropped in that case.
        """
        if not is_valid_coordinates(lat, lng):
            logger.warning("Invalid coordinates for vehicle %s: lat=%r lng=%r", vehicle_id, lat, lng)
            raise InvalidCoordinates(lat, lng)
        lat, lng = float(lat), float(lng)

        swap = detect_coordinate_swap(lat, lng, self.config.plausible_bounds)
        if swap.is_swapped:
            logger.warning(
                "Detected coordinate swap for vehicle %s, correcting (%s, %s) -> (%s, %s)",
                vehicle_id,
                lat,
                lng,
                swap.lat,
                swap.lng,
            )
            lat, lng = swap.lat, swap.lng

        timestamp = self.wall_clock() if timestamp is None else timestamp
        heading = 0.0 if heading is None else heading

        if not self.routing_enabled:
            return self._accept(vehicle_id, lat, lng, heading, timestamp, RAW)

        if vehicle_id in self.pending:
            logger.debug("Match in flight for %s, keeping raw position", vehicle_id)
            return self._accept(vehicle_id, lat, lng, heading, timestamp, RAW)

        now = self.clock()
        with self._lock:
            last_snap = self._last_snap.get(vehicle_id)
        throttled = last_snap is not None and now - last_snap < self.config.throttle_window_s

        if throttled:
            cached = self.cache.get(lat, lng)
            if cached is not None:
                return self._accept(
                    vehicle_id,
                    cached.lat,
                    cached.lng,
                    heading if cached.heading is None else cached.heading,
                    timestamp,
                    CACHED,
                )
            logger.debug("Throttled %s with no cached match, keeping raw position", vehicle_id)
            return self._accept(vehicle_id, lat, lng, heading, timestamp, RAW)

        return self._match(vehicle_id, lat, lng, heading, timestamp)

    def _match(self, vehicle_id, lat, lng, heading, timestamp) -> TrackedPosition:
        previous = self.last_position(vehicle_id)

        with self.pending.hold(vehicle_id) as acquired:
            if not acquired:
                return self._accept(vehicle_id, lat, lng, heading, timestamp, RAW)

            try:
                if previous is not None:
                    outcome = self.matcher.match_pair((previous.lat, previous.lng), lat, lng)
                else:
                    outcome = self.matcher.match_point(lat, lng)
            except NoRoadData as error:
                logger.debug("No road data for %s, keeping raw position: %s", vehicle_id, error)
                outcome = None
            except Exception:
                logger.warning("Match failed for vehicle %s, keeping raw position", vehicle_id, exc_info=True)
                outcome = None

            if isinstance(outcome, Matched):
                matched_heading = heading if outcome.heading is None else outcome.heading
                self.cache.put(lat, lng, outcome.lat, outcome.lng, matched_heading)
                with self._lock:
                    self._last_snap[vehicle_id] = self.clock()
                return self._accept(
                    vehicle_id,
                    outcome.lat,
                    outcome.lng,
                    matched_heading,
                    timestamp,
                    MATCHED,
                    outcome.confidence,
                )

            return self._accept(vehicle_id, lat, lng, heading, timestamp, RAW)

    def _accept(self, vehicle_id, lat, lng, heading, timestamp, source, confidence=None) -> TrackedPosition:
        position = TrackedPosition(
            vehicle_id=vehicle_id,
            lat=lat,
            lng=lng,
            heading=heading,
            timestamp=timestamp,
            source=source,
            confidence=confidence,
        )
        with self._lock:
            kept = self._trails[vehicle_id].append(position)
        if not kept:
            logger.debug("Dropped out-of-order position for vehicle %s at %s", vehicle_id, timestamp)

        for listener in list(self._listeners):
            try:
                listener(vehicle_id, position)
            except Exception:
                logger.exception("Position listener failed for vehicle %s", vehicle_id)
        return position

    def get_trail(self, vehicle_id: Hashable) -> List[TrackedPosition]:
        with self._lock:
            trail = self._trails.get(vehicle_id)
            return list(trail) if trail is not None else []

    def last_position(self, vehicle_id: Hashable) -> Optional[TrackedPosition]:
        with self._lock:
            trail = self._trails.get(vehicle_id)
            return trail.last if trail is not None else None

    def last_snap_time(self, vehicle_id: Hashable) -> Optional[float]:
        with self._lock:
            return self._last_snap.get(vehicle_id)

    def vehicle_ids(self) -> List[Hashable]:
        with self._lock:
            return list(self._trails)

    def forget(self, vehicle_id: Hashable) -> None:
        with self._lock:
            self._trails.pop(vehicle_id, None)
            self._last_snap.pop(vehicle_id, None)

    def service_health(self) -> Dict[str, bool]:
        return self.matcher.service_health()
