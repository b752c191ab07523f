"""
Map matching: reconcile raw coordinates with the road network.

Both entry points return a tagged outcome, ``Matched`` or ``Unmatched``.
A result is only ``Matched`` when its confidence exceeds the threshold for
its match type; anything else is ``Unmatched`` and the caller keeps the raw
coordinate.

An unhealthy remote provider is bypassed until a periodic health re-check
reports it healthy again.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union

from .conf import MatchingConfig
from .exceptions import GraphEmpty, NoRoadData, ProviderError
from .geo import bearing_deg
from .graph import RoadGraph
from .providers import LocalRoutingProvider, RoadSnapResult, RoutingProvider

logger = logging.getLogger(__name__)

SINGLE_POINT = "single_point"
TWO_POINT = "two_point"


@dataclass(frozen=True)
class Matched:
    lat: float
    lng: float
    heading: Optional[float]
    confidence: float
    provider: str
    method: str


@dataclass(frozen=True)
class Unmatched:
    reason: str
    confidence: float = 0.0


MatchOutcome = Union[Matched, Unmatched]


class MapMatcher:
    def __init__(
        self,
        graph: RoadGraph,
        remote: Optional[RoutingProvider] = None,
        config: Optional[MatchingConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.graph = graph
        self.local = LocalRoutingProvider(graph)
        self.remote = remote
        self.config = config or MatchingConfig()
        self.clock = clock
        self._remote_health: Dict[str, bool] = {}
        self._last_health_check: Optional[float] = None
        self._health_lock = threading.Lock()

    def match_point(self, lat: float, lng: float) -> MatchOutcome:
        """
        Snap a single coordinate. The remote provider is asked first when one
        is configured and healthy; on ``ProviderError`` the local graph answers instead.

        Raises ``NoRoadData`` when the remote is unavailable and the local
        graph has no segments.
        """
        result: Optional[RoadSnapResult] = None
        provider = self.local.name

        if self._remote_available():
            try:
                result = self.remote.snap_to_road(lat, lng, self.config.snap_radius_m)
                provider = self.remote.name
            except ProviderError as error:
                logger.warning(
                    "%s snap failed for (%.6f, %.6f), falling back to local graph: %s",
                    self.remote.name,
                    lat,
                    lng,
                    error,
                )

        if result is None:
            try:
                result = self.local.snap_to_road(lat, lng, self.config.snap_radius_m)
            except GraphEmpty as error:
                raise NoRoadData("No road segments available for local matching") from error

        return self._gate_single_point(result, provider)

    def match_pair(
        self, previous: Tuple[float, float], lat: float, lng: float
    ) -> MatchOutcome:
        """
        Match the movement from ``previous`` (lat, lng) to the new coordinate.

        Uses the remote trace matcher; the last matched coordinate becomes the
        position and the bearing of the last two becomes the heading. Falls back
        to :meth:`match_point` when the remote is missing, failing or unsure.
        """
        if not self._remote_available():
            return self.match_point(lat, lng)

        prev_lat, prev_lng = previous
        try:
            result = self.remote.match_to_roads(
                [(prev_lng, prev_lat), (lng, lat)],
                radius_m=self.config.snap_radius_m,
                geometries="geojson",
            )
        except ProviderError as error:
            logger.warning(
                "%s trace match failed, falling back to single-point snap: %s",
                self.remote.name,
                error,
            )
            return self.match_point(lat, lng)

        coords = result.matched_coordinates
        threshold = self.config.two_point_min_confidence
        if len(coords) >= 2 and result.confidence > threshold:
            (before_lng, before_lat), (last_lng, last_lat) = coords[-2], coords[-1]
            return Matched(
                lat=last_lat,
                lng=last_lng,
                heading=bearing_deg(before_lat, before_lng, last_lat, last_lng),
                confidence=result.confidence,
                provider=self.remote.name,
                method=TWO_POINT,
            )

        logger.debug(
            "Trace match below threshold (%.2f <= %.2f, %d points); trying single-point snap",
            result.confidence,
            threshold,
            len(coords),
        )
        return self.match_point(lat, lng)

    def service_health(self) -> Dict[str, bool]:
        health = dict(self.local.get_service_health())
        health.update(self.refresh_service_health())
        return health

    def refresh_service_health(self, force: bool = False) -> Dict[str, bool]:
        """
        Re-check the remote provider when the last check is older than
        ``health_check_interval_s`` (or ``force`` is set). Returns the latest
        remote health, empty without a remote.
        """
        if self.remote is None:
            return {}
        now = self.clock()
        with self._health_lock:
            due = (
                force
                or self._last_health_check is None
                or now - self._last_health_check >= self.config.health_check_interval_s
            )
            if not due:
                return dict(self._remote_health)
            self._last_health_check = now

        try:
            health = dict(self.remote.check_health())
        except Exception:
            logger.exception("Health check for %s failed", self.remote.name)
            health = {self.remote.name: False}

        with self._health_lock:
            self._remote_health = health
        if not health.get(self.remote.name, False):
            logger.warning("%s is unhealthy, matching against the local graph", self.remote.name)
        return dict(health)

    def _remote_available(self) -> bool:
        if self.remote is None:
            return False
        if self.remote.get_service_health().get(self.remote.name, True):
            return True
        return self.refresh_service_health().get(self.remote.name, False)

    def _gate_single_point(self, result: RoadSnapResult, provider: str) -> MatchOutcome:
        threshold = self.config.single_point_min_confidence
        if result.confidence <= threshold:
            logger.debug("Snap confidence %.2f <= %.2f, unmatched", result.confidence, threshold)
            return Unmatched(reason="low_confidence", confidence=result.confidence)
        if result.distance_m > self.config.max_snap_distance_m:
            logger.debug("Snap distance %.1f m beyond limit, unmatched", result.distance_m)
            return Unmatched(reason="too_far", confidence=result.confidence)

        lng, lat = result.location
        return Matched(
            lat=lat,
            lng=lng,
            heading=result.heading,
            confidence=result.confidence,
            provider=provider,
            method=SINGLE_POINT,
        )
