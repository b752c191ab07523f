"""
Routing providers: the snap-to-road / match-to-roads contract, an OSRM HTTP
implementation and a local implementation backed by the road graph.

Provider coordinates follow the web-mapping convention ``(lng, lat)``.
"""
from __future__ import annotations

import abc
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import requests

from .exceptions import ProviderError
from .graph import RoadGraph
from .ratelimit import RateLimiter, backoff_delay

logger = logging.getLogger(__name__)

LngLat = Tuple[float, float]

# OSRM codes meaning "nothing to snap to" rather than a failed request.
OSRM_NO_ROAD_CODES = ("NoMatch", "NoSegment")

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)

# O'Connell Street, Dublin.
HEALTH_CHECK_POINT = (53.3498, -6.2603)


@dataclass(frozen=True)
class RoadSnapResult:
    location: LngLat
    distance_m: float
    confidence: float
    heading: Optional[float] = None
    road_name: Optional[str] = None


@dataclass(frozen=True)
class RoadMatchResult:
    matched_coordinates: List[LngLat]
    confidence: float


def distance_confidence(distance_m: float, radius_m: float) -> float:
    """
    Confidence from snap distance: 1.0 under 5 m, 0.0 beyond ``radius_m``,
    linear in between.
    """
    full_confidence_m = 5.0
    if distance_m < full_confidence_m:
        return 1.0
    if distance_m > radius_m or radius_m <= full_confidence_m:
        return 0.0
    return max(0.0, min(1.0, 1.0 - (distance_m - full_confidence_m) / (radius_m - full_confidence_m)))


class RoutingProvider(abc.ABC):
    name = "provider"

    @abc.abstractmethod
    def snap_to_road(self, lat: float, lng: float, radius_m: float = 100.0) -> RoadSnapResult:
        """Snap one coordinate; confidence 0 when no road lies within ``radius_m``."""

    @abc.abstractmethod
    def match_to_roads(
        self,
        points: Sequence[LngLat],
        radius_m: float = 100.0,
        geometries: str = "geojson",
    ) -> RoadMatchResult:
        """Match an ordered trace of at least two ``(lng, lat)`` points."""

    def get_service_health(self) -> Dict[str, bool]:
        return {self.name: True}

    def check_health(self) -> Dict[str, bool]:
        """Actively re-check the service. Defaults to the passive report."""
        return self.get_service_health()


def _is_transient(error: Exception, status: Optional[int]) -> bool:
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True
    return status in RETRYABLE_STATUSES


def _require_trace(points: Sequence[LngLat]) -> None:
    if len(points) < 2:
        raise ValueError("match_to_roads needs at least two points")


class LocalRoutingProvider(RoutingProvider):
    """Snaps against the in-memory road graph. Never performs I/O."""

    name = "local"

    def __init__(self, graph: RoadGraph):
        self.graph = graph

    def snap_to_road(self, lat: float, lng: float, radius_m: float = 100.0) -> RoadSnapResult:
        nearest = self.graph.nearest_segment(lat, lng)
        position = nearest.position
        return RoadSnapResult(
            location=(position.lng, position.lat),
            distance_m=nearest.distance_m,
            confidence=distance_confidence(nearest.distance_m, radius_m),
            heading=position.heading,
            road_name=nearest.segment.road_name,
        )

    def match_to_roads(
        self,
        points: Sequence[LngLat],
        radius_m: float = 100.0,
        geometries: str = "geojson",
    ) -> RoadMatchResult:
        _require_trace(points)
        snapped = [self.snap_to_road(lat, lng, radius_m) for lng, lat in points]
        return RoadMatchResult(
            matched_coordinates=[result.location for result in snapped],
            confidence=sum(result.confidence for result in snapped) / len(snapped),
        )

    def get_service_health(self) -> Dict[str, bool]:
        return {self.name: not self.graph.is_empty}


class OsrmRoutingProvider(RoutingProvider):
    """
    Remote provider backed by the OSRM HTTP API (``/nearest`` and ``/match``).
    Every failure surfaces as :class:`ProviderError`.

    Requests pass through ``rate_limiter`` when one is given. Transient
    failures are retried up to ``max_retries`` times with exponential backoff.
    """

    name = "osrm"

    def __init__(
        self,
        base_url: str = "https://router.project-osrm.org",
        profile: str = "driving",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout = timeout
        self.session = session or requests.Session()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.backoff_multiplier = backoff_multiplier
        self.rate_limiter = rate_limiter
        self.sleep = sleep
        self._healthy = True

    def snap_to_road(self, lat: float, lng: float, radius_m: float = 100.0) -> RoadSnapResult:
        url = f"{self.base_url}/nearest/v1/{self.profile}/{lng},{lat}"
        payload = self._get(url, {"number": 1})

        if payload.get("code") in OSRM_NO_ROAD_CODES or not payload.get("waypoints"):
            return RoadSnapResult(location=(lng, lat), distance_m=float("inf"), confidence=0.0)

        waypoint = payload["waypoints"][0]
        try:
            snapped_lng, snapped_lat = (float(v) for v in waypoint["location"])
            distance = float(waypoint.get("distance", 0.0))
        except (KeyError, TypeError, ValueError) as error:
            raise ProviderError(f"Malformed OSRM waypoint: {error}", provider=self.name) from error

        return RoadSnapResult(
            location=(snapped_lng, snapped_lat),
            distance_m=distance,
            confidence=distance_confidence(distance, radius_m),
            road_name=waypoint.get("name") or None,
        )

    def match_to_roads(
        self,
        points: Sequence[LngLat],
        radius_m: float = 100.0,
        geometries: str = "geojson",
    ) -> RoadMatchResult:
        _require_trace(points)
        coords = ";".join(f"{lng},{lat}" for lng, lat in points)
        url = f"{self.base_url}/match/v1/{self.profile}/{coords}"
        params = {
            "geometries": geometries,
            "overview": "full",
            "steps": "false",
            "tidy": "true",
            "radiuses": ";".join(f"{radius_m:g}" for _ in points),
        }
        payload = self._get(url, params)

        if payload.get("code") in OSRM_NO_ROAD_CODES or not payload.get("matchings"):
            return RoadMatchResult(matched_coordinates=[], confidence=0.0)

        matching = payload["matchings"][0]
        try:
            coordinates = [
                (float(lng), float(lat)) for lng, lat in matching["geometry"]["coordinates"]
            ]
            confidence = float(matching.get("confidence", 0.0))
        except (KeyError, TypeError, ValueError) as error:
            raise ProviderError(f"Malformed OSRM matching: {error}", provider=self.name) from error

        return RoadMatchResult(
            matched_coordinates=coordinates,
            confidence=max(0.0, min(1.0, confidence)),
        )

    def get_service_health(self) -> Dict[str, bool]:
        return {self.name: self._healthy}

    def check_health(self) -> Dict[str, bool]:
        """Issue one ``/nearest`` request at a known street and report the result."""
        lat, lng = HEALTH_CHECK_POINT
        try:
            self._request(f"{self.base_url}/nearest/v1/{self.profile}/{lng},{lat}", {"number": 1})
        except ProviderError as error:
            logger.info("OSRM health check failed: %s", error)
        return self.get_service_health()

    def _get(self, url: str, params: Dict) -> Dict:
        attempt = 0
        while True:
            try:
                return self._request(url, params)
            except ProviderError as error:
                if not error.retryable or attempt >= self.max_retries:
                    raise
                attempt += 1
                delay = backoff_delay(attempt, self.retry_delay, self.backoff_multiplier)
                logger.info("Retrying OSRM request in %.2fs (retry %d of %d)", delay, attempt, self.max_retries)
                self.sleep(delay)

    def _request(self, url: str, params: Dict) -> Dict:
        if self.rate_limiter is not None:
            waited = self.rate_limiter.wait_until_allowed(self.name)
            if waited:
                logger.debug("Waited %.2fs for the OSRM rate limit", waited)

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            status = response.status_code
            payload = response.json() if status < 500 and status not in RETRYABLE_STATUSES else None
            if status >= 400 and not (isinstance(payload, dict) and payload.get("code") in OSRM_NO_ROAD_CODES):
                response.raise_for_status()
        except (requests.exceptions.RequestException, json.JSONDecodeError, ValueError) as error:
            self._healthy = False
            logger.warning("OSRM request failed: %s", error)
            status = getattr(getattr(error, "response", None), "status_code", None)
            raise ProviderError(
                f"OSRM request failed: {error}",
                provider=self.name,
                status=status,
                retryable=_is_transient(error, status),
            ) from error

        if not isinstance(payload, dict):
            self._healthy = False
            raise ProviderError("OSRM returned a non-object payload", provider=self.name, status=status)

        code = payload.get("code")
        if code != "Ok" and code not in OSRM_NO_ROAD_CODES:
            self._healthy = False
            raise ProviderError(
                f"OSRM returned status '{code}': {payload.get('message', 'no message')}",
                provider=self.name,
                status=status,
            )

        self._healthy = True
        return payload


def build_provider(config) -> Optional[RoutingProvider]:
    """Return the remote provider selected by ``config``; ``None`` for local-only."""
    if config.provider == "osrm":
        logger.info("Using OSRM routing provider at %s", config.osrm_base_url)
        return OsrmRoutingProvider(
            base_url=config.osrm_base_url,
            timeout=config.provider_timeout_seconds,
            max_retries=config.provider_max_retries,
            retry_delay=config.provider_retry_delay_s,
            backoff_multiplier=config.provider_backoff_multiplier,
            rate_limiter=RateLimiter(config.provider_rate_limit, config.provider_rate_window_s),
        )
    logger.info("Using local road graph only for matching")
    return None
