"""
Shared fixtures: small road graphs, a controllable clock and fake providers.
"""
from __future__ import annotations

import threading

from roadmatch.exceptions import ProviderError
from roadmatch.graph import RoadGraph
from roadmatch.providers import RoadMatchResult, RoadSnapResult, RoutingProvider

# One degree of latitude in metres for the haversine radius used by roadmatch.geo.
METRES_PER_DEGREE = 111195.08


def straight_graph():
    """Two 100 m segments heading east along the equator: 1 -> 2, then a dead end."""
    return RoadGraph.from_definitions(
        [
            {"id": 1, "start": (0.0, 0.0), "end": (0.0, 0.001), "length_m": 100.0, "road_name": "Main", "connected": [2]},
            {"id": 2, "start": (0.0, 0.001), "end": (0.0, 0.002), "length_m": 100.0, "road_name": "Main"},
        ]
    )


def junction_graph():
    """Segment 1 runs east into a junction with north, east and south exits."""
    junction = (0.0, 0.001)
    return RoadGraph.from_definitions(
        [
            {"id": 1, "start": (0.0, 0.0), "end": junction, "road_name": "Main", "connected": [2, 3, 4]},
            {"id": 2, "start": junction, "end": (0.001, 0.001), "road_name": "North Road"},
            {"id": 3, "start": junction, "end": (0.0, 0.002), "road_name": "Main"},
            {"id": 4, "start": junction, "end": (-0.001, 0.001), "road_name": "South Road"},
        ]
    )


def dublin_graph():
    """A single north-bound street on O'Connell Street."""
    return RoadGraph.from_definitions(
        [
            {
                "id": 1,
                "start": (53.3472, -6.2603),
                "end": (53.3534, -6.2603),
                "road_name": "O'Connell Street",
                "road_class": "avenue",
            }
        ]
    )


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeProvider(RoutingProvider):
    """Returns canned results and records every call."""

    name = "fake"

    def __init__(self, snap=None, match=None, error=None, healthy=True, check_result=None):
        self.snap = snap
        self.match = match
        self.error = error
        self.healthy = healthy
        self.check_result = check_result
        self.snap_calls = []
        self.match_calls = []
        self.health_checks = 0

    def snap_to_road(self, lat, lng, radius_m=100.0):
        self.snap_calls.append((lat, lng, radius_m))
        if self.error is not None:
            raise self.error
        return self.snap

    def match_to_roads(self, points, radius_m=100.0, geometries="geojson"):
        self.match_calls.append(list(points))
        if self.error is not None:
            raise self.error
        return self.match

    def get_service_health(self):
        return {self.name: self.healthy}

    def check_health(self):
        self.health_checks += 1
        if self.check_result is not None:
            self.healthy = self.check_result
        return self.get_service_health()


class RecordingSleep:
    """Stands in for ``time.sleep``: records delays and advances ``clock`` if given."""

    def __init__(self, clock=None):
        self.clock = clock
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def failing_provider():
    return FakeProvider(error=ProviderError("service unavailable", provider="fake", status=503))


def snap_result(lat, lng, distance_m=3.0, confidence=0.95, heading=None):
    return RoadSnapResult(location=(lng, lat), distance_m=distance_m, confidence=confidence, heading=heading)


def match_result(coordinates, confidence):
    return RoadMatchResult(matched_coordinates=list(coordinates), confidence=confidence)


class BlockingProvider(RoutingProvider):
    """Holds ``snap_to_road`` until :attr:`release` is set."""

    name = "blocking"

    def __init__(self, lat, lng):
        self.result = snap_result(lat, lng)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def snap_to_road(self, lat, lng, radius_m=100.0):
        self.calls += 1
        self.entered.set()
        self.release.wait(5)
        return self.result

    def match_to_roads(self, points, radius_m=100.0, geometries="geojson"):
        raise ProviderError("trace matching not supported", provider=self.name)
