"""
Immutable road graph with a spatial index for nearest-segment queries.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Tuple

import networkx as nx
from shapely.geometry import LineString, Point, box
from shapely.strtree import STRtree

from .exceptions import GraphEmpty
from .geo import bearing_deg, haversine_m, interpolate

logger = logging.getLogger(__name__)

ROAD_CLASS_SPEEDS_KMH: Dict[str, float] = {
    "freeway": 80.0,
    "avenue": 45.0,
    "boulevard": 40.0,
    "street": 30.0,
}
DEFAULT_ROAD_SPEED_KMH = 35.0

# Endpoints closer than this are treated as the same junction.
JUNCTION_TOLERANCE_M = 15.0


@dataclass(frozen=True)
class RoadSegment:
    """
    A straight road edge travelled from ``start`` to ``end``.

    ``connected_ids`` holds every segment sharing either endpoint; which of
    them lie ahead of a vehicle is decided by the graph.
    """

    id: int
    start: Tuple[float, float]
    end: Tuple[float, float]
    length_m: float
    road_name: str = ""
    road_class: str = "street"
    connected_ids: FrozenSet[int] = frozenset()

    @property
    def bearing(self) -> float:
        return bearing_deg(self.start[0], self.start[1], self.end[0], self.end[1])

    @property
    def default_speed_kmh(self) -> float:
        return ROAD_CLASS_SPEEDS_KMH.get(self.road_class, DEFAULT_ROAD_SPEED_KMH)

    def point_at(self, offset: float) -> Tuple[float, float]:
        return interpolate(self.start, self.end, offset)


@dataclass(frozen=True)
class SegmentPosition:
    """
    Where a vehicle is on the graph. Build through :meth:`on` so that the
    point and heading always derive from the segment and offset.
    """

    segment_id: int
    offset: float
    lat: float
    lng: float
    heading: float

    @classmethod
    def on(cls, segment: RoadSegment, offset: float) -> "SegmentPosition":
        offset = min(1.0, max(0.0, offset))
        lat, lng = segment.point_at(offset)
        return cls(
            segment_id=segment.id,
            offset=offset,
            lat=lat,
            lng=lng,
            heading=segment.bearing,
        )

    @property
    def point(self) -> Tuple[float, float]:
        return self.lat, self.lng


class NearestSegment(NamedTuple):
    segment: RoadSegment
    position: SegmentPosition
    distance_m: float


def segment_from_definition(definition: Mapping) -> RoadSegment:
    start = tuple(float(v) for v in definition["start"])
    end = tuple(float(v) for v in definition["end"])
    length = definition.get("length_m")
    if length is None:
        length = haversine_m(start, end)
    return RoadSegment(
        id=definition["id"],
        start=start,
        end=end,
        length_m=float(length),
        road_name=definition.get("road_name", ""),
        road_class=definition.get("road_class", "street"),
        connected_ids=frozenset(definition.get("connected", ())),
    )


class RoadGraph:
    """
    Road segments, their connectivity and a spatial index over their geometry.

    Adjacency is made symmetric at construction: if A lists B, B lists A.
    A connected segment lies *ahead* of A when its start coincides with A's end.
    """

    def __init__(self, segments: Iterable[RoadSegment], junction_tolerance_m: float = JUNCTION_TOLERANCE_M):
        by_id: Dict[int, RoadSegment] = {}
        for segment in segments:
            if segment.id in by_id:
                raise ValueError(f"Duplicate road segment id {segment.id!r}")
            by_id[segment.id] = segment

        links: Dict[int, set] = {segment_id: set() for segment_id in by_id}
        for segment in by_id.values():
            for other_id in segment.connected_ids:
                if other_id not in by_id or other_id == segment.id:
                    logger.warning(
                        "Segment %s lists unknown or self connection %s; ignoring",
                        segment.id,
                        other_id,
                    )
                    continue
                links[segment.id].add(other_id)
                links[other_id].add(segment.id)

        self._segments: Dict[int, RoadSegment] = {
            segment_id: replace(segment, connected_ids=frozenset(links[segment_id]))
            for segment_id, segment in by_id.items()
        }

        self._ahead = nx.DiGraph()
        self._ahead.add_nodes_from(self._segments)
        for segment in self._segments.values():
            for other_id in segment.connected_ids:
                other = self._segments[other_id]
                if haversine_m(segment.end, other.start) <= junction_tolerance_m:
                    self._ahead.add_edge(segment.id, other_id)

        self._ids: List[int] = sorted(self._segments)
        self._lines = [
            LineString(
                [
                    (self._segments[segment_id].start[1], self._segments[segment_id].start[0]),
                    (self._segments[segment_id].end[1], self._segments[segment_id].end[0]),
                ]
            )
            for segment_id in self._ids
        ]
        self._index: Optional[STRtree] = STRtree(self._lines) if self._lines else None

        logger.info(
            "Road graph built: %d segments, %d junction links",
            len(self._segments),
            self._ahead.number_of_edges(),
        )

    @classmethod
    def from_definitions(cls, definitions: Iterable[Mapping], **kwargs) -> "RoadGraph":
        return cls((segment_from_definition(d) for d in definitions), **kwargs)

    def __len__(self) -> int:
        return len(self._segments)

    def __contains__(self, segment_id) -> bool:
        return segment_id in self._segments

    def __iter__(self):
        return (self._segments[segment_id] for segment_id in self._ids)

    @property
    def is_empty(self) -> bool:
        return not self._segments

    def segment(self, segment_id: int) -> RoadSegment:
        try:
            return self._segments[segment_id]
        except KeyError:
            raise KeyError(f"Unknown road segment {segment_id!r}") from None

    def connected_segments(self, segment_id: int) -> List[RoadSegment]:
        """Segments reachable from the far (end) junction of ``segment_id``."""
        self.segment(segment_id)
        return [self._segments[other_id] for other_id in sorted(self._ahead.successors(segment_id))]

    def position(self, segment_id: int, offset: float) -> SegmentPosition:
        return SegmentPosition.on(self.segment(segment_id), offset)

    def random_position(self, rng: Optional[random.Random] = None) -> SegmentPosition:
        if self.is_empty:
            raise GraphEmpty("Cannot place a position on an empty road graph")
        rng = rng or random.Random()
        segment = self._segments[rng.choice(self._ids)]
        return SegmentPosition.on(segment, rng.random())

    def nearest_segment(self, lat: float, lng: float) -> NearestSegment:
        """
        Snap a coordinate onto the closest road geometry.

        The STR-tree yields the planar-nearest line first; the search box is then
        widened by ``1 / cos(lat)`` so that every line which could be closer on
        the ground is projected exactly. Ties go to the lowest segment id.
        """
        if self._index is None:
            raise GraphEmpty("Road graph has no segments")

        query = Point(lng, lat)
        nearest_idx = self._index.query_nearest(query)
        planar = min(self._lines[int(i)].distance(query) for i in nearest_idx)
        reach = planar / max(math.cos(math.radians(lat)), 1e-6) + 1e-12
        candidates = self._index.query(box(lng - reach, lat - reach, lng + reach, lat + reach))

        best: Optional[NearestSegment] = None
        for idx in sorted(int(i) for i in candidates):
            segment = self._segments[self._ids[idx]]
            offset = self._project(self._lines[idx], segment, query)
            position = SegmentPosition.on(segment, offset)
            distance = haversine_m((lat, lng), position.point)
            if best is None or distance < best.distance_m:
                best = NearestSegment(segment, position, distance)

        return best

    @staticmethod
    def _project(line: LineString, segment: RoadSegment, query: Point) -> float:
        if segment.start == segment.end:
            return 0.0
        return line.project(query, normalized=True)
