"""
Move positions forward along the road graph, crossing junctions.
"""
from __future__ import annotations

import logging
import random
from typing import List, NamedTuple, Optional

from .geo import angular_difference
from .graph import RoadGraph, RoadSegment, SegmentPosition

logger = logging.getLogger(__name__)


class Advance(NamedTuple):
    position: SegmentPosition
    # Distance that could not be travelled; positive only at a dead end.
    remaining_m: float

    @property
    def dead_end(self) -> bool:
        return self.remaining_m > 0


class Traversal:
    def __init__(self, graph: RoadGraph, rng: Optional[random.Random] = None):
        self.graph = graph
        self.rng = rng or random.Random()

    def advance(
        self,
        position: SegmentPosition,
        distance_m: float,
        preferred_bearing: Optional[float] = None,
    ) -> SegmentPosition:
        return self.step(position, distance_m, preferred_bearing).position

    def step(
        self,
        position: SegmentPosition,
        distance_m: float,
        preferred_bearing: Optional[float] = None,
    ) -> Advance:
        segment = self.graph.segment(position.segment_id)
        offset = position.offset
        remaining = max(0.0, distance_m)

        while remaining > 0:
            left_on_segment = segment.length_m * (1.0 - offset)
            if remaining <= left_on_segment:
                offset = min(1.0, offset + remaining / segment.length_m)
                remaining = 0.0
                break

            remaining -= left_on_segment
            offset = 1.0
            following = self.choose_next_segment(segment, preferred_bearing)
            if following is None:
                logger.debug(
                    "Dead end at segment %s with %.1f m left to travel",
                    segment.id,
                    remaining,
                )
                break
            segment = following
            offset = 0.0

        return Advance(SegmentPosition.on(segment, offset), remaining)

    def choose_next_segment(
        self, segment: RoadSegment, preferred_bearing: Optional[float] = None
    ) -> Optional[RoadSegment]:
        """
        Pick the segment to continue on from the end junction of ``segment``.

        Priority: dead end, single option, closest bearing to
        ``preferred_bearing``, same road name, then any connected segment.
        """
        options = self.graph.connected_segments(segment.id)
        if not options:
            return None
        if len(options) == 1:
            return options[0]

        if preferred_bearing is not None:
            return min(options, key=lambda s: angular_difference(s.bearing, preferred_bearing))

        same_road: List[RoadSegment] = [s for s in options if s.road_name == segment.road_name]
        if same_road:
            return self.rng.choice(same_road)
        return self.rng.choice(options)
