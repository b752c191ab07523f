"""
Wiring for the Django surface: a simulated fleet driving the demo Dublin
network, with every position going through the match controller.
"""
from __future__ import annotations

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Dict, Hashable, List, Optional, Sequence

from .conf import MatchingConfig
from .controller import ThrottleAndFallbackController, TrackedPosition
from .graph import RoadGraph
from .matcher import MapMatcher
from .network import SEGMENT_DEFINITIONS
from .providers import RoutingProvider, build_provider
from .simulator import Simulator, VehicleMovementState, connect_controller
from .traversal import Traversal

logger = logging.getLogger(__name__)

CENTER_LOCATION = (53.3498, -6.2603)  # O'Connell Bridge, Dublin

VEHICLE_PROFILES: Sequence[Dict[str, str]] = [
    {
        "callsign": "RM-101",
        "license_plate": "231-D-10457",
        "device_id": "RM-DUB-101",
        "driver": "Aoife Byrne",
        "vehicle_type": "van",
    },
    {
        "callsign": "RM-102",
        "license_plate": "222-D-31877",
        "device_id": "RM-DUB-102",
        "driver": "Cian Murphy",
        "vehicle_type": "truck",
    },
    {
        "callsign": "RM-103",
        "license_plate": "241-D-05120",
        "device_id": "RM-DUB-103",
        "driver": "Niamh Kelly",
        "vehicle_type": "car",
    },
    {
        "callsign": "RM-104",
        "license_plate": "232-D-77810",
        "device_id": "RM-DUB-104",
        "driver": "Darragh Walsh",
        "vehicle_type": "motorcycle",
    },
    {
        "callsign": "RM-105",
        "license_plate": "211-D-46032",
        "device_id": "RM-DUB-105",
        "driver": "Siobhan O'Brien",
        "vehicle_type": "van",
    },
]


class TrackingService:
    """
    Simulator, matcher and controller assembled over one road graph.

    Positions emitted by the simulator are submitted to the controller
    synchronously, so a :meth:`step` leaves every trail up to date.
    """

    def __init__(
        self,
        config: Optional[MatchingConfig] = None,
        definitions=SEGMENT_DEFINITIONS,
        profiles: Sequence[Dict[str, str]] = VEHICLE_PROFILES,
        remote: Optional[RoutingProvider] = None,
        seed: Optional[int] = None,
    ):
        self.config = config or MatchingConfig()
        self.graph = RoadGraph.from_definitions(definitions)
        rng = random.Random(seed)

        if remote is None:
            remote = build_provider(self.config)
        self.matcher = MapMatcher(self.graph, remote=remote, config=self.config)
        self.controller = ThrottleAndFallbackController(self.matcher, self.config)
        self.simulator = Simulator(Traversal(self.graph, rng), self.config, rng)
        connect_controller(self.simulator, self.controller)

        self.profiles: Dict[Hashable, Dict[str, str]] = {}
        for profile in profiles:
            self.add_vehicle(profile)

    def add_vehicle(self, profile: Dict[str, str]) -> VehicleMovementState:
        vehicle_id = profile["device_id"]
        self.profiles[vehicle_id] = dict(profile)
        return self.simulator.add_vehicle(vehicle_id, vehicle_type=profile.get("vehicle_type", "van"))

    def remove_vehicle(self, vehicle_id: Hashable) -> None:
        self.simulator.remove_vehicle(vehicle_id)
        self.controller.forget(vehicle_id)
        self.profiles.pop(vehicle_id, None)

    def has_vehicle(self, vehicle_id: Hashable) -> bool:
        return vehicle_id in self.profiles

    def step(self) -> None:
        self.simulator.tick()

    def start(self) -> None:
        """Run the simulator and the cache sweeper on background threads."""
        self.controller.cache.start_sweeper(self.config.cache_sweep_interval_s)
        self.simulator.start()

    def stop(self) -> None:
        self.simulator.stop()
        self.controller.cache.stop_sweeper()

    def trail(self, vehicle_id: Hashable) -> List[Dict]:
        return [position.as_dict() for position in self.controller.get_trail(vehicle_id)]

    def service_health(self) -> Dict[str, bool]:
        return self.controller.service_health()

    def vehicle_snapshot(self, state: VehicleMovementState) -> Dict:
        profile = self.profiles.get(state.vehicle_id, {})
        segment = self.graph.segment(state.position.segment_id)
        tracked: Optional[TrackedPosition] = self.controller.last_position(state.vehicle_id)

        if not state.active:
            status = "Inactive"
        elif state.at_dead_end or state.speed_kmh == 0:
            status = "Stopped"
        else:
            status = "En Route"

        raw_location = {"lat": round(state.position.lat, 6), "lng": round(state.position.lng, 6)}
        if tracked is not None:
            location = {"lat": round(tracked.lat, 6), "lng": round(tracked.lng, 6)}
            source = tracked.source
            heading = tracked.heading
        else:
            location = dict(raw_location)
            source = None
            heading = state.position.heading

        return {
            "uid": state.vehicle_id,
            "name": profile.get("callsign", str(state.vehicle_id)),
            "identifiers": {
                "license_plate": profile.get("license_plate", ""),
                "device_id": state.vehicle_id,
                "driver": profile.get("driver", ""),
            },
            "vehicle_type": state.vehicle_type,
            "status": status,
            "speed_kmh": round(state.speed_kmh, 1),
            "heading": round(heading, 1),
            "location": location,
            "raw_location": raw_location,
            "source": source,
            "road": {
                "segment_id": segment.id,
                "name": segment.road_name,
                "road_class": segment.road_class,
                "offset": round(state.position.offset, 4),
            },
            "trail": self.trail(state.vehicle_id),
        }

    def snapshot(self) -> Dict:
        vehicles = [self.vehicle_snapshot(state) for state in self.simulator.vehicles()]
        return {
            "vehicles": vehicles,
            "status_filters": sorted({vehicle["status"] for vehicle in vehicles}),
            "center_location": {
                "lat": CENTER_LOCATION[0],
                "lng": CENTER_LOCATION[1],
                "zoom": 14,
            },
            "generation_time": datetime.now(timezone.utc).isoformat(),
            "routing": {
                "enabled": self.controller.routing_enabled,
                "health": self.service_health(),
            },
        }


_SERVICE: Optional[TrackingService] = None
_SERVICE_LOCK = threading.Lock()


def get_tracking_service() -> TrackingService:
    global _SERVICE
    with _SERVICE_LOCK:
        if _SERVICE is None:
            _SERVICE = TrackingService(MatchingConfig.from_settings())
            logger.info("Tracking service ready with %d vehicles", len(_SERVICE.profiles))
        return _SERVICE


def reset_tracking_service() -> None:
    global _SERVICE
    with _SERVICE_LOCK:
        _SERVICE = None


def get_tracking_snapshot() -> Dict:
    """
    Advance the simulation by one tick and return a snapshot for the APIs.
    """
    service = get_tracking_service()
    service.step()
    return service.snapshot()
