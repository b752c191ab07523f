"""
Periodic driver that moves simulated vehicles along the road graph.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Tuple

from .conf import MatchingConfig
from .exceptions import InvalidCoordinates
from .graph import SegmentPosition
from .traversal import Traversal

logger = logging.getLogger(__name__)

VEHICLE_TYPE_SPEEDS_KMH: Dict[str, float] = {
    "motorcycle": 40.0,
    "car": 35.0,
    "van": 30.0,
    "truck": 25.0,
}
DEFAULT_VEHICLE_SPEED_KMH = 30.0


@dataclass
class VehicleMovementState:
    vehicle_id: Hashable
    position: SegmentPosition
    speed_kmh: float
    base_speed_kmh: float
    last_update: float
    vehicle_type: str = "van"
    active: bool = True
    at_dead_end: bool = False


TickListener = Callable[[Hashable, SegmentPosition, float], None]


class Simulator:
    def __init__(
        self,
        traversal: Traversal,
        config: Optional[MatchingConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.traversal = traversal
        self.config = config or MatchingConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self._vehicles: Dict[Hashable, VehicleMovementState] = {}
        self._listeners: List[TickListener] = []
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def graph(self):
        return self.traversal.graph

    def subscribe(self, listener: TickListener) -> None:
        self._listeners.append(listener)

    def add_vehicle(
        self,
        vehicle_id: Hashable,
        position: Optional[SegmentPosition] = None,
        vehicle_type: str = "van",
        base_speed_kmh: Optional[float] = None,
    ) -> VehicleMovementState:
        if position is None:
            position = self.graph.random_position(self.rng)
        if base_speed_kmh is None:
            base_speed_kmh = VEHICLE_TYPE_SPEEDS_KMH.get(vehicle_type, DEFAULT_VEHICLE_SPEED_KMH)
        state = VehicleMovementState(
            vehicle_id=vehicle_id,
            position=position,
            speed_kmh=base_speed_kmh,
            base_speed_kmh=base_speed_kmh,
            last_update=self.clock(),
            vehicle_type=vehicle_type,
        )
        with self._lock:
            self._vehicles[vehicle_id] = state
        return state

    def remove_vehicle(self, vehicle_id: Hashable) -> None:
        with self._lock:
            self._vehicles.pop(vehicle_id, None)

    def set_active(self, vehicle_id: Hashable, active: bool) -> None:
        with self._lock:
            self._vehicles[vehicle_id].active = active

    def vehicle(self, vehicle_id: Hashable) -> VehicleMovementState:
        with self._lock:
            return self._vehicles[vehicle_id]

    def vehicles(self) -> List[VehicleMovementState]:
        with self._lock:
            return list(self._vehicles.values())

    def tick(self, tick_seconds: Optional[float] = None) -> List[Tuple[Hashable, SegmentPosition]]:
        """
        Advance every active vehicle by one tick and notify listeners.
        Returns the emitted ``(vehicle_id, position)`` pairs.
        """
        if tick_seconds is None:
            tick_seconds = self.config.tick_interval_s
        now = self.clock()
        emitted = []

        for state in self.vehicles():
            if not state.active:
                continue

            jitter = self.config.speed_jitter_kmh
            if jitter:
                state.speed_kmh = max(0.0, state.base_speed_kmh + self.rng.uniform(-jitter, jitter))
            distance = state.speed_kmh / 3.6 * tick_seconds

            advance = self.traversal.step(state.position, distance, state.position.heading)
            if advance.dead_end and not state.at_dead_end:
                logger.debug("Vehicle %s stopped at a dead end on segment %s", state.vehicle_id, advance.position.segment_id)
            state.at_dead_end = advance.dead_end
            state.position = advance.position
            state.last_update = now
            emitted.append((state.vehicle_id, state.position))

        for vehicle_id, position in emitted:
            for listener in list(self._listeners):
                try:
                    listener(vehicle_id, position, now)
                except Exception:
                    logger.exception("Tick listener failed for vehicle %s", vehicle_id)
        return emitted

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        interval = self.config.tick_interval_s

        def run():
            while not self._stop.wait(interval):
                try:
                    self.tick(interval)
                except Exception:
                    logger.exception("Simulator tick failed")

        self._thread = threading.Thread(target=run, name="road-simulator", daemon=True)
        self._thread.start()
        logger.info("Simulator started with %d vehicles, tick %.2fs", len(self._vehicles), interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
            logger.info("Simulator stopped")


def connect_controller(simulator: Simulator, controller, executor: Optional[Executor] = None) -> None:
    """
    Feed simulator ticks into ``controller.submit_position``. With an executor,
    submissions for different vehicles run concurrently.
    """

    def submit(vehicle_id, position: SegmentPosition, timestamp: float):
        try:
            controller.submit_position(
                vehicle_id,
                position.lat,
                position.lng,
                heading=position.heading,
                timestamp=timestamp,
            )
        except InvalidCoordinates as error:
            logger.warning("Dropped simulated position for %s: %s", vehicle_id, error)

    def listener(vehicle_id, position, timestamp):
        if executor is None:
            submit(vehicle_id, position, timestamp)
        else:
            executor.submit(submit, vehicle_id, position, timestamp)

    simulator.subscribe(listener)
