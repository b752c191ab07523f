"""
Configuration surface for the matching subsystem.

Projects override defaults through a ``ROAD_MATCHING`` dict in Django settings::

    ROAD_MATCHING = {
        "PROVIDER": "osrm",
        "THROTTLE_WINDOW_MS": 2000,
    }
"""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple

from django.core.exceptions import ImproperlyConfigured

# (min_lat, max_lat, min_lng, max_lng), buffered around the island of Ireland.
IRELAND_BOUNDS: Tuple[float, float, float, float] = (51.2, 55.7, -11.0, -5.0)

PROVIDERS = ("local", "osrm")


@dataclass(frozen=True)
class MatchingConfig:
    throttle_window_ms: int = 3000
    cache_ttl_ms: int = 5 * 60 * 1000
    cache_sweep_interval_ms: int = 5 * 60 * 1000
    geohash_precision: int = 6
    single_point_min_confidence: float = 0.3
    two_point_min_confidence: float = 0.6
    max_snap_distance_m: float = 200.0
    snap_radius_m: float = 100.0
    max_trail_length: int = 100
    tick_interval_ms: int = 1000
    speed_jitter_kmh: float = 10.0
    plausible_bounds: Tuple[float, float, float, float] = IRELAND_BOUNDS
    provider: str = "local"
    osrm_base_url: str = "https://router.project-osrm.org"
    provider_timeout_seconds: float = 5.0
    provider_max_retries: int = 2
    provider_retry_delay_ms: int = 1000
    provider_backoff_multiplier: float = 2.0
    provider_rate_limit: int = 600
    provider_rate_window_ms: int = 60 * 1000
    health_check_interval_ms: int = 30 * 1000
    routing_enabled: bool = True

    def __post_init__(self):
        errors = []
        for name in (
            "throttle_window_ms",
            "cache_ttl_ms",
            "cache_sweep_interval_ms",
            "tick_interval_ms",
            "provider_max_retries",
            "provider_retry_delay_ms",
            "health_check_interval_ms",
        ):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")
        for name in ("single_point_min_confidence", "two_point_min_confidence"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                errors.append(f"{name} must lie in [0, 1]")
        if self.geohash_precision < 1:
            errors.append("geohash_precision must be at least 1")
        if self.max_trail_length < 1:
            errors.append("max_trail_length must be at least 1")
        if self.speed_jitter_kmh < 0:
            errors.append("speed_jitter_kmh must not be negative")
        if self.provider_backoff_multiplier < 1:
            errors.append("provider_backoff_multiplier must be at least 1")
        if self.provider_rate_limit < 1 or self.provider_rate_window_ms <= 0:
            errors.append("provider_rate_limit and provider_rate_window_ms must be positive")
        if self.provider not in PROVIDERS:
            errors.append(f"provider must be one of {', '.join(PROVIDERS)}")
        if errors:
            raise ImproperlyConfigured("; ".join(errors))

    @property
    def throttle_window_s(self) -> float:
        return self.throttle_window_ms / 1000.0

    @property
    def cache_ttl_s(self) -> float:
        return self.cache_ttl_ms / 1000.0

    @property
    def cache_sweep_interval_s(self) -> float:
        return self.cache_sweep_interval_ms / 1000.0

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0

    @property
    def provider_retry_delay_s(self) -> float:
        return self.provider_retry_delay_ms / 1000.0

    @property
    def provider_rate_window_s(self) -> float:
        return self.provider_rate_window_ms / 1000.0

    @property
    def health_check_interval_s(self) -> float:
        return self.health_check_interval_ms / 1000.0

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "MatchingConfig":
        known = {field.name for field in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = key.lower()
            if name not in known:
                continue
            if name == "plausible_bounds":
                value = tuple(float(v) for v in value)
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_settings(cls) -> "MatchingConfig":
        from django.conf import settings

        return cls.from_dict(getattr(settings, "ROAD_MATCHING", {}) or {})
