"""
Error taxonomy for road matching.

Only ``InvalidCoordinates`` is expected to reach callers of the controller;
everything else is absorbed into a fallback path before it gets there.
"""
from __future__ import annotations

from typing import Optional


class RoadMatchError(Exception):
    """Base class for every error raised by the matching subsystem."""


class InvalidCoordinates(RoadMatchError, ValueError):
    def __init__(self, latitude: float, longitude: float, message: Optional[str] = None):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            message or f"Invalid coordinates: lat={latitude!r}, lng={longitude!r}"
        )


class GraphEmpty(RoadMatchError):
    """Raised when a geometry query is issued against a graph without segments."""


class NoRoadData(RoadMatchError):
    """Raised when neither a remote result nor a local segment is available."""


class ProviderError(RoadMatchError):
    """
    A remote routing provider call failed (network, HTTP status, timeout or an
    unusable payload). Always recoverable by falling back to local matching.
    ``retryable`` marks transient failures (timeouts, dropped connections,
    throttling and 5xx responses).
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        status: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status = status
        self.retryable = retryable


class LowConfidenceMatch(RoadMatchError):
    """A match came back below the acceptance threshold."""

    def __init__(self, confidence: float, threshold: float):
        super().__init__(
            f"Match confidence {confidence:.3f} does not exceed threshold {threshold:.3f}"
        )
        self.confidence = confidence
        self.threshold = threshold
