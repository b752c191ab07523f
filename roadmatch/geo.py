"""
Geodesic helpers shared by the graph, the matcher and the controller.

Coordinates are passed around as ``(lat, lng)`` tuples in decimal degrees,
except where a routing provider contract says ``[lng, lat]``.

``haversine_m`` and ``bearing_deg`` are the metre-based forms of
``haversine_km`` and ``_bearing_deg`` from the v_T_m fleet tracker
(``tracking/services.py``), with the same mean Earth radius of 6371.0088 km.
The geohash codec is the standard base32 interleaving.
"""
from __future__ import annotations

import math
from typing import NamedTuple, Tuple

EARTH_RADIUS_M = 6371008.8

_GEOHASH_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"


def haversine_m(start: Tuple[float, float], end: Tuple[float, float]) -> float:
    """
    Compute the great-circle distance between two coordinates in metres.
    """
    lat1, lng1 = map(math.radians, start)
    lat2, lng2 = map(math.radians, end)
    d_lat = lat2 - lat1
    d_lng = lng2 - lng1
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bearing_deg(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Compute forward azimuth in degrees from point 1 to point 2, in [0, 360).
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lambda = math.radians(lng2 - lng1)

    x = math.sin(d_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        d_lambda
    )
    return normalize_bearing(math.degrees(math.atan2(x, y)))


def normalize_bearing(bearing: float) -> float:
    normalized = bearing % 360.0
    # -1e-15 % 360 rounds up to 360.0
    if normalized >= 360.0:
        normalized = 0.0
    return normalized


def angular_difference(a: float, b: float) -> float:
    """Shortest angular distance between two bearings, in [0, 180]."""
    return abs((a - b + 180.0) % 360.0 - 180.0)


def interpolate(
    start: Tuple[float, float], end: Tuple[float, float], ratio: float
) -> Tuple[float, float]:
    start_lat, start_lng = start
    end_lat, end_lng = end
    return (
        start_lat + (end_lat - start_lat) * ratio,
        start_lng + (end_lng - start_lng) * ratio,
    )


def is_valid_coordinates(lat: float, lng: float) -> bool:
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def within_bounds(lat: float, lng: float, bounds: Tuple[float, float, float, float]) -> bool:
    min_lat, max_lat, min_lng, max_lng = bounds
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


class SwapCheck(NamedTuple):
    is_swapped: bool
    lat: float
    lng: float


def detect_coordinate_swap(
    lat: float, lng: float, bounds: Tuple[float, float, float, float]
) -> SwapCheck:
    """
    Flag a lat/lng pair that only makes sense read the other way round.

    A swap is reported when the swapped reading falls inside ``bounds`` and the
    pair as given does not. When both or neither reading fits, the pair is left
    untouched.
    """
    as_given = within_bounds(lat, lng, bounds)
    swapped = within_bounds(lng, lat, bounds)
    if swapped and not as_given:
        return SwapCheck(True, lng, lat)
    return SwapCheck(False, lat, lng)


def geohash_encode(lat: float, lng: float, precision: int = 6) -> str:
    """
    Encode a coordinate as a base32 geohash string of ``precision`` characters.
    """
    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    chars = []
    bit = 0
    ch = 0
    even = True

    while len(chars) < precision:
        if even:
            mid = (lng_range[0] + lng_range[1]) / 2
            if lng >= mid:
                ch |= 1 << (4 - bit)
                lng_range[0] = mid
            else:
                lng_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat >= mid:
                ch |= 1 << (4 - bit)
                lat_range[0] = mid
            else:
                lat_range[1] = mid

        even = not even
        bit += 1
        if bit == 5:
            chars.append(_GEOHASH_BASE32[ch])
            bit = 0
            ch = 0

    return "".join(chars)


def geohash_decode(geohash: str) -> Tuple[float, float]:
    """
    Decode a geohash into the ``(lat, lng)`` centre of its cell.
    """
    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    even = True

    for char in geohash:
        cd = _GEOHASH_BASE32.find(char)
        if cd == -1:
            raise ValueError(f"Invalid geohash character: {char!r}")
        for bit in range(4, -1, -1):
            target = lng_range if even else lat_range
            mid = (target[0] + target[1]) / 2
            if cd & (1 << bit):
                target[0] = mid
            else:
                target[1] = mid
            even = not even

    return (lat_range[0] + lat_range[1]) / 2, (lng_range[0] + lng_range[1]) / 2
