"""
Duration calculation utilities for cinematic map transitions.

Maps great-circle distance between two coordinates to a transition duration
and to the number of zoom levels the camera backs out before panning. Both
mappings are stepped bucket tables and are pure functions.
"""

import math
from typing import List, Optional, Tuple

from ..models import Coordinate, TransitionInfo

EARTH_RADIUS_METERS = 6371000.0

# (upper bound in meters, exclusive) -> duration in milliseconds
DURATION_BUCKETS: List[Tuple[float, int]] = [
    (400.0, 500),
    (2000.0, 3200),
    (8000.0, 3500),
    (20000.0, 4000),
    (40000.0, 4000),
    (60000.0, 4500),
    (120000.0, 5500),
    (180000.0, 6000),
    (250000.0, 7000),
    (350000.0, 7000),
    (500000.0, 7500),
    (750000.0, 7500),
    (1000000.0, 7750),
]
MAX_DURATION_MS = 9000

# (upper bound in meters, exclusive) -> zoom levels to back out
ZOOM_OUT_BUCKETS: List[Tuple[float, int]] = [
    (400.0, 0),
    (2000.0, 1),
    (8000.0, 2),
    (20000.0, 3),
    (40000.0, 4),
    (60000.0, 5),
    (120000.0, 6),
    (180000.0, 7),
    (250000.0, 8),
    (350000.0, 9),
    (500000.0, 10),
    (750000.0, 11),
]
MAX_ZOOM_OUT_DELTA = 12

DEFAULT_MIN_ZOOM_LEVEL = 5


def _validate_distance(distance_meters: float) -> float:
    distance = float(distance_meters)
    if math.isnan(distance) or distance < 0:
        raise ValueError(f"Distance must be a non-negative number, got: {distance_meters}")
    return distance


def _lookup(buckets: List[Tuple[float, int]], cap: int, distance: float) -> int:
    for upper_bound, value in buckets:
        if distance < upper_bound:
            return value
    return cap


def calculate_distance(start: Coordinate, end: Coordinate) -> float:
    """
    Great-circle distance between two coordinates (haversine).

    Args:
        start: Starting coordinate
        end: Ending coordinate

    Returns:
        Distance in meters
    """
    lat1 = math.radians(start.lat)
    lat2 = math.radians(end.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(end.lng - start.lng)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # Rounding can push a a hair outside [0, 1] for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def calculate_duration(distance_meters: float) -> int:
    """
    Transition duration for a distance.

    Args:
        distance_meters: Great-circle distance in meters

    Returns:
        Duration in milliseconds

    Raises:
        ValueError: If the distance is negative
    """
    distance = _validate_distance(distance_meters)
    return _lookup(DURATION_BUCKETS, MAX_DURATION_MS, distance)


def calculate_zoom_out_delta(distance_meters: float) -> int:
    """Zoom levels to back out before panning across ``distance_meters``."""
    distance = _validate_distance(distance_meters)
    return _lookup(ZOOM_OUT_BUCKETS, MAX_ZOOM_OUT_DELTA, distance)


def calculate_zoom_out_level(current_zoom: float, distance_meters: float,
                             min_zoom: Optional[float] = None) -> float:
    """
    Zoom level the camera backs out to for a cinematic transition.

    The delta is subtracted from the current zoom and floored at ``min_zoom``;
    a camera already zoomed out past the floor stays where it is.
    """
    floor = DEFAULT_MIN_ZOOM_LEVEL if min_zoom is None else min_zoom
    target = max(current_zoom - calculate_zoom_out_delta(distance_meters), floor)
    return min(current_zoom, target)


def calculate_transition(start: Coordinate, end: Coordinate) -> TransitionInfo:
    """Compute the full timing record for a move from ``start`` to ``end``."""
    distance = calculate_distance(start, end)
    return TransitionInfo(
        distance_meters=distance,
        duration_ms=calculate_duration(distance),
        distance_km=distance / 1000.0,
        zoom_out_delta=calculate_zoom_out_delta(distance),
    )
