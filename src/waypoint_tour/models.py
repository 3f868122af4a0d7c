"""
Data models for guided waypoint tours.

All types are immutable once loaded into a session. Alternate upstream shapes
are normalised by ``waypoint_tour.schemas`` before they reach these types.
"""

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .errors import OutOfBoundsIndex


@dataclass(frozen=True)
class Coordinate:
    """Geographic position in decimal degrees."""
    lat: float
    lng: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class Waypoint:
    """A stop on a route, presented to the user during traversal."""
    id: str
    order: int
    coordinate: Coordinate
    name: str = ''
    description: str = ''
    image_refs: Tuple[str, ...] = ()
    narration_audio_ref: Optional[str] = None
    keyframes_ref: Optional[str] = None

    @property
    def has_narration(self) -> bool:
        return bool(self.narration_audio_ref and self.keyframes_ref)


@dataclass(frozen=True)
class RouteSegment:
    """Ordered waypoints plus the raw polyline drawn for the route line."""
    id: str
    waypoints: Tuple[Waypoint, ...] = ()
    path: Tuple[Coordinate, ...] = ()


@dataclass(frozen=True)
class Itinerary:
    """
    Ordered route segments for one demo session.

    The segments define one continuous flat waypoint index space: index 0 is
    the first waypoint of the first non-empty segment, and indices continue
    across segment boundaries.
    """
    segments: Tuple[RouteSegment, ...] = ()
    session_id: Optional[str] = None
    _offsets: Tuple[int, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self):
        offsets = []
        running = 0
        for segment in self.segments:
            offsets.append(running)
            running += len(segment.waypoints)
        object.__setattr__(self, '_offsets', tuple(offsets))

    @property
    def waypoint_count(self) -> int:
        return sum(len(segment.waypoints) for segment in self.segments)

    @property
    def last_index(self) -> int:
        """Index of the final waypoint, -1 for an empty itinerary."""
        return self.waypoint_count - 1

    @property
    def has_waypoints(self) -> bool:
        return any(segment.waypoints for segment in self.segments)

    @property
    def has_path(self) -> bool:
        return any(segment.path for segment in self.segments)

    def contains(self, index: int) -> bool:
        return 0 <= index < self.waypoint_count

    def locate(self, index: int) -> Optional[Tuple[int, int]]:
        """Map a flat index to ``(segment_index, local_index)``; None when out of range."""
        if not self.contains(index):
            return None
        for segment_index in range(len(self.segments) - 1, -1, -1):
            offset = self._offsets[segment_index]
            if index >= offset and self.segments[segment_index].waypoints:
                return segment_index, index - offset
        return None

    def waypoint_at(self, index: int) -> Optional[Waypoint]:
        position = self.locate(index)
        if position is None:
            return None
        segment_index, local_index = position
        return self.segments[segment_index].waypoints[local_index]

    def require(self, index: int) -> Waypoint:
        """Strict lookup; raises OutOfBoundsIndex outside [0, waypoint_count)."""
        waypoint = self.waypoint_at(index)
        if waypoint is None:
            raise OutOfBoundsIndex(
                f"Waypoint index {index} outside [0, {self.waypoint_count})",
                details={'index': index, 'waypoint_count': self.waypoint_count},
            )
        return waypoint

    def segment_for(self, index: int) -> Optional[RouteSegment]:
        position = self.locate(index)
        if position is None:
            return None
        return self.segments[position[0]]

    def iter_waypoints(self) -> Iterator[Waypoint]:
        for segment in self.segments:
            yield from segment.waypoints

    def flat_waypoints(self) -> List[Waypoint]:
        return list(self.iter_waypoints())

    def full_path(self) -> List[Coordinate]:
        """Concatenated polyline of every segment."""
        points: List[Coordinate] = []
        for segment in self.segments:
            points.extend(segment.path)
        return points


@dataclass(frozen=True)
class Keyframe:
    """A narration timing marker: the text that has been spoken by ``time_seconds``."""
    time_seconds: float
    cumulative_text: str


@dataclass(frozen=True)
class TransitionInfo:
    """Timing of one camera move, reported before any motion starts."""
    distance_meters: float
    duration_ms: int
    distance_km: float
    zoom_out_delta: int = 0

    def to_dict(self) -> dict:
        return {
            'distance_meters': self.distance_meters,
            'distance_km': self.distance_km,
            'duration_ms': self.duration_ms,
            'zoom_out_delta': self.zoom_out_delta,
        }
