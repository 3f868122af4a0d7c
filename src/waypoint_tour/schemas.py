"""Ingestion schemas that normalise upstream itinerary payloads into core models."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import MissingItineraryData, ValidationFailure
from .models import Coordinate, Itinerary, RouteSegment, Waypoint


class TourModel(BaseModel):
    """Base model configuration with permissive extra handling."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)


class CoordinatePayload(TourModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)

    @model_validator(mode='before')
    @classmethod
    def _accept_pairs(cls, value: Any) -> Any:
        # Path points sometimes arrive as [lat, lng] pairs
        if isinstance(value, (list, tuple)):
            if len(value) != 2:
                raise ValueError(f"coordinate pair must have 2 items, got {len(value)}")
            return {'lat': value[0], 'lng': value[1]}
        if isinstance(value, dict) and 'lng' not in value and 'lon' in value:
            value = dict(value)
            value['lng'] = value.pop('lon')
        return value

    def to_model(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


class WaypointPayload(TourModel):
    id: Optional[str] = None
    order: Optional[int] = None
    coordinates: CoordinatePayload
    name: str = ''
    description: str = ''
    image_urls: List[str] = Field(default_factory=list, alias='imageRefs')
    narration_url: Optional[str] = Field(default=None, alias='narrationAudioRef')
    keyframes_url: Optional[str] = Field(default=None, alias='keyframesRef')

    @model_validator(mode='before')
    @classmethod
    def _nest_flat_coordinates(cls, value: Any) -> Any:
        # Waypoints carry either {"coordinates": {...}} or flat lat/lng fields
        if isinstance(value, dict) and 'coordinates' not in value and 'coordinate' not in value:
            if 'lat' in value and ('lng' in value or 'lon' in value):
                value = dict(value)
                value['coordinates'] = {
                    'lat': value.pop('lat'),
                    'lng': value.pop('lng') if 'lng' in value else value.pop('lon'),
                }
        elif isinstance(value, dict) and 'coordinate' in value and 'coordinates' not in value:
            value = dict(value)
            value['coordinates'] = value.pop('coordinate')
        return value

    @field_validator('id', mode='before')
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator('image_urls', mode='before')
    @classmethod
    def _drop_empty_images(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [item for item in value if item]
        return value

    def to_model(self, fallback_order: int, fallback_id: str) -> Waypoint:
        return Waypoint(
            id=self.id or fallback_id,
            order=self.order if self.order is not None else fallback_order,
            coordinate=self.coordinates.to_model(),
            name=self.name,
            description=self.description,
            image_refs=tuple(self.image_urls),
            narration_audio_ref=self.narration_url or None,
            keyframes_ref=self.keyframes_url or None,
        )


class RouteSegmentPayload(TourModel):
    id: str = ''
    order: Optional[int] = None
    waypoints: List[WaypointPayload] = Field(default_factory=list)
    path: List[CoordinatePayload] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def _path_aliases(cls, value: Any) -> Any:
        # Stored routes keep their polyline under "coordinates"
        if isinstance(value, dict) and 'path' not in value and 'coordinates' in value:
            value = dict(value)
            value['path'] = value.pop('coordinates')
        if isinstance(value, dict) and value.get('path') is None and 'path' in value:
            value = dict(value)
            value['path'] = []
        return value

    @field_validator('id', mode='before')
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if value is None:
            return ''
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    def to_model(self, fallback_id: str) -> RouteSegment:
        indexed = list(enumerate(self.waypoints))
        # Stable sort: waypoints without an order keep their input position
        indexed.sort(key=lambda item: item[1].order if item[1].order is not None else item[0])
        segment_id = self.id or fallback_id
        waypoints = tuple(
            payload.to_model(position, f"{segment_id}-wp-{position}") for position, payload in indexed
        )
        return RouteSegment(
            id=segment_id,
            waypoints=waypoints,
            path=tuple(point.to_model() for point in self.path),
        )


class ItineraryPayload(TourModel):
    session_id: Optional[str] = None
    routes: List[RouteSegmentPayload] = Field(default_factory=list, alias='segments')

    @model_validator(mode='before')
    @classmethod
    def _accept_bare_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {'segments': value}
        return value

    def to_itinerary(self) -> Itinerary:
        indexed = list(enumerate(self.routes))
        indexed.sort(key=lambda item: item[1].order if item[1].order is not None else item[0])
        segments = tuple(
            payload.to_model(fallback_id=f"segment-{position}") for position, payload in indexed
        )
        return Itinerary(segments=segments, session_id=self.session_id)


def _format_validation_error(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {'loc': '.'.join(str(part) for part in err.get('loc', ())), 'msg': err.get('msg', '')}
        for err in exc.errors()
    ]


def parse_itinerary(payload: Any, *, session_id: Optional[str] = None, require_demo_data: bool = True) -> Itinerary:
    """
    Validate an upstream payload and return the canonical itinerary.

    Args:
        payload: Dict with ``segments``/``routes``, or a bare list of segments
        session_id: Session identifier recorded on the itinerary when the
            payload does not carry one
        require_demo_data: Require at least one waypoint and one path point

    Raises:
        ValidationFailure: Payload shape or coordinate ranges are invalid
        MissingItineraryData: No waypoints or no path to drive a demo
    """
    try:
        model = ItineraryPayload.model_validate(payload)
    except ValidationError as exc:
        raise ValidationFailure(
            'Invalid itinerary payload',
            details={'errors': _format_validation_error(exc)},
        ) from exc

    if model.session_id is None and session_id is not None:
        model.session_id = session_id
    itinerary = model.to_itinerary()

    if require_demo_data and not (itinerary.has_waypoints and itinerary.has_path):
        raise MissingItineraryData(
            'No waypoints or path found for this itinerary',
            details={
                'session_id': itinerary.session_id,
                'has_waypoints': itinerary.has_waypoints,
                'has_path': itinerary.has_path,
            },
        )
    return itinerary


__all__ = [
    'CoordinatePayload',
    'WaypointPayload',
    'RouteSegmentPayload',
    'ItineraryPayload',
    'parse_itinerary',
]
