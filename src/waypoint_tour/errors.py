"""Domain-specific errors and helpers for the waypoint tour engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ErrorPayload:
    """Structured error payload returned to callers of status-style APIs."""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            'success': False,
            'error_code': self.code,
            'error': self.message,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class TourError(Exception):
    """Base exception for tour engine failures."""

    code: str = 'TOUR_ERROR'

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return ErrorPayload(self.code, self.message, self.details or None).to_dict()


class ValidationFailure(TourError):
    code = 'VALIDATION_ERROR'


class MissingItineraryData(TourError):
    """The itinerary has no waypoints or no path; the session does not start."""

    code = 'MISSING_DATA'


class MalformedKeyframeLine(TourError):
    """A keyframe line is not ``<seconds>:<text>``. Skipped by the bulk parser."""

    code = 'MALFORMED_KEYFRAME'


class PlaybackBlocked(TourError):
    """Raised by audio handles when the host refuses to start playback."""

    code = 'PLAYBACK_BLOCKED'


class OutOfBoundsIndex(TourError):
    code = 'OUT_OF_BOUNDS'


class SourceUnavailable(TourError):
    code = 'SOURCE_UNAVAILABLE'


__all__ = [
    'ErrorPayload',
    'TourError',
    'ValidationFailure',
    'MissingItineraryData',
    'MalformedKeyframeLine',
    'PlaybackBlocked',
    'OutOfBoundsIndex',
    'SourceUnavailable',
]
