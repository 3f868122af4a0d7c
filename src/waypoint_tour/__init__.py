"""Cinematic waypoint tour engine: camera transitions, narration sync and traversal."""

__version__ = "0.1.0"

from .camera_controller import CameraTransitionController
from .config import TourConfig, get_config
from .errors import (
    MalformedKeyframeLine,
    MissingItineraryData,
    OutOfBoundsIndex,
    PlaybackBlocked,
    SourceUnavailable,
    TourError,
    ValidationFailure,
)
from .models import Coordinate, Itinerary, Keyframe, RouteSegment, TransitionInfo, Waypoint
from .narration import NarrationSyncEngine, NarrationView, parse_keyframes
from .scheduler import AsyncioScheduler, Scheduler, VirtualScheduler
from .schemas import parse_itinerary
from .session import TourSession
from .surface import AudioPlayback, InMemorySurface, RenderingSurface, SimulatedAudio
from .traversal import TraversalState, WaypointTraversalController

__all__ = [
    "__version__",
    "CameraTransitionController",
    "TourConfig",
    "get_config",
    "MalformedKeyframeLine",
    "MissingItineraryData",
    "OutOfBoundsIndex",
    "PlaybackBlocked",
    "SourceUnavailable",
    "TourError",
    "ValidationFailure",
    "Coordinate",
    "Itinerary",
    "Keyframe",
    "RouteSegment",
    "TransitionInfo",
    "Waypoint",
    "NarrationSyncEngine",
    "NarrationView",
    "parse_keyframes",
    "AsyncioScheduler",
    "Scheduler",
    "VirtualScheduler",
    "parse_itinerary",
    "TourSession",
    "AudioPlayback",
    "InMemorySurface",
    "RenderingSurface",
    "SimulatedAudio",
    "TraversalState",
    "WaypointTraversalController",
]
