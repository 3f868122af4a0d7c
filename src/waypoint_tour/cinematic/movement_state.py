"""
Movement state data structures for map camera control.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..models import Coordinate, TransitionInfo


class CameraState(Enum):
    """What the camera controller is doing right now"""
    IDLE = "idle"
    PANNING = "panning"
    CINEMATIC = "cinematic"


class CinematicPhase(Enum):
    """Phases of a cinematic transition, in execution order"""
    ZOOM_OUT = "zoom_out"
    PAN = "pan"
    ZOOM_IN = "zoom_in"
    DONE = "done"


class MovementKind(Enum):
    SMOOTH_PAN = "smooth_pan"
    CINEMATIC = "cinematic"
    INSTANT = "instant"


@dataclass
class MovementRequest:
    """A queued camera request waiting for the active sequence to finish"""
    movement_id: str
    kind: MovementKind
    target: Coordinate
    zoom: Optional[float]
    on_info: Optional[Callable[[TransitionInfo], None]] = None
    on_complete: Optional[Callable[[], None]] = None


@dataclass
class PanSequence:
    """State of an active simple pan: the remaining interpolated centers"""
    movement_id: str
    target: Coordinate
    target_zoom: Optional[float]
    path: List[Coordinate] = field(default_factory=list)
    on_complete: Optional[Callable[[], None]] = None


@dataclass
class CinematicSequence:
    """State of an active cinematic transition"""
    movement_id: str
    start: Coordinate
    target: Coordinate
    target_zoom: float
    zoom_out_level: float
    zoom_level: float
    info: TransitionInfo
    phase: CinematicPhase = CinematicPhase.ZOOM_OUT
    pan_step: int = 0
    on_complete: Optional[Callable[[], None]] = None

    def interpolate(self, step: int, total_steps: int) -> Coordinate:
        if step >= total_steps:
            return self.target
        fraction = step / total_steps
        return Coordinate(
            lat=self.start.lat + (self.target.lat - self.start.lat) * fraction,
            lng=self.start.lng + (self.target.lng - self.start.lng) * fraction,
        )
