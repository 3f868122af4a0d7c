"""
Cinematic module for map camera transitions.

This module provides the building blocks used by the camera controller:
- Distance-based duration and zoom-out calculation
- Movement state data structures and enums
- Per-controller movement queue
"""

# Core data structures
from .movement_state import (
    CameraState,
    CinematicPhase,
    CinematicSequence,
    MovementKind,
    MovementRequest,
    PanSequence,
)

# Duration calculations
from .duration_calculator import (
    EARTH_RADIUS_METERS,
    calculate_distance,
    calculate_duration,
    calculate_transition,
    calculate_zoom_out_delta,
    calculate_zoom_out_level,
)

# Queue management
from .queue_manager import QueueManager

__all__ = [
    # Data structures
    'CameraState',
    'CinematicPhase',
    'CinematicSequence',
    'MovementKind',
    'MovementRequest',
    'PanSequence',

    # Duration calculations
    'EARTH_RADIUS_METERS',
    'calculate_distance',
    'calculate_duration',
    'calculate_transition',
    'calculate_zoom_out_delta',
    'calculate_zoom_out_level',

    # Queue management
    'QueueManager',
]
