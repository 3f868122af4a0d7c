"""
Waypoint traversal state machine.

States: IDLE -> TRANSITIONING(i) -> PRESENTING(i) -> ... -> FINISHED

Each move between waypoints asks the camera controller for a cinematic
transition, receives its TransitionInfo before any motion, and schedules the
arrival after exactly ``info.duration_ms``. Requests to move while a
transition is running are ignored.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .camera_controller import CameraTransitionController
from .cinematic import calculate_transition
from .config import TourConfig, get_config
from .errors import OutOfBoundsIndex
from .models import Coordinate, Itinerary, TransitionInfo, Waypoint
from .narration import NarrationSyncEngine
from .scheduler import Scheduler, TimerHandle
from .surface import Listeners, Unsubscribe

logger = logging.getLogger(__name__)


class TraversalState(Enum):
    IDLE = "idle"
    TRANSITIONING = "transitioning"
    PRESENTING = "presenting"
    FINISHED = "finished"


class WaypointTraversalController:
    """
    Walks one itinerary waypoint by waypoint.

    ``active_index`` is the waypoint being presented, or the one being moved
    to while TRANSITIONING. Per-waypoint UI state (gallery position and the
    narration engine) is reset each time a waypoint is presented.
    """

    def __init__(self, itinerary: Itinerary, camera: CameraTransitionController,
                 scheduler: Scheduler, config: Optional[TourConfig] = None):
        self.itinerary = itinerary
        self.camera = camera
        self.scheduler = scheduler
        self.config = config or get_config()

        self.state = TraversalState.IDLE
        self.skip_transitions = self.config.skip_transitions
        self.zoom_level = self.config.demo_zoom_level

        self._index: Optional[int] = None
        self._active_waypoint: Optional[Waypoint] = None
        self._active_path: List[Coordinate] = []
        self._waypoints = itinerary.flat_waypoints()
        self.image_index = 0
        self.last_transition: Optional[TransitionInfo] = None
        self.narration = NarrationSyncEngine(config=self.config, enabled=self.config.narration_enabled)

        self._completion_timer: Optional[TimerHandle] = None
        self._presented = Listeners()
        self._transition_info = Listeners()
        self._finished = Listeners()
        self._state_changed = Listeners()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_presented(self, callback: Callable[[int, Waypoint], None]) -> Unsubscribe:
        return self._presented.add(callback)

    def on_transition_info(self, callback: Callable[[int, TransitionInfo], None]) -> Unsubscribe:
        return self._transition_info.add(callback)

    def on_finished(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._finished.add(callback)

    def on_state_changed(self, callback: Callable[[TraversalState, Optional[int]], None]) -> Unsubscribe:
        return self._state_changed.add(callback)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def active_index(self) -> Optional[int]:
        return self._index

    @property
    def active_waypoint(self) -> Optional[Waypoint]:
        return self._active_waypoint

    @property
    def active_path(self) -> List[Coordinate]:
        """Polyline of the segment owning the active waypoint"""
        return list(self._active_path)

    @property
    def last_index(self) -> int:
        return self.itinerary.last_index

    @property
    def is_transitioning(self) -> bool:
        return self.state is TraversalState.TRANSITIONING

    def visible_remaining_waypoints(self) -> List[Waypoint]:
        """Waypoints after the active one, revealed progressively on the map"""
        if self._index is None or self.state in (TraversalState.IDLE, TraversalState.FINISHED):
            return []
        return self._waypoints[self._index + 1:]

    @property
    def current_image(self) -> Optional[str]:
        images = self._active_waypoint.image_refs if self._active_waypoint else ()
        if not images:
            return None
        return images[self.image_index % len(images)]

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Move to the first waypoint; it is presented after the initial setup period"""
        if self.state is not TraversalState.IDLE:
            logger.warning(f"Traversal already started (state: {self.state.value})")
            return False

        waypoint = self.resolve(0)
        if waypoint is None:
            return False

        self._enter_transition(0, waypoint)
        if self.skip_transitions:
            self.camera.jump_to(waypoint.coordinate, self.zoom_level)
            delay = self.config.skip_transition_delay_ms
        else:
            self.camera.smooth_pan_to(waypoint.coordinate, self.zoom_level)
            delay = self.config.initial_setup_ms

        logger.info(f"Tour started: {self.itinerary.waypoint_count} waypoints, presenting first after {delay} ms")
        self._schedule_completion(0, delay)
        return True

    def advance(self) -> bool:
        """Move to the next waypoint, or finish after the last one"""
        if not self._can_navigate('advance'):
            return False
        if self._index >= self.last_index:
            self.finish()
            return True
        return self._transition_to(self._index + 1)

    def retreat(self) -> bool:
        """Move to the previous waypoint"""
        if not self._can_navigate('retreat'):
            return False
        if self._index <= 0:
            logger.debug("Retreat ignored: already at the first waypoint")
            return False
        return self._transition_to(self._index - 1)

    def jump_to(self, index: int) -> bool:
        """Move to any waypoint with the same transition rules as advance/retreat"""
        if not self._can_navigate('jump'):
            return False
        if not self.itinerary.contains(index):
            logger.warning(f"Jump ignored: index {index} outside [0, {self.itinerary.waypoint_count})")
            return False
        if index == self._index:
            return False
        return self._transition_to(index)

    def finish(self):
        """End the traversal; pending arrivals are dropped"""
        if self.state is TraversalState.FINISHED:
            return
        self._cancel_completion()
        self._set_state(TraversalState.FINISHED)
        logger.info(f"Tour finished at waypoint {self._index}")
        self._finished.emit()

    def resolve(self, index: int) -> Optional[Waypoint]:
        """
        Map a flat index to its waypoint.

        An index that resolves to nothing clears the active waypoint and is
        logged; it never raises.
        """
        try:
            return self.itinerary.require(index)
        except OutOfBoundsIndex as e:
            logger.error(f"Invalid waypoint index: {e.message}")
            self._active_waypoint = None
            return None

    # ------------------------------------------------------------------
    # Image gallery
    # ------------------------------------------------------------------

    def next_image(self) -> Optional[str]:
        return self._step_image(1)

    def previous_image(self) -> Optional[str]:
        return self._step_image(-1)

    def _step_image(self, delta: int) -> Optional[str]:
        images = self._active_waypoint.image_refs if self._active_waypoint else ()
        if not images:
            return None
        self.image_index = (self.image_index + delta) % len(images)
        return images[self.image_index]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _can_navigate(self, action: str) -> bool:
        if self.state is TraversalState.TRANSITIONING:
            logger.debug(f"{action} ignored while transitioning to {self._index}")
            return False
        if self.state is not TraversalState.PRESENTING:
            logger.debug(f"{action} ignored in state {self.state.value}")
            return False
        return True

    def _transition_to(self, target: int) -> bool:
        waypoint = self.resolve(target)
        if waypoint is None:
            return False

        previous = self._index
        self._enter_transition(target, waypoint)
        logger.info(f"Transition {previous} -> {target} ({waypoint.name or waypoint.id})")

        if self.skip_transitions:
            self.camera.jump_to(waypoint.coordinate, self.zoom_level)
            self._schedule_completion(target, self.config.skip_transition_delay_ms)
            return True

        accepted = self.camera.cinematic_pan_to(
            waypoint.coordinate,
            self.zoom_level,
            on_info=lambda info: self._on_info(target, info),
        )
        if not accepted:
            # The camera refuses to interleave cinematic moves; fall back to a
            # queued simple pan timed by the same distance model, measured from
            # where the camera will be when the pan starts
            info = calculate_transition(self.camera.destination, waypoint.coordinate)
            self.camera.smooth_pan_to(waypoint.coordinate, self.zoom_level)
            self._on_info(target, info)
        return True

    def _enter_transition(self, target: int, waypoint: Waypoint):
        self._index = target
        self._active_waypoint = waypoint
        segment = self.itinerary.segment_for(target)
        # Keep the previous route line when the new segment has no path
        if segment is not None and segment.path:
            self._active_path = list(segment.path)
        self._set_state(TraversalState.TRANSITIONING)

    def _on_info(self, target: int, info: TransitionInfo):
        self.last_transition = info
        self._transition_info.emit(target, info)
        self._schedule_completion(target, info.duration_ms)

    def _schedule_completion(self, target: int, delay_ms: float):
        self._cancel_completion()
        self._completion_timer = self.scheduler.call_later(delay_ms, self._complete_transition, target)

    def _cancel_completion(self):
        if self._completion_timer is not None:
            self._completion_timer.cancel()
            self._completion_timer = None

    def _complete_transition(self, target: int):
        self._completion_timer = None
        if self.state is not TraversalState.TRANSITIONING or self._index != target:
            return

        waypoint = self._active_waypoint
        self.image_index = 0
        self.narration.reset(waypoint.description if waypoint else '')
        self._set_state(TraversalState.PRESENTING)
        logger.info(f"Presenting waypoint {target}/{self.last_index}: {waypoint.name if waypoint else '?'}")
        self._presented.emit(target, waypoint)

    def _set_state(self, state: TraversalState):
        self.state = state
        self._state_changed.emit(state, self._index)

    def get_status(self) -> Dict[str, Any]:
        waypoint = self._active_waypoint
        return {
            'success': True,
            'state': self.state.value,
            'active_index': self._index,
            'last_index': self.last_index,
            'active_waypoint': waypoint.id if waypoint else None,
            'image_index': self.image_index,
            'visible_remaining': [wp.id for wp in self.visible_remaining_waypoints()],
            'skip_transitions': self.skip_transitions,
            'last_transition': self.last_transition.to_dict() if self.last_transition else None,
        }
