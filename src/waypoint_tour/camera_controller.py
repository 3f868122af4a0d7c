"""
Map camera transition controller.

Drives the rendering surface through simple pans and cinematic
(zoom-out, pan, zoom-in) transitions. All motion is a chain of scheduled
steps: ``_step`` advances the active sequence by one step and arranges its
own next invocation, either by a scheduler timer or by the surface's
zoom-changed acknowledgement. No thread, no sleeping.

The controller is the only writer of the viewport. One instance owns one
movement queue, so independent map sessions never share animation state.
"""

import itertools
import logging
from typing import Any, Callable, Dict, List, Optional

from .cinematic import (
    CameraState,
    CinematicPhase,
    CinematicSequence,
    MovementKind,
    MovementRequest,
    PanSequence,
    QueueManager,
    calculate_transition,
    calculate_zoom_out_level,
)
from .config import TourConfig, get_config
from .models import Coordinate, TransitionInfo
from .scheduler import Scheduler, TimerHandle
from .surface import RenderingSurface

logger = logging.getLogger(__name__)


class CameraTransitionController:
    """Serializes camera movements against one rendering surface"""

    def __init__(self, surface: RenderingSurface, scheduler: Scheduler,
                 config: Optional[TourConfig] = None):
        self.surface = surface
        self.scheduler = scheduler
        self.config = config or get_config()

        self.queue_manager = QueueManager()
        self.state = CameraState.IDLE
        self.completed_movements = 0

        self._pan: Optional[PanSequence] = None
        self._cinematic: Optional[CinematicSequence] = None
        self._ids = itertools.count(1)

        # Pending step timer and zoom acknowledgement bookkeeping
        self._timer: Optional[TimerHandle] = None
        self._pending_zoom: Optional[float] = None
        self._ack_timer: Optional[TimerHandle] = None

        self._unsubscribe = surface.on_zoom_changed(self._on_zoom_changed)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self.state is not CameraState.IDLE

    @property
    def cinematic_in_flight(self) -> bool:
        return self._cinematic is not None

    @property
    def destination(self) -> Coordinate:
        """Where the viewport will rest once the active and queued requests have run"""
        if self.queue_manager.movement_queue:
            return self.queue_manager.movement_queue[-1].target
        if self._cinematic is not None:
            return self._cinematic.target
        if self._pan is not None:
            return self._pan.target
        return self.surface.get_center()

    def smooth_pan_to(self, target: Coordinate, zoom: Optional[float] = None,
                      on_complete: Optional[Callable[[], None]] = None) -> str:
        """
        Linearly interpolate the center to ``target``.

        Requests issued while another sequence is running are queued and run
        strictly in order once the active sequence finishes.

        Returns:
            Movement id of the request
        """
        request = MovementRequest(
            movement_id=self._next_id('pan'),
            kind=MovementKind.SMOOTH_PAN,
            target=target,
            zoom=zoom,
            on_complete=on_complete,
        )
        self._submit(request)
        return request.movement_id

    def cinematic_pan_to(self, target: Coordinate, zoom: float,
                         on_info: Optional[Callable[[TransitionInfo], None]] = None,
                         on_complete: Optional[Callable[[], None]] = None) -> bool:
        """
        Start a zoom-out, pan, zoom-in transition to ``target``.

        ``on_info`` receives the computed TransitionInfo before any motion
        happens. A cinematic transition already running or queued is never
        interleaved with a second one: the call is rejected.

        Returns:
            True if the transition was started or queued, False if rejected
        """
        if self._cinematic is not None or self.queue_manager.has_pending(MovementKind.CINEMATIC):
            logger.warning(f"Rejected cinematic transition to {target.as_tuple()}: another cinematic transition is in flight")
            return False

        request = MovementRequest(
            movement_id=self._next_id('cinematic'),
            kind=MovementKind.CINEMATIC,
            target=target,
            zoom=zoom,
            on_info=on_info,
            on_complete=on_complete,
        )
        self._submit(request)
        return True

    def jump_to(self, target: Coordinate, zoom: Optional[float] = None,
                on_complete: Optional[Callable[[], None]] = None) -> str:
        """Move the viewport instantly; queued like any other request while busy"""
        request = MovementRequest(
            movement_id=self._next_id('jump'),
            kind=MovementKind.INSTANT,
            target=target,
            zoom=zoom,
            on_complete=on_complete,
        )
        self._submit(request)
        return request.movement_id

    def clear_queue(self, kinds: Optional[List[MovementKind]] = None) -> int:
        """
        Drop queued requests that have not started.

        The active sequence is never interrupted.

        Returns:
            Number of requests removed
        """
        return self.queue_manager.clear_queue(kinds)

    def get_status(self) -> Dict[str, Any]:
        active_id = None
        if self._cinematic is not None:
            active_id = self._cinematic.movement_id
        elif self._pan is not None:
            active_id = self._pan.movement_id

        return {
            'success': True,
            'state': self.state.value,
            'center': self.surface.get_center().as_tuple(),
            'zoom': self.surface.get_zoom(),
            'active_movement': active_id,
            'cinematic_phase': self._cinematic.phase.value if self._cinematic else None,
            'awaiting_zoom_ack': self._pending_zoom is not None,
            'queued_count': len(self.queue_manager),
            'completed_movements': self.completed_movements,
            'queue': self.queue_manager.get_queue_status(),
        }

    # ------------------------------------------------------------------
    # Request dispatch
    # ------------------------------------------------------------------

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def _submit(self, request: MovementRequest):
        if self.is_busy:
            position = self.queue_manager.add_movement(request)
            logger.debug(f"Camera busy ({self.state.value}); {request.movement_id} queued at position {position}")
            return
        self._start(request)

    def _start(self, request: MovementRequest):
        if request.kind is MovementKind.SMOOTH_PAN:
            self._start_smooth_pan(request)
        elif request.kind is MovementKind.CINEMATIC:
            self._start_cinematic(request)
        else:
            self._apply_instant(request)

    def _start_next_queued_movement(self):
        # Instant moves complete synchronously, so keep draining until a
        # sequence is running or the queue is empty
        while not self.is_busy:
            request = self.queue_manager.get_next_movement()
            if request is None:
                return
            logger.debug(f"Starting queued movement {request.movement_id}")
            self._start(request)

    def _start_smooth_pan(self, request: MovementRequest):
        start = self.surface.get_center()
        steps = self.config.smooth_pan_steps
        path = [
            Coordinate(
                lat=start.lat + (request.target.lat - start.lat) * i / steps,
                lng=start.lng + (request.target.lng - start.lng) * i / steps,
            )
            for i in range(1, steps)
        ]
        path.append(request.target)
        self._pan = PanSequence(
            movement_id=request.movement_id,
            target=request.target,
            target_zoom=request.zoom,
            path=path,
            on_complete=request.on_complete,
        )
        self.state = CameraState.PANNING
        logger.debug(f"Smooth pan {request.movement_id} to {request.target.as_tuple()} ({steps} steps)")
        self._schedule(self.config.smooth_pan_step_delay_ms)

    def _start_cinematic(self, request: MovementRequest):
        start = self.surface.get_center()
        current_zoom = self.surface.get_zoom()
        info = calculate_transition(start, request.target)
        zoom_out_level = calculate_zoom_out_level(
            current_zoom, info.distance_meters, self.config.min_zoom_level
        )
        target_zoom = current_zoom if request.zoom is None else request.zoom

        self._cinematic = CinematicSequence(
            movement_id=request.movement_id,
            start=start,
            target=request.target,
            target_zoom=target_zoom,
            zoom_out_level=zoom_out_level,
            zoom_level=current_zoom,
            info=info,
            on_complete=request.on_complete,
        )
        self.state = CameraState.CINEMATIC
        logger.info(
            f"Cinematic transition {request.movement_id}: {info.distance_km:.2f} km, "
            f"{info.duration_ms} ms, zoom {current_zoom} -> {zoom_out_level} -> {target_zoom}"
        )

        if request.on_info:
            self._invoke(request.on_info, info)
        self._step()

    def _apply_instant(self, request: MovementRequest):
        self.surface.set_center(request.target)
        if request.zoom is not None and request.zoom != self.surface.get_zoom():
            self.surface.set_zoom(request.zoom)
        self.completed_movements += 1
        logger.debug(f"Instant move {request.movement_id} to {request.target.as_tuple()}")
        if request.on_complete:
            self._invoke(request.on_complete)

    # ------------------------------------------------------------------
    # Step state machine
    # ------------------------------------------------------------------

    def _schedule(self, delay_ms: float):
        self._timer = self.scheduler.call_later(delay_ms, self._on_timer)

    def _on_timer(self):
        self._timer = None
        self._step()

    def _step(self):
        """Advance the active sequence by exactly one step"""
        if self._cinematic is not None:
            self._step_cinematic(self._cinematic)
        elif self._pan is not None:
            self._step_pan(self._pan)

    def _step_pan(self, pan: PanSequence):
        if pan.path:
            self.surface.pan_to(pan.path.pop(0))
            self._schedule(self.config.smooth_pan_step_delay_ms)
            return

        # A waiting request takes over straight away; the zoom-in is only
        # performed when nothing else is queued
        if len(self.queue_manager):
            self._finish_pan(pan)
            return

        current_zoom = self.surface.get_zoom()
        if pan.target_zoom is not None and current_zoom < pan.target_zoom:
            self._request_zoom(min(current_zoom + 1, pan.target_zoom), self.config.zoom_in_step_delay_ms)
            return

        self._finish_pan(pan)

    def _step_cinematic(self, sequence: CinematicSequence):
        if sequence.phase is CinematicPhase.ZOOM_OUT:
            sequence.zoom_level = self.surface.get_zoom()
            if sequence.zoom_level > sequence.zoom_out_level:
                next_level = max(sequence.zoom_level - 1, sequence.zoom_out_level)
                self._request_zoom(next_level, self.config.zoom_out_step_delay_ms)
                return
            sequence.phase = CinematicPhase.PAN
            logger.debug(f"{sequence.movement_id}: zoomed out to {sequence.zoom_level}, panning")

        if sequence.phase is CinematicPhase.PAN:
            total_steps = self.config.cinematic_pan_steps
            if sequence.pan_step < total_steps:
                sequence.pan_step += 1
                self.surface.set_center(sequence.interpolate(sequence.pan_step, total_steps))
                self._schedule(self.config.cinematic_pan_step_delay_ms)
                return
            sequence.phase = CinematicPhase.ZOOM_IN
            logger.debug(f"{sequence.movement_id}: arrived, zooming in to {sequence.target_zoom}")
            self._schedule(self.config.pan_settle_delay_ms)
            return

        if sequence.phase is CinematicPhase.ZOOM_IN:
            sequence.zoom_level = self.surface.get_zoom()
            if sequence.zoom_level < sequence.target_zoom:
                self._request_zoom(min(sequence.zoom_level + 1, sequence.target_zoom),
                                   self.config.zoom_in_step_delay_ms)
                return
            if sequence.zoom_level > sequence.target_zoom:
                self._request_zoom(max(sequence.zoom_level - 1, sequence.target_zoom),
                                   self.config.zoom_in_step_delay_ms)
                return
            sequence.phase = CinematicPhase.DONE

        self._finish_cinematic(sequence)

    # ------------------------------------------------------------------
    # Gated zoom steps
    # ------------------------------------------------------------------

    def _request_zoom(self, level: float, delay_ms: float):
        self._timer = self.scheduler.call_later(delay_ms, self._apply_zoom, level)

    def _apply_zoom(self, level: float):
        self._timer = None
        if level == self.surface.get_zoom():
            # Nothing to change, so no notification will arrive
            self._step()
            return
        self._pending_zoom = level
        timeout = self.config.zoom_ack_timeout_ms
        if timeout > 0:
            self._ack_timer = self.scheduler.call_later(timeout, self._on_zoom_ack_timeout, level)
        self.surface.set_zoom(level)

    def _on_zoom_changed(self, zoom: float):
        if self._pending_zoom is None:
            return
        self._pending_zoom = None
        if self._ack_timer is not None:
            self._ack_timer.cancel()
            self._ack_timer = None
        self._step()

    def _on_zoom_ack_timeout(self, level: float):
        self._ack_timer = None
        if self._pending_zoom != level:
            return
        logger.warning(f"No zoom_changed acknowledgement for zoom {level} within "
                       f"{self.config.zoom_ack_timeout_ms} ms, continuing")
        self._pending_zoom = None
        self._step()

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finish_pan(self, pan: PanSequence):
        self._pan = None
        self._complete(pan.movement_id, pan.on_complete)

    def _finish_cinematic(self, sequence: CinematicSequence):
        self._cinematic = None
        self._complete(sequence.movement_id, sequence.on_complete)

    def _complete(self, movement_id: str, on_complete: Optional[Callable[[], None]]):
        self.state = CameraState.IDLE
        self.completed_movements += 1
        logger.debug(f"Completed movement {movement_id}")
        self._start_next_queued_movement()
        if on_complete:
            self._invoke(on_complete)

    @staticmethod
    def _invoke(callback: Callable[..., None], *args: Any):
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Camera callback {getattr(callback, '__name__', callback)} failed: {e}")

    def shutdown(self):
        """Stop listening to the surface and drop pending timers and queued requests"""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._ack_timer is not None:
            self._ack_timer.cancel()
            self._ack_timer = None
        self.queue_manager.clear_queue()
        self._pan = None
        self._cinematic = None
        self._pending_zoom = None
        self.state = CameraState.IDLE
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
