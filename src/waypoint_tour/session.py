"""
Demo session wiring.

A TourSession lives for one guided demo: it is built from an Itinerary (the
external data source's answer for a session id), owns one camera controller
and one traversal controller, and connects narration media for whichever
waypoint is being presented.
"""

import logging
from typing import Any, Callable, Dict, Optional, Union

from .camera_controller import CameraTransitionController
from .config import TourConfig, get_config
from .errors import MissingItineraryData, PlaybackBlocked
from .models import Itinerary, Waypoint
from .narration import NarrationView
from .scheduler import Scheduler
from .schemas import parse_itinerary
from .surface import AudioPlayback, RenderingSurface, Unsubscribe
from .traversal import TraversalState, WaypointTraversalController

logger = logging.getLogger(__name__)


class TourSession:
    """One guided demo over an itinerary"""

    def __init__(self, itinerary: Itinerary, surface: RenderingSurface, scheduler: Scheduler,
                 config: Optional[TourConfig] = None, narration_enabled: Optional[bool] = None):
        if not itinerary.has_waypoints or not itinerary.has_path:
            raise MissingItineraryData(
                "Itinerary has no waypoints or no path; the demo cannot start",
                details={
                    'session_id': itinerary.session_id,
                    'has_waypoints': itinerary.has_waypoints,
                    'has_path': itinerary.has_path,
                },
            )

        self.config = config or get_config()
        self.itinerary = itinerary
        self.surface = surface
        self.scheduler = scheduler

        self.camera = CameraTransitionController(surface, scheduler, self.config)
        self.traversal = WaypointTraversalController(itinerary, self.camera, scheduler, self.config)

        self.active = False
        self.playback_blocked = False
        self._audio: Optional[AudioPlayback] = None
        self._audio_waypoint_id: Optional[str] = None
        self._audio_subscriptions = []

        self.auto_play_narration = self.config.auto_play_narration
        self.auto_advance_waypoints = self.config.auto_advance_waypoints
        self.set_narration_enabled(self.config.narration_enabled if narration_enabled is None else narration_enabled)

        # A newly presented waypoint invalidates the previous waypoint's media
        self.traversal.on_presented(self._on_waypoint_presented)
        # Advancing past the last waypoint ends the session
        self.traversal.on_finished(self._on_traversal_finished)

    @classmethod
    def from_payload(cls, payload: Any, surface: RenderingSurface, scheduler: Scheduler,
                     config: Optional[TourConfig] = None, session_id: Optional[str] = None,
                     **kwargs) -> 'TourSession':
        """Validate a raw itinerary payload and build a session from it"""
        itinerary = parse_itinerary(payload, session_id=session_id)
        return cls(itinerary, surface, scheduler, config=config, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        if self.active:
            logger.warning("Tour session already active")
            return False
        started = self.traversal.start()
        self.active = started
        if started:
            logger.info(f"Tour session started: {self.itinerary.session_id}")
        return started

    def end(self):
        """
        End the demo.

        Narration media is detached, queued camera requests that have not
        started are dropped and the camera returns to the default zoom. A
        cinematic transition already in flight runs to completion. The same
        teardown runs when the traversal advances past its last waypoint.
        """
        if not self.active:
            return
        self._teardown()
        self.traversal.finish()

    def _teardown(self):
        # Cleared first so the finished notification from traversal.finish() is a no-op
        self.active = False
        self.detach_narration()
        dropped = self.camera.clear_queue()
        self.camera.jump_to(self.surface.get_center(), self.config.default_zoom_level)
        logger.info(f"Tour session ended ({dropped} queued camera requests dropped)")

    def _on_traversal_finished(self):
        if self.active:
            self._teardown()

    @property
    def state(self) -> TraversalState:
        return self.traversal.state

    # ------------------------------------------------------------------
    # Navigation passthrough
    # ------------------------------------------------------------------

    def advance(self) -> bool:
        return self.traversal.advance()

    def retreat(self) -> bool:
        return self.traversal.retreat()

    def jump_to(self, index: int) -> bool:
        return self.traversal.jump_to(index)

    def next_image(self) -> Optional[str]:
        return self.traversal.next_image()

    def previous_image(self) -> Optional[str]:
        return self.traversal.previous_image()

    def on_presented(self, callback: Callable[[int, Waypoint], None]) -> Unsubscribe:
        """Notify the media collaborator that a waypoint needs its narration assets"""
        return self.traversal.on_presented(callback)

    # ------------------------------------------------------------------
    # Narration
    # ------------------------------------------------------------------

    @property
    def narration(self):
        return self.traversal.narration

    def set_narration_enabled(self, enabled: bool):
        self.narration_enabled = bool(enabled)
        self.traversal.narration.enabled = self.narration_enabled
        if not self.narration_enabled and self._audio is not None:
            self._audio.pause()

    def set_text_highlighting(self, enabled: bool):
        self.traversal.narration.highlight_sync = bool(enabled)

    def attach_narration(self, waypoint_id: str, keyframes: Union[str, list, None],
                         audio: Optional[AudioPlayback] = None) -> bool:
        """
        Connect narration assets fetched for a presented waypoint.

        Attachments for a waypoint that is no longer being presented are
        ignored. A host that refuses autoplay leaves narration paused until
        ``resume_narration()``.

        Returns:
            True if the assets were attached
        """
        waypoint = self.traversal.active_waypoint
        if (self.traversal.state is not TraversalState.PRESENTING
                or waypoint is None or waypoint.id != waypoint_id):
            logger.info(f"Ignoring stale narration for waypoint {waypoint_id}")
            return False

        self.detach_narration()
        engine = self.traversal.narration
        engine.reset(waypoint.description, keyframes)

        if audio is None:
            return True

        self._audio = audio
        self._audio_waypoint_id = waypoint_id
        self._audio_subscriptions = [
            audio.on_metadata(engine.set_duration),
            audio.on_time_update(engine.on_time_update),
            audio.on_ended(self._on_narration_ended),
        ]
        if audio.duration is not None:
            engine.set_duration(audio.duration)

        if self.narration_enabled and self.auto_play_narration:
            self._play(audio)
        return True

    def resume_narration(self) -> bool:
        """Manually start narration playback, e.g. after autoplay was blocked"""
        if self._audio is None or not self.narration_enabled:
            return False
        return self._play(self._audio)

    def detach_narration(self):
        for unsubscribe in self._audio_subscriptions:
            unsubscribe()
        self._audio_subscriptions = []
        if self._audio is not None:
            self._audio.pause()
        self._audio = None
        self._audio_waypoint_id = None
        self.playback_blocked = False

    def narration_view(self) -> NarrationView:
        return self.traversal.narration.current_view()

    def _play(self, audio: AudioPlayback) -> bool:
        try:
            audio.play()
        except PlaybackBlocked as e:
            self.playback_blocked = True
            logger.warning(f"Narration playback blocked: {e.message}; waiting for manual resume")
            return False
        self.playback_blocked = False
        return True

    def _on_narration_ended(self):
        self.traversal.narration.on_ended()
        if self.auto_advance_waypoints and self.active:
            logger.debug("Narration ended, advancing to next waypoint")
            self.traversal.advance()

    def _on_waypoint_presented(self, index: int, waypoint: Waypoint):
        if self._audio_waypoint_id is not None and (waypoint is None or waypoint.id != self._audio_waypoint_id):
            self.detach_narration()

    def get_status(self) -> Dict[str, Any]:
        return {
            'success': True,
            'active': self.active,
            'session_id': self.itinerary.session_id,
            'narration_enabled': self.narration_enabled,
            'playback_blocked': self.playback_blocked,
            'narration': self.narration_view().to_dict(),
            'traversal': self.traversal.get_status(),
            'camera': self.camera.get_status(),
        }
