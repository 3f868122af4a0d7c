"""
Collaborator interfaces consumed by the tour engine.

``RenderingSurface`` is the map viewport; only the camera controller calls it.
``AudioPlayback`` is the narration media handle. Both come with in-memory
implementations used by the CLI simulator and the test-suite.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from .errors import PlaybackBlocked
from .models import Coordinate

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class Listeners:
    """Ordered listener registry; emitting iterates over a snapshot"""

    def __init__(self):
        self._callbacks: List[Callable[..., Any]] = []

    def add(self, callback: Callable[..., Any]) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            callback(*args)

    def __len__(self) -> int:
        return len(self._callbacks)


class RenderingSurface(ABC):
    """Map viewport capabilities: center, zoom, pan and zoom-changed notifications"""

    @abstractmethod
    def get_center(self) -> Coordinate:
        pass

    @abstractmethod
    def get_zoom(self) -> float:
        pass

    @abstractmethod
    def set_center(self, center: Coordinate) -> None:
        pass

    @abstractmethod
    def set_zoom(self, zoom: float) -> None:
        pass

    @abstractmethod
    def pan_to(self, center: Coordinate) -> None:
        pass

    @abstractmethod
    def on_zoom_changed(self, callback: Callable[[float], None]) -> Unsubscribe:
        """Subscribe to zoom changes; returns a callable that removes the subscription"""


class InMemorySurface(RenderingSurface):
    """
    Viewport held in memory, recording every camera mutation.

    Zoom-changed listeners fire synchronously from ``set_zoom`` when the zoom
    actually changes. With ``acknowledge_zoom=False`` no notification is ever
    sent, which reproduces a surface that never acknowledges zoom steps.
    """

    def __init__(self, center: Optional[Coordinate] = None, zoom: float = 3,
                 acknowledge_zoom: bool = True):
        self._center = center or Coordinate(0.0, 0.0)
        self._zoom = zoom
        self.acknowledge_zoom = acknowledge_zoom
        self._zoom_listeners = Listeners()

        # (operation, value) in call order
        self.history: List[tuple] = []

    def get_center(self) -> Coordinate:
        return self._center

    def get_zoom(self) -> float:
        return self._zoom

    def set_center(self, center: Coordinate) -> None:
        self._center = center
        self.history.append(('set_center', center))

    def pan_to(self, center: Coordinate) -> None:
        self._center = center
        self.history.append(('pan_to', center))

    def set_zoom(self, zoom: float) -> None:
        changed = zoom != self._zoom
        self._zoom = zoom
        self.history.append(('set_zoom', zoom))
        if changed and self.acknowledge_zoom:
            self._zoom_listeners.emit(zoom)

    def on_zoom_changed(self, callback: Callable[[float], None]) -> Unsubscribe:
        return self._zoom_listeners.add(callback)

    @property
    def listener_count(self) -> int:
        return len(self._zoom_listeners)

    def centers(self) -> List[Coordinate]:
        """Every center the viewport has been moved to, in order"""
        return [value for operation, value in self.history if operation in ('set_center', 'pan_to')]

    def zooms(self) -> List[float]:
        return [value for operation, value in self.history if operation == 'set_zoom']


class AudioPlayback(ABC):
    """Narration audio handle"""

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Playback position in seconds"""

    @property
    @abstractmethod
    def duration(self) -> Optional[float]:
        """Duration in seconds; None until the media metadata has resolved"""

    @abstractmethod
    def play(self) -> None:
        """Start playback; raises PlaybackBlocked when the host refuses"""

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def on_time_update(self, callback: Callable[[float], None]) -> Unsubscribe:
        pass

    @abstractmethod
    def on_ended(self, callback: Callable[[], None]) -> Unsubscribe:
        pass

    @abstractmethod
    def on_metadata(self, callback: Callable[[float], None]) -> Unsubscribe:
        """Subscribe to duration resolution; called with the duration in seconds"""


class SimulatedAudio(AudioPlayback):
    """
    Audio handle driven by explicit calls.

    ``resolve_metadata()`` publishes the duration, ``tick(seconds)`` advances a
    playing track and emits time updates, ``seek(seconds)`` jumps. Reaching
    the end emits ``ended`` once.
    """

    def __init__(self, media_duration: float, autoplay_blocked: bool = False):
        if media_duration < 0:
            raise ValueError(f"Media duration must be non-negative, got: {media_duration}")
        self.media_duration = float(media_duration)
        self.autoplay_blocked = autoplay_blocked
        self.playing = False
        self.ended = False
        self._current_time = 0.0
        self._duration: Optional[float] = None
        self._time_listeners = Listeners()
        self._ended_listeners = Listeners()
        self._metadata_listeners = Listeners()

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    def play(self) -> None:
        if self.autoplay_blocked:
            raise PlaybackBlocked("Autoplay was rejected by the host")
        if self.ended:
            self._current_time = 0.0
            self.ended = False
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def resolve_metadata(self) -> None:
        self._duration = self.media_duration
        self._metadata_listeners.emit(self._duration)

    def tick(self, seconds: float) -> None:
        if not self.playing:
            return
        self._set_time(self._current_time + seconds)

    def seek(self, seconds: float) -> None:
        self.ended = False
        self._set_time(seconds)

    def _set_time(self, seconds: float) -> None:
        self._current_time = min(max(0.0, seconds), self.media_duration)
        self._time_listeners.emit(self._current_time)
        if self._current_time >= self.media_duration and not self.ended:
            self.ended = True
            self.playing = False
            self._ended_listeners.emit()

    def on_time_update(self, callback: Callable[[float], None]) -> Unsubscribe:
        return self._time_listeners.add(callback)

    def on_ended(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._ended_listeners.add(callback)

    def on_metadata(self, callback: Callable[[float], None]) -> Unsubscribe:
        return self._metadata_listeners.add(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._time_listeners) + len(self._ended_listeners) + len(self._metadata_listeners)
