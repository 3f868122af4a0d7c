"""
Narration text synchronisation.

Keyframes assets are plain text, one ``<seconds>:<cumulative text>`` pair
per line. The engine rescales keyframe times to the audio duration once the
media reports it, then maps the playback position to the keyframe being
spoken and splits the text into an already-spoken part and the newly
revealed suffix.
"""

import bisect
import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from .config import TourConfig, get_config
from .errors import MalformedKeyframeLine
from .models import Keyframe

logger = logging.getLogger(__name__)


def parse_keyframe_line(line: str) -> Keyframe:
    """
    Parse one ``<seconds>:<cumulative text>`` line.

    Only the first colon separates time from text; the text keeps any further
    colons. Surrounding whitespace is stripped from both parts.

    Raises:
        MalformedKeyframeLine: If the line has no separator or a bad time
    """
    raw = line.strip()
    if ':' not in raw:
        raise MalformedKeyframeLine(f"Missing ':' separator in keyframe line: {raw!r}", details={'line': raw})

    time_part, text = raw.split(':', 1)
    try:
        seconds = float(time_part.strip())
    except ValueError:
        raise MalformedKeyframeLine(f"Invalid keyframe time: {time_part.strip()!r}", details={'line': raw})

    if not math.isfinite(seconds) or seconds < 0:
        raise MalformedKeyframeLine(f"Keyframe time must be a non-negative number: {seconds}", details={'line': raw})

    return Keyframe(time_seconds=seconds, cumulative_text=text.strip())


def parse_keyframes(text: str) -> List[Keyframe]:
    """
    Parse a keyframes asset into keyframes sorted by time.

    Blank lines are ignored and malformed lines are skipped with a warning;
    one bad line never fails the whole load.
    """
    keyframes: List[Keyframe] = []
    skipped = 0
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            keyframes.append(parse_keyframe_line(line))
        except MalformedKeyframeLine as e:
            skipped += 1
            logger.warning(f"Skipping keyframe line {line_number}: {e.message}")

    keyframes.sort(key=lambda keyframe: keyframe.time_seconds)
    logger.debug(f"Parsed {len(keyframes)} keyframes ({skipped} skipped)")
    return keyframes


def rescale_keyframes(keyframes: List[Keyframe], duration: float,
                      trailing_silence_s: float = 0.8,
                      min_scale_factor: float = 1.0) -> Tuple[List[Keyframe], float]:
    """
    Stretch keyframe times so the last keyframe lands on the audio's effective end.

    ``effective = max(duration - trailing_silence_s, duration * min_scale_factor)``
    and every time is multiplied by ``effective / max_time``. Keyframes whose
    largest time is zero are returned unscaled.

    Returns:
        (rescaled keyframes, scale factor)
    """
    if not keyframes:
        return [], 1.0

    max_time = max(keyframe.time_seconds for keyframe in keyframes)
    if max_time <= 0:
        return list(keyframes), 1.0

    effective_duration = max(duration - trailing_silence_s, duration * min_scale_factor)
    scale = effective_duration / max_time
    scaled = [Keyframe(keyframe.time_seconds * scale, keyframe.cumulative_text) for keyframe in keyframes]
    return scaled, scale


@dataclass(frozen=True)
class NarrationView:
    """What the narration panel shows right now"""
    plain: str
    highlighted: str
    active_index: int
    finished: bool = False
    from_keyframes: bool = True

    @property
    def text(self) -> str:
        return self.plain + self.highlighted

    def to_dict(self) -> dict:
        return {
            'plain': self.plain,
            'highlighted': self.highlighted,
            'active_index': self.active_index,
            'finished': self.finished,
            'from_keyframes': self.from_keyframes,
        }


class NarrationSyncEngine:
    """
    Tracks which keyframe is being spoken for one waypoint's narration.

    The engine reacts to two signals only: the resolved audio duration
    (``set_duration``) and the playback position (``on_time_update``), plus
    the playback ``ended`` notification. Keyframes are parsed once on load
    and rescaled once per duration; playback ticks only do a lookup.
    """

    def __init__(self, keyframes: Optional[Union[str, Iterable[Keyframe]]] = None,
                 description: str = '', enabled: bool = True,
                 config: Optional[TourConfig] = None):
        self.config = config or get_config()
        self.description = description
        self.enabled = enabled
        self.highlight_sync = self.config.text_highlighting_sync
        self.rescale_count = 0

        self._raw: List[Keyframe] = []
        self._scaled: Optional[List[Keyframe]] = None
        self._times: List[float] = []
        self._duration: Optional[float] = None
        self._scale = 1.0
        self._position = 0.0
        self._active_index = 0
        self._ended = False

        if keyframes is not None:
            self.load(keyframes)

    # Loading

    def load(self, keyframes: Union[str, Iterable[Keyframe]]) -> int:
        """Load keyframes from asset text or Keyframe objects; returns how many were loaded"""
        if isinstance(keyframes, str):
            parsed = parse_keyframes(keyframes)
        else:
            parsed = sorted(keyframes, key=lambda keyframe: keyframe.time_seconds)

        self._raw = parsed
        self._scaled = None
        self._duration = None
        self._scale = 1.0
        self._position = 0.0
        self._active_index = 0
        self._ended = False
        self._refresh_times()
        return len(parsed)

    def reset(self, description: str = '', keyframes: Optional[Union[str, Iterable[Keyframe]]] = None):
        """Start over for a newly presented waypoint"""
        self.description = description
        self.load(keyframes if keyframes is not None else [])

    # Signals

    def set_duration(self, duration: Optional[float]) -> bool:
        """
        Rescale keyframes for a resolved audio duration.

        Repeated calls with the same duration do nothing; invalid durations
        are ignored.

        Returns:
            True if keyframes were rescaled
        """
        if duration is None or not math.isfinite(duration) or duration <= 0:
            logger.warning(f"Ignoring invalid narration duration: {duration}")
            return False
        if self._scaled is not None and self._duration == duration:
            return False

        self._scaled, self._scale = rescale_keyframes(
            self._raw,
            duration,
            self.config.narration_trailing_silence_s,
            self.config.narration_min_scale_factor,
        )
        self._duration = duration
        self.rescale_count += 1
        self._refresh_times()
        logger.debug(f"Rescaled {len(self._raw)} keyframes to {duration:.2f}s (scale {self._scale:.3f})")

        if not self._ended:
            self._active_index = self._lookup(self._position)
        return True

    def on_time_update(self, position: float):
        """Playback position changed, in seconds"""
        if self._ended:
            if position >= self._position:
                return
            # Seeking back (or replaying) after the end resumes tracking
            self._ended = False

        self._position = position
        self._active_index = self._lookup(position)

    def on_ended(self):
        """Playback finished: show the full text without a highlight"""
        self._ended = True
        self._position = max(self._position, self._duration or 0.0)
        self._active_index = len(self._raw)

    # State

    @property
    def keyframes(self) -> List[Keyframe]:
        """Keyframes in effect: rescaled once the duration is known, raw before"""
        return list(self._scaled if self._scaled is not None else self._raw)

    @property
    def has_keyframes(self) -> bool:
        return bool(self._raw)

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def finished(self) -> bool:
        return self._ended

    def current_view(self) -> NarrationView:
        if not self.enabled or not self._raw:
            return NarrationView(plain=self.description, highlighted='',
                                 active_index=self._active_index, finished=self._ended,
                                 from_keyframes=False)

        keyframes = self._scaled if self._scaled is not None else self._raw
        if self._active_index >= len(keyframes):
            return NarrationView(plain=keyframes[-1].cumulative_text, highlighted='',
                                 active_index=self._active_index, finished=True)

        text = keyframes[self._active_index].cumulative_text
        previous = keyframes[self._active_index - 1].cumulative_text if self._active_index > 0 else ''

        if not self.highlight_sync:
            plain, highlighted = text, ''
        elif text.startswith(previous):
            plain, highlighted = previous, text[len(previous):]
        else:
            # Text did not grow by prefix: treat all of it as newly revealed
            plain, highlighted = '', text

        return NarrationView(plain=plain, highlighted=highlighted,
                             active_index=self._active_index, finished=self._ended)

    def _refresh_times(self):
        self._times = [keyframe.time_seconds for keyframe in self.keyframes]

    def _lookup(self, position: float) -> int:
        if not self._times:
            return 0
        # Before the first keyframe the first one is still shown
        return max(bisect.bisect_right(self._times, position) - 1, 0)
