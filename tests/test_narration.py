import logging

import pytest

from waypoint_tour.errors import MalformedKeyframeLine
from waypoint_tour.models import Keyframe
from waypoint_tour.narration import (
    NarrationSyncEngine,
    parse_keyframe_line,
    parse_keyframes,
    rescale_keyframes,
)

ABC_KEYFRAMES = "0:A\n1:AB\n2:ABC\n"


@pytest.fixture
def engine(config):
    return NarrationSyncEngine(ABC_KEYFRAMES, description="Static description", config=config)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def test_parse_line_splits_on_first_colon():
    keyframe = parse_keyframe_line("1.5: Time: 10:30 ")
    assert keyframe == Keyframe(1.5, "Time: 10:30")


@pytest.mark.parametrize("line", [
    "no separator here",
    "abc:text",
    ":text",
    "-1:negative",
    "nan:not a number",
    "inf:forever",
])
def test_parse_line_rejects_malformed(line):
    with pytest.raises(MalformedKeyframeLine) as exc_info:
        parse_keyframe_line(line)
    assert exc_info.value.code == 'MALFORMED_KEYFRAME'


def test_parse_skips_bad_lines_and_sorts(caplog):
    text = "2:The quick brown\n\nbroken line\n0:The\n1:The quick\nx:oops\n"

    with caplog.at_level(logging.WARNING):
        keyframes = parse_keyframes(text)

    assert [k.time_seconds for k in keyframes] == [0.0, 1.0, 2.0]
    assert keyframes[-1].cumulative_text == "The quick brown"
    assert caplog.text.count("Skipping keyframe line") == 2


def test_parse_handles_windows_line_endings():
    assert len(parse_keyframes("0:A\r\n1:AB\r\n")) == 2


# ---------------------------------------------------------------------------
# Rescaling
# ---------------------------------------------------------------------------

def test_rescale_uses_effective_duration():
    keyframes = [Keyframe(0, "A"), Keyframe(4, "AB")]

    scaled, scale = rescale_keyframes(keyframes, 10.0, trailing_silence_s=0.8, min_scale_factor=1.0)

    assert scale == pytest.approx(2.5)
    assert [k.time_seconds for k in scaled] == pytest.approx([0.0, 10.0])


def test_rescale_trailing_silence_wins_with_lower_factor():
    keyframes = [Keyframe(0, "A"), Keyframe(4, "AB")]

    _, scale = rescale_keyframes(keyframes, 10.0, trailing_silence_s=0.8, min_scale_factor=0.5)

    assert scale == pytest.approx(9.2 / 4)


def test_rescale_with_zero_max_time_keeps_times():
    keyframes = [Keyframe(0, "A"), Keyframe(0, "AB")]
    scaled, scale = rescale_keyframes(keyframes, 10.0)
    assert scale == 1.0
    assert scaled == keyframes


def test_rescale_constants_come_from_config(make_config):
    engine = NarrationSyncEngine("0:A\n4:AB", config=make_config(narration_min_scale_factor=0.5))
    engine.set_duration(10.0)
    assert engine.scale == pytest.approx(2.3)


def test_rescale_happens_once_per_duration(engine):
    assert engine.set_duration(4.0) is True
    assert engine.set_duration(4.0) is False
    for tick in range(40):
        engine.on_time_update(tick / 10)

    assert engine.rescale_count == 1

    assert engine.set_duration(8.0) is True
    assert engine.rescale_count == 2


@pytest.mark.parametrize("duration", [None, 0, -3, float('nan'), float('inf')])
def test_invalid_durations_are_ignored(engine, duration):
    assert engine.set_duration(duration) is False
    assert engine.duration is None
    assert engine.rescale_count == 0


def test_reload_discards_rescaled_times(engine):
    engine.set_duration(4.0)
    engine.load(ABC_KEYFRAMES)
    assert [k.time_seconds for k in engine.keyframes] == [0.0, 1.0, 2.0]


# ---------------------------------------------------------------------------
# Playback tracking
# ---------------------------------------------------------------------------

def test_highlight_is_newly_revealed_suffix(engine):
    engine.set_duration(2.0)
    assert engine.scale == 1.0

    engine.on_time_update(1.5)
    view = engine.current_view()

    assert engine.active_index == 1
    assert view.highlighted == "B"
    assert view.plain == "A"
    assert view.text == "AB"


def test_first_keyframe_highlights_everything(engine):
    engine.on_time_update(0.2)
    view = engine.current_view()
    assert view.plain == ""
    assert view.highlighted == "A"


def test_before_first_keyframe_shows_first(config):
    engine = NarrationSyncEngine("0.5:Hello\n1:Hello there", config=config)
    engine.on_time_update(0.1)
    assert engine.active_index == 0
    assert engine.current_view().highlighted == "Hello"


def test_ended_shows_full_text_without_highlight(engine):
    engine.set_duration(2.0)
    engine.on_time_update(1.2)
    engine.on_ended()
    view = engine.current_view()

    assert engine.active_index == 3
    assert view.finished is True
    assert view.plain == "ABC"
    assert view.highlighted == ""

    # Trailing ticks after the end do not reopen the highlight
    engine.on_time_update(2.0)
    assert engine.active_index == 3


def test_replay_after_end_resumes_tracking(engine):
    engine.set_duration(2.0)
    engine.on_time_update(2.0)
    engine.on_ended()

    engine.on_time_update(0.3)

    assert engine.finished is False
    assert engine.active_index == 0


def test_time_before_duration_uses_raw_times(config):
    engine = NarrationSyncEngine("0:A\n1:AB\n2:ABC", config=config)
    engine.on_time_update(1.0)
    assert engine.active_index == 1

    # Duration of 4 s doubles the spacing; position 1.0 now falls in the first keyframe
    engine.set_duration(4.0)
    assert engine.active_index == 0


def test_non_prefix_text_is_fully_highlighted(config):
    engine = NarrationSyncEngine("0:Hello\n1:Goodbye", config=config)
    engine.on_time_update(1.0)
    view = engine.current_view()
    assert view.plain == ""
    assert view.highlighted == "Goodbye"


def test_highlighting_disabled_renders_plain(make_config):
    engine = NarrationSyncEngine(ABC_KEYFRAMES, config=make_config(text_highlighting_sync=False))
    engine.on_time_update(1.5)
    view = engine.current_view()
    assert view.plain == "AB"
    assert view.highlighted == ""


def test_falls_back_to_description_without_keyframes(config):
    engine = NarrationSyncEngine(description="Just a description", config=config)
    engine.on_time_update(3.0)
    view = engine.current_view()
    assert view.plain == "Just a description"
    assert view.highlighted == ""
    assert view.from_keyframes is False


def test_falls_back_to_description_when_disabled(engine):
    engine.enabled = False
    engine.on_time_update(1.5)
    assert engine.current_view().text == "Static description"


def test_reset_for_new_waypoint(engine):
    engine.set_duration(2.0)
    engine.on_time_update(1.5)

    engine.reset("Next stop")

    assert engine.has_keyframes is False
    assert engine.active_index == 0
    assert engine.duration is None
    assert engine.current_view().text == "Next stop"
