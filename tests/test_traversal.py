import logging

import pytest

from waypoint_tour.camera_controller import CameraTransitionController
from waypoint_tour.cinematic import calculate_transition
from waypoint_tour.traversal import TraversalState, WaypointTraversalController

from conftest import LONDON, LONDON_EAST, OSLO


@pytest.fixture
def camera(surface, scheduler, config):
    return CameraTransitionController(surface, scheduler, config)


@pytest.fixture
def traversal(itinerary, camera, scheduler, config):
    return WaypointTraversalController(itinerary, camera, scheduler, config)


@pytest.fixture
def presenting(traversal, scheduler):
    """Traversal started and presenting the first waypoint."""
    traversal.start()
    scheduler.run_until_idle()
    return traversal


def test_starts_idle(traversal):
    assert traversal.state is TraversalState.IDLE
    assert traversal.active_index is None
    assert traversal.visible_remaining_waypoints() == []


def test_start_presents_first_waypoint_after_setup(traversal, scheduler, surface):
    presented = []
    traversal.on_presented(lambda index, waypoint: presented.append((index, waypoint.id)))

    assert traversal.start() is True
    assert traversal.state is TraversalState.TRANSITIONING

    scheduler.advance(3999)
    assert presented == []

    scheduler.advance(1)
    assert presented == [(0, 'wp-london')]
    assert traversal.state is TraversalState.PRESENTING
    assert surface.get_center() == LONDON
    assert surface.get_zoom() == 17


def test_start_twice_is_rejected(presenting):
    assert presenting.start() is False
    assert presenting.active_index == 0


def test_advance_waits_exactly_for_transition_duration(presenting, scheduler):
    infos = []
    presenting.on_transition_info(lambda index, info: infos.append((index, info.duration_ms)))

    assert presenting.advance() is True
    # ~300 m hop
    assert infos == [(1, 500)]
    assert presenting.state is TraversalState.TRANSITIONING
    assert presenting.active_index == 1

    scheduler.advance(499)
    assert presenting.state is TraversalState.TRANSITIONING

    scheduler.advance(1)
    assert presenting.state is TraversalState.PRESENTING
    assert presenting.active_waypoint.id == 'wp-east'


def test_navigation_ignored_while_transitioning(presenting, scheduler):
    presenting.advance()

    assert presenting.advance() is False
    assert presenting.retreat() is False
    assert presenting.jump_to(2) is False
    assert presenting.active_index == 1

    scheduler.run_until_idle()
    assert presenting.active_index == 1


def test_busy_camera_falls_back_to_simple_pan(presenting, scheduler, caplog):
    presenting.advance()
    scheduler.advance(500)
    assert presenting.camera.cinematic_in_flight

    with caplog.at_level(logging.WARNING):
        assert presenting.advance() is True

    assert "Rejected cinematic transition" in caplog.text
    assert presenting.last_transition.duration_ms == 9000
    # Timed from where the in-flight move lands, not from mid-flight
    assert presenting.last_transition == calculate_transition(LONDON_EAST, OSLO)

    scheduler.run_until_idle()
    assert presenting.state is TraversalState.PRESENTING
    assert presenting.active_index == 2
    assert presenting.camera.surface.get_center() == OSLO


def test_advance_past_last_waypoint_finishes(presenting, scheduler):
    finished = []
    presenting.on_finished(lambda: finished.append(True))

    presenting.jump_to(2)
    scheduler.run_until_idle()
    assert presenting.advance() is True

    assert presenting.state is TraversalState.FINISHED
    assert finished == [True]
    assert presenting.visible_remaining_waypoints() == []
    assert presenting.advance() is False


def test_retreat_at_first_waypoint_is_noop(presenting):
    assert presenting.retreat() is False
    assert presenting.state is TraversalState.PRESENTING


def test_retreat_moves_back(presenting, scheduler):
    presenting.advance()
    scheduler.run_until_idle()

    assert presenting.retreat() is True
    scheduler.run_until_idle()

    assert presenting.active_index == 0


def test_jump_out_of_range_is_ignored(presenting, caplog):
    with caplog.at_level(logging.WARNING):
        assert presenting.jump_to(99) is False
        assert presenting.jump_to(-1) is False

    assert "Jump ignored" in caplog.text
    assert presenting.state is TraversalState.PRESENTING
    assert presenting.active_index == 0


def test_jump_to_current_waypoint_is_ignored(presenting):
    assert presenting.jump_to(0) is False


def test_resolve_invalid_index_clears_active_waypoint(presenting, caplog):
    with caplog.at_level(logging.ERROR):
        assert presenting.resolve(99) is None

    assert presenting.active_waypoint is None
    assert "Invalid waypoint index" in caplog.text


def test_visible_remaining_waypoints(presenting, scheduler):
    assert [wp.id for wp in presenting.visible_remaining_waypoints()] == ['wp-east', 'wp-oslo']

    presenting.advance()
    scheduler.run_until_idle()

    assert [wp.id for wp in presenting.visible_remaining_waypoints()] == ['wp-oslo']


def test_active_path_follows_segment(presenting, scheduler):
    assert presenting.active_path == [LONDON, LONDON_EAST]

    presenting.jump_to(2)
    assert presenting.active_path == [LONDON_EAST, OSLO]


def test_skip_transitions_jumps_instantly(itinerary, surface, scheduler, make_config):
    config = make_config(skip_transitions=True)
    camera = CameraTransitionController(surface, scheduler, config)
    traversal = WaypointTraversalController(itinerary, camera, scheduler, config)

    traversal.start()
    scheduler.advance(300)
    assert traversal.state is TraversalState.PRESENTING

    traversal.advance()
    assert surface.get_center() == LONDON_EAST
    assert traversal.state is TraversalState.TRANSITIONING

    scheduler.advance(300)
    assert traversal.state is TraversalState.PRESENTING
    assert traversal.active_index == 1
    assert not any(op == 'pan_to' for op, _ in surface.history)


def test_gallery_wraps_and_resets(presenting, scheduler):
    assert presenting.current_image == 'london-1.jpg'
    assert presenting.next_image() == 'london-2.jpg'
    assert presenting.previous_image() == 'london-1.jpg'
    assert presenting.previous_image() == 'london-3.jpg'

    presenting.advance()
    scheduler.run_until_idle()

    assert presenting.image_index == 0
    assert presenting.current_image is None
    assert presenting.next_image() is None


def test_narration_resets_on_presentation(presenting, scheduler):
    presenting.narration.load("0:Hello\n1:Hello world")
    presenting.narration.on_time_update(1.0)

    presenting.advance()
    scheduler.run_until_idle()

    assert presenting.narration.has_keyframes is False
    assert presenting.narration.current_view().text == 'A short walk'


def test_state_changes_are_reported(traversal, scheduler):
    changes = []
    traversal.on_state_changed(lambda state, index: changes.append((state.value, index)))

    traversal.start()
    scheduler.run_until_idle()
    traversal.advance()
    scheduler.run_until_idle()

    assert changes == [
        ('transitioning', 0),
        ('presenting', 0),
        ('transitioning', 1),
        ('presenting', 1),
    ]


def test_finish_drops_pending_arrival(presenting, scheduler):
    presented = []
    presenting.on_presented(lambda index, waypoint: presented.append(index))

    presenting.advance()
    presenting.finish()
    scheduler.run_until_idle()

    assert presented == []
    assert presenting.state is TraversalState.FINISHED


def test_status(presenting):
    status = presenting.get_status()

    assert status['success'] is True
    assert status['state'] == 'presenting'
    assert status['active_waypoint'] == 'wp-london'
    assert status['last_index'] == 2
    assert status['visible_remaining'] == ['wp-east', 'wp-oslo']
