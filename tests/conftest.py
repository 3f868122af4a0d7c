"""Shared fixtures: virtual time, in-memory viewport and sample itineraries."""

from __future__ import annotations

import os

import pytest

from waypoint_tour.config import TourConfig
from waypoint_tour.models import Coordinate, Itinerary, RouteSegment, Waypoint
from waypoint_tour.scheduler import VirtualScheduler
from waypoint_tour.surface import InMemorySurface, SimulatedAudio

LONDON = Coordinate(51.5074, -0.1278)
# ~300 m east of LONDON
LONDON_EAST = Coordinate(51.5074, -0.1235)
OSLO = Coordinate(59.9139, 10.7522)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep developer environment variables out of configuration and logging."""
    for key in list(os.environ):
        if key.startswith('WAYPOINT_TOUR_') or key.startswith('TOUR_LOG_'):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config():
    return TourConfig()


@pytest.fixture
def make_config():
    def _make(**overrides):
        return TourConfig(overrides=overrides)
    return _make


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def surface():
    return InMemorySurface(center=LONDON, zoom=17)


@pytest.fixture
def audio():
    return SimulatedAudio(media_duration=4.0)


def _waypoint(wp_id, order, coordinate, **kwargs):
    return Waypoint(id=wp_id, order=order, coordinate=coordinate, **kwargs)


@pytest.fixture
def itinerary():
    """Two segments, three waypoints: London, 300 m east, then Oslo."""
    city = RouteSegment(
        id='city',
        waypoints=(
            _waypoint('wp-london', 0, LONDON, name='London', description='The start',
                      image_refs=('london-1.jpg', 'london-2.jpg', 'london-3.jpg'),
                      narration_audio_ref='london.mp3', keyframes_ref='london.txt'),
            _waypoint('wp-east', 1, LONDON_EAST, name='East', description='A short walk'),
        ),
        path=(LONDON, LONDON_EAST),
    )
    north = RouteSegment(
        id='north',
        waypoints=(
            _waypoint('wp-oslo', 0, OSLO, name='Oslo', description='Across the sea',
                      image_refs=('oslo.jpg',)),
        ),
        path=(LONDON_EAST, OSLO),
    )
    return Itinerary(segments=(city, north), session_id='sample')


@pytest.fixture
def itinerary_payload():
    """Loose upstream shape of the sample itinerary."""
    return {
        'session_id': 'sample',
        'routes': [
            {
                'id': 'north',
                'order': 1,
                'path': [[51.5074, -0.1235], {'lat': 59.9139, 'lng': 10.7522}],
                'waypoints': [
                    {'id': 'wp-oslo', 'lat': 59.9139, 'lng': 10.7522, 'name': 'Oslo',
                     'image_urls': ['oslo.jpg', '']},
                ],
            },
            {
                'id': 'city',
                'order': 0,
                'coordinates': [{'lat': 51.5074, 'lng': -0.1278}, {'lat': 51.5074, 'lng': -0.1235}],
                'waypoints': [
                    {'id': 'wp-east', 'order': 1, 'coordinates': {'lat': 51.5074, 'lng': -0.1235}},
                    {'id': 'wp-london', 'order': 0, 'coordinates': {'lat': 51.5074, 'lng': -0.1278},
                     'narration_url': 'london.mp3', 'keyframes_url': 'london.txt'},
                ],
            },
        ],
    }
