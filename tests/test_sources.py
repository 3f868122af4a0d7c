import asyncio
import json

import aiohttp
import pytest

from waypoint_tour.errors import MissingItineraryData, SourceUnavailable, ValidationFailure
from waypoint_tour.sources import (
    HttpItinerarySource,
    JsonFileItinerarySource,
    fetch_keyframes_text,
    load_itinerary_file,
)


class _FakeResponse:
    def __init__(self, status=200, payload=None, text='', error=None):
        self.status = status
        self._payload = payload
        self._text = text
        self._error = error

    async def __aenter__(self):
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientConnectionError(f"HTTP {self.status}")

    async def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self):
        return self._text


class _FakeSession:
    """Records requested URLs and replays a canned response."""

    def __init__(self, response):
        self.response = response
        self.requests = []
        self.closed = False

    def get(self, url, timeout=None):
        self.requests.append((url, timeout.total if timeout else None))
        return self.response

    async def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# JSON files
# ---------------------------------------------------------------------------

def test_load_itinerary_file(tmp_path, itinerary_payload):
    path = tmp_path / 'harbour.json'
    payload = dict(itinerary_payload)
    payload.pop('session_id')
    path.write_text(json.dumps(payload), encoding='utf-8')

    itinerary = load_itinerary_file(path)

    assert itinerary.session_id == 'harbour'
    assert itinerary.waypoint_count == 3


def test_missing_file(tmp_path):
    with pytest.raises(MissingItineraryData):
        load_itinerary_file(tmp_path / 'absent.json')


def test_invalid_json_file(tmp_path):
    path = tmp_path / 'broken.json'
    path.write_text('{not json', encoding='utf-8')
    with pytest.raises(ValidationFailure):
        load_itinerary_file(path)


def test_empty_file_payload(tmp_path):
    path = tmp_path / 'empty.json'
    path.write_text('{}', encoding='utf-8')
    with pytest.raises(MissingItineraryData):
        load_itinerary_file(path)


def test_directory_source_stays_inside_directory(tmp_path, itinerary_payload):
    (tmp_path / 'sample.json').write_text(json.dumps(itinerary_payload), encoding='utf-8')
    source = JsonFileItinerarySource(tmp_path)

    assert source.path_for('../../etc/sample') == tmp_path / 'sample.json'

    itinerary = asyncio.run(source.fetch("sample"))
    assert itinerary.session_id == 'sample'


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

def test_http_fetch(itinerary_payload):
    session = _FakeSession(_FakeResponse(payload=itinerary_payload))
    source = HttpItinerarySource('http://tours.local/api/', session=session, timeout_s=2.5)

    itinerary = asyncio.run(source.fetch("demo 1"))

    assert session.requests == [('http://tours.local/api/itineraries/demo%201', 2.5)]
    assert itinerary.waypoint_count == 3
    assert itinerary.session_id == 'sample'


def test_http_not_found():
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(_FakeResponse(status=404)))
    with pytest.raises(MissingItineraryData) as exc_info:
        asyncio.run(source.fetch('missing'))
    assert exc_info.value.details['status'] == 404


def test_http_empty_payload():
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(_FakeResponse(payload={})))
    with pytest.raises(MissingItineraryData):
        asyncio.run(source.fetch('empty'))


def test_http_server_error():
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(_FakeResponse(status=503)))
    with pytest.raises(SourceUnavailable):
        asyncio.run(source.fetch('down'))


def test_http_connection_error():
    response = _FakeResponse(error=aiohttp.ClientConnectionError("refused"))
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(response))
    with pytest.raises(SourceUnavailable):
        asyncio.run(source.fetch('demo'))


def test_http_timeout():
    response = _FakeResponse(error=asyncio.TimeoutError())
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(response), timeout_s=1)
    with pytest.raises(SourceUnavailable) as exc_info:
        asyncio.run(source.fetch('demo'))
    assert exc_info.value.details['timeout_s'] == 1


def test_http_invalid_json():
    response = _FakeResponse(payload=ValueError("bad json"))
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(response))
    with pytest.raises(SourceUnavailable):
        asyncio.run(source.fetch('demo'))


def test_http_invalid_payload_is_validation_failure():
    response = _FakeResponse(payload={'routes': [{'path': [[200, 0]]}]})
    source = HttpItinerarySource('http://tours.local', session=_FakeSession(response))
    with pytest.raises(ValidationFailure):
        asyncio.run(source.fetch('demo'))


def test_borrowed_session_is_left_open(itinerary_payload):
    session = _FakeSession(_FakeResponse(payload=itinerary_payload))

    async def scenario():
        async with HttpItinerarySource('http://tours.local', session=session) as source:
            return await source.fetch('sample')

    assert asyncio.run(scenario()).session_id == 'sample'
    assert session.closed is False


# ---------------------------------------------------------------------------
# Keyframes assets
# ---------------------------------------------------------------------------

def test_keyframes_from_file(tmp_path):
    path = tmp_path / 'london.txt'
    path.write_text("0:The\n1:The tower\n", encoding='utf-8')

    assert asyncio.run(fetch_keyframes_text(str(path))) == "0:The\n1:The tower\n"


def test_keyframes_file_missing(tmp_path):
    with pytest.raises(SourceUnavailable):
        asyncio.run(fetch_keyframes_text(str(tmp_path / "absent.txt")))


def test_keyframes_over_http():
    session = _FakeSession(_FakeResponse(text="0:Hi\n"))
    text = asyncio.run(fetch_keyframes_text('https://cdn.local/london.txt', session=session, timeout_s=3))

    assert text == "0:Hi\n"
    assert session.requests == [('https://cdn.local/london.txt', 3)]
