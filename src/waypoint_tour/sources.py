"""
Itinerary and narration asset sources.

Sources answer a request/response lookup: the itinerary for a session id, or
the text of a keyframes asset. HTTP access goes through aiohttp; local JSON
files are read directly. Every source returns validated core models.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import quote

import aiohttp

from .config import get_config
from .errors import MissingItineraryData, SourceUnavailable, ValidationFailure
from .models import Itinerary
from .schemas import parse_itinerary

logger = logging.getLogger(__name__)


class ItinerarySource(ABC):
    """Looks up the itinerary for a demo session"""

    @abstractmethod
    async def fetch(self, session_id: str) -> Itinerary:
        """
        Return the validated itinerary for ``session_id``.

        Raises:
            MissingItineraryData: Nothing (or nothing usable) exists for the id
            SourceUnavailable: The backing store could not be reached
        """


def load_itinerary_file(path: Union[str, Path], session_id: Optional[str] = None,
                        require_demo_data: bool = True) -> Itinerary:
    """Read and validate an itinerary JSON file"""
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except FileNotFoundError as e:
        raise MissingItineraryData(f"Itinerary file not found: {path}", details={'path': str(path)}) from e
    except OSError as e:
        raise SourceUnavailable(f"Could not read itinerary file {path}: {e}", details={'path': str(path)}) from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationFailure(f"Invalid JSON in {path}: {e}", details={'path': str(path)}) from e

    if not payload:
        raise MissingItineraryData(f"Itinerary file is empty: {path}", details={'path': str(path)})
    return parse_itinerary(payload, session_id=session_id or path.stem, require_demo_data=require_demo_data)


class JsonFileItinerarySource(ItinerarySource):
    """Itineraries stored as ``<directory>/<session_id>.json``"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def path_for(self, session_id: str) -> Path:
        # Session ids never address files outside the directory
        return self.directory / f"{Path(session_id).name}.json"

    def load(self, session_id: str) -> Itinerary:
        itinerary = load_itinerary_file(self.path_for(session_id), session_id=session_id)
        logger.debug(f"Loaded itinerary {session_id}: {itinerary.waypoint_count} waypoints")
        return itinerary

    async def fetch(self, session_id: str) -> Itinerary:
        return self.load(session_id)


class HttpItinerarySource(ItinerarySource):
    """
    Itineraries served over HTTP at ``<base_url>/itineraries/<session_id>``.

    Use as an async context manager, or pass an existing ``aiohttp`` session
    (which is then left open on ``close()``).
    """

    def __init__(self, base_url: str, session: Optional[aiohttp.ClientSession] = None,
                 timeout_s: Optional[float] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout_s = timeout_s if timeout_s is not None else get_config().request_timeout_s
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def url_for(self, session_id: str) -> str:
        return f"{self.base_url}/itineraries/{quote(str(session_id), safe='')}"

    async def fetch(self, session_id: str) -> Itinerary:
        url = self.url_for(session_id)
        payload = await _get(self._get_session(), url, self.timeout_s, as_json=True)
        if not payload:
            raise MissingItineraryData(f"No itinerary data for session {session_id}", details={'url': url})
        itinerary = parse_itinerary(payload, session_id=session_id)
        logger.info(f"Fetched itinerary {session_id}: {itinerary.waypoint_count} waypoints")
        return itinerary


async def _get(session: aiohttp.ClientSession, url: str, timeout_s: float, as_json: bool) -> Any:
    """GET ``url`` and return JSON or text; transport failures become SourceUnavailable"""
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout_s)) as response:
            if response.status == 404:
                raise MissingItineraryData(f"Not found: {url}", details={'url': url, 'status': 404})
            response.raise_for_status()
            if as_json:
                return await response.json()
            return await response.text()
    except aiohttp.ClientError as e:
        logger.error(f"Request failed: {url}: {e}")
        raise SourceUnavailable(f"Request failed: {e}", details={'url': url}) from e
    except asyncio.TimeoutError as e:
        logger.error(f"Request timed out after {timeout_s}s: {url}")
        raise SourceUnavailable(f"Request timed out: {url}", details={'url': url, 'timeout_s': timeout_s}) from e
    except ValueError as e:
        logger.error(f"Invalid JSON response from {url}: {e}")
        raise SourceUnavailable(f"Invalid JSON response: {e}", details={'url': url}) from e


async def fetch_keyframes_text(ref: str, session: Optional[aiohttp.ClientSession] = None,
                               timeout_s: Optional[float] = None) -> str:
    """
    Fetch a keyframes asset from an HTTP(S) URL or a local path.

    The text is returned untouched; parsing is left to the narration engine.
    """
    if ref.startswith(('http://', 'https://')):
        timeout = timeout_s if timeout_s is not None else get_config().request_timeout_s
        if session is not None:
            return await _get(session, ref, timeout, as_json=False)
        async with aiohttp.ClientSession() as own_session:
            return await _get(own_session, ref, timeout, as_json=False)

    try:
        return Path(ref).read_text(encoding='utf-8')
    except OSError as e:
        raise SourceUnavailable(f"Could not read keyframes file {ref}: {e}", details={'path': ref}) from e
