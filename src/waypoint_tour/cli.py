"""
Command line entry point for the waypoint tour engine.

Usage:
  waypoint-tour plan itineraries/lake-district.json
  waypoint-tour plan lake-district --base-url http://localhost:8080
  waypoint-tour keyframes narration.txt --duration 42.5 --at 3 --at 10.25
  waypoint-tour simulate itineraries/lake-district.json --skip-transitions

Every command prints JSON. Failures print an error payload and exit 1.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .cinematic import calculate_transition, calculate_zoom_out_level
from .config import TourConfig
from .errors import TourError
from .logging import setup_logging
from .models import Itinerary
from .narration import NarrationSyncEngine
from .scheduler import VirtualScheduler
from .session import TourSession
from .sources import HttpItinerarySource, fetch_keyframes_text, load_itinerary_file
from .surface import InMemorySurface
from .traversal import TraversalState

logger = logging.getLogger(__name__)


def load_itinerary(source: str, base_url: Optional[str] = None, timeout_s: Optional[float] = None) -> Itinerary:
    if base_url:
        async def fetch() -> Itinerary:
            async with HttpItinerarySource(base_url, timeout_s=timeout_s) as http_source:
                return await http_source.fetch(source)
        return asyncio.run(fetch())
    return load_itinerary_file(source)


def cmd_plan(args: argparse.Namespace, config: TourConfig) -> Dict[str, Any]:
    itinerary = load_itinerary(args.source, args.base_url, config.request_timeout_s)
    waypoints = itinerary.flat_waypoints()
    zoom = config.demo_zoom_level
    hops = []
    for index in range(1, len(waypoints)):
        start, end = waypoints[index - 1], waypoints[index]
        info = calculate_transition(start.coordinate, end.coordinate)
        hop = {'from': start.id, 'to': end.id, 'index': index}
        hop.update(info.to_dict())
        hop['zoom_out_level'] = calculate_zoom_out_level(zoom, info.distance_meters, config.min_zoom_level)
        hops.append(hop)

    return {
        'success': True,
        'session_id': itinerary.session_id,
        'waypoint_count': itinerary.waypoint_count,
        'segment_count': len(itinerary.segments),
        'hops': hops,
        'total_duration_ms': sum(hop['duration_ms'] for hop in hops),
    }


def cmd_keyframes(args: argparse.Namespace, config: TourConfig) -> Dict[str, Any]:
    text = asyncio.run(fetch_keyframes_text(args.source, timeout_s=config.request_timeout_s))
    engine = NarrationSyncEngine(text, config=config)
    if args.duration is not None:
        engine.set_duration(args.duration)

    views = []
    for position in args.at or []:
        engine.on_time_update(position)
        view = engine.current_view().to_dict()
        view['time'] = position
        views.append(view)

    return {
        'success': True,
        'count': len(engine.keyframes),
        'scale': engine.scale,
        'keyframes': [
            {'time': keyframe.time_seconds, 'text': keyframe.cumulative_text}
            for keyframe in engine.keyframes
        ],
        'views': views,
    }


def cmd_simulate(args: argparse.Namespace, config: TourConfig) -> Dict[str, Any]:
    if args.skip_transitions:
        config.set('skip_transitions', True)
    itinerary = load_itinerary(args.source, args.base_url, config.request_timeout_s)

    scheduler = VirtualScheduler()
    surface = InMemorySurface(zoom=config.default_zoom_level)
    session = TourSession(itinerary, surface, scheduler, config=config)
    events: List[Dict[str, Any]] = []

    def record(event: str, **fields):
        entry = {'t_ms': scheduler.now_ms(), 'event': event}
        entry.update(fields)
        events.append(entry)

    session.traversal.on_state_changed(
        lambda state, index: record('state', state=state.value, index=index))
    session.traversal.on_transition_info(
        lambda index, info: record('transition', index=index, **info.to_dict()))

    session.start()
    scheduler.run_until_idle()

    # One extra advance moves past the last waypoint into FINISHED
    for _ in range(itinerary.waypoint_count):
        if session.state is TraversalState.FINISHED:
            break
        session.advance()
        scheduler.run_until_idle()

    return {
        'success': True,
        'session_id': itinerary.session_id,
        'final_state': session.state.value,
        'elapsed_ms': scheduler.now_ms(),
        'camera': session.camera.get_status(),
        'events': events,
    }


COMMANDS = {
    'plan': cmd_plan,
    'keyframes': cmd_keyframes,
    'simulate': cmd_simulate,
}


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='waypoint-tour', description='Cinematic waypoint tour engine')
    p.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    p.add_argument('--config', help='JSON configuration file')
    p.add_argument('--log-level', help='DEBUG, INFO, WARNING, ...')
    sub = p.add_subparsers(dest='command', required=True)

    plan = sub.add_parser('plan', help='Transition timing for every hop of an itinerary')
    plan.add_argument('source', help='Itinerary JSON file, or a session id with --base-url')
    plan.add_argument('--base-url', help='Fetch the itinerary from <base-url>/itineraries/<source>')

    keyframes = sub.add_parser('keyframes', help='Parse a keyframes asset and render narration spans')
    keyframes.add_argument('source', help='Keyframes file path or URL')
    keyframes.add_argument('--duration', type=float, help='Audio duration in seconds to rescale against')
    keyframes.add_argument('--at', type=float, action='append', help='Playback position to render (repeatable)')

    simulate = sub.add_parser('simulate', help='Run a whole tour on virtual time')
    simulate.add_argument('source', help='Itinerary JSON file, or a session id with --base-url')
    simulate.add_argument('--base-url', help='Fetch the itinerary from <base-url>/itineraries/<source>')
    simulate.add_argument('--skip-transitions', action='store_true', help='Use instant camera moves')
    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    # stdout carries the JSON result; engine logs default to WARNING and above
    setup_logging('waypoint-tour', level=args.log_level or os.getenv('TOUR_LOG_LEVEL', 'WARNING'))

    try:
        config = TourConfig(Path(args.config) if args.config else None)
        result = COMMANDS[args.command](args, config)
    except TourError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(json.dumps(e.to_payload(), indent=2))
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
