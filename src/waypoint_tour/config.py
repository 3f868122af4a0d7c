"""
Layered configuration for the waypoint tour engine.

Precedence: Environment > JSON file > Defaults

Usage:
    from waypoint_tour.config import TourConfig

    config = TourConfig()                      # defaults + env
    config = TourConfig('tour_config.json')    # defaults + file + env
    config.cinematic_pan_steps                 # typed property access

Environment variables are named ``WAYPOINT_TOUR_<KEY>`` (e.g.
``WAYPOINT_TOUR_SKIP_TRANSITIONS=1``). ``WAYPOINT_TOUR_CONFIG`` names a JSON
file when no explicit path is given.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

ENV_PREFIX = 'WAYPOINT_TOUR_'
CONFIG_FILE_ENV = 'WAYPOINT_TOUR_CONFIG'
SECTION_NAME = 'waypoint_tour'


class TourConfig:
    """Configuration for camera transitions, narration sync and traversal."""

    DEFAULTS: Dict[str, Any] = {
        # Simple pans
        'smooth_pan_steps': 20,
        'smooth_pan_step_delay_ms': 20,

        # Cinematic transitions
        'cinematic_pan_steps': 100,
        'cinematic_pan_step_delay_ms': 20,
        'zoom_out_step_delay_ms': 200,
        'zoom_in_step_delay_ms': 280,
        'pan_settle_delay_ms': 200,
        'min_zoom_level': 5,
        'zoom_ack_timeout_ms': 0,

        # Narration keyframe rescaling (tuned against one narration pipeline)
        'narration_trailing_silence_s': 0.8,
        'narration_min_scale_factor': 1.0,

        # Traversal
        'skip_transitions': False,
        'skip_transition_delay_ms': 300,
        'initial_setup_ms': 4000,
        'demo_zoom_level': 17,
        'default_zoom_level': 3,

        # Narration preferences
        'narration_enabled': True,
        'auto_play_narration': True,
        'text_highlighting_sync': True,
        'auto_advance_waypoints': False,

        # Sources
        'request_timeout_s': 10.0,

        # Logging and debug
        'debug_mode': False,
    }

    _POSITIVE_INTS = (
        'smooth_pan_steps',
        'cinematic_pan_steps',
    )
    _NON_NEGATIVE_NUMBERS = (
        'smooth_pan_step_delay_ms',
        'cinematic_pan_step_delay_ms',
        'zoom_out_step_delay_ms',
        'zoom_in_step_delay_ms',
        'pan_settle_delay_ms',
        'zoom_ack_timeout_ms',
        'narration_trailing_silence_s',
        'skip_transition_delay_ms',
        'initial_setup_ms',
        'request_timeout_s',
    )

    def __init__(self, config_file: Optional[Union[str, Path]] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_file: Optional path to a JSON config file
            overrides: Values applied after all other sources (runtime only)
        """
        self._config: Dict[str, Any] = {}
        self._config_file = config_file
        self._overrides = dict(overrides or {})
        self._load_configuration()

    def _load_configuration(self):
        """Load configuration from all sources in priority order."""
        self._config = self.DEFAULTS.copy()
        self._load_from_json_config()
        self._load_from_environment()
        self._config.update(self._overrides)
        self._validate_config()

        if self.debug_mode:
            logger.info(f"Tour configuration loaded: {len(self._config)} settings")

    def _resolve_config_path(self) -> Optional[Path]:
        if self._config_file:
            return Path(self._config_file)
        env_path = os.getenv(CONFIG_FILE_ENV)
        if env_path:
            return Path(env_path)
        return None

    def _load_from_json_config(self):
        """Load configuration from JSON config file."""
        config_path = self._resolve_config_path()
        if config_path is None:
            return
        if not config_path.exists():
            logger.debug(f"No config file found at {config_path}")
            return

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                json_config = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load JSON config from {config_path}: {e}")
            return

        if not isinstance(json_config, dict):
            logger.warning(f"Ignoring config file {config_path}: top level must be an object")
            return

        # Shared config files keep tour settings in their own section
        section = json_config.get(SECTION_NAME, json_config)
        if not isinstance(section, dict):
            logger.warning(f"Ignoring '{SECTION_NAME}' section in {config_path}: not an object")
            return

        # Keys starting with _ are comments
        filtered_config = {k: v for k, v in section.items() if not k.startswith('_')}
        self._config.update(filtered_config)
        logger.debug(f"Loaded JSON config from {config_path}")

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        for key in list(self._config.keys()):
            env_key = f"{ENV_PREFIX}{key.upper()}"
            env_value = os.getenv(env_key)

            if env_value is not None:
                converted_value = self._convert_env_value(env_value, self._config[key])
                self._config[key] = converted_value
                logger.debug(f"Loaded environment variable: {env_key} = {converted_value}")

    def _convert_env_value(self, env_value: str, default_value: Any) -> Any:
        """Convert environment variable string to appropriate type."""
        if isinstance(default_value, bool):
            return env_value.lower() in ('true', '1', 'yes', 'on')
        elif isinstance(default_value, int):
            try:
                return int(env_value)
            except ValueError:
                logger.warning(f"Invalid integer value in environment: {env_value}")
                return default_value
        elif isinstance(default_value, float):
            try:
                return float(env_value)
            except ValueError:
                logger.warning(f"Invalid float value in environment: {env_value}")
                return default_value
        elif isinstance(default_value, list):
            return [item.strip() for item in env_value.split(',')]
        else:
            return env_value

    def _validate_config(self):
        """Reset out-of-range values to their defaults."""
        for key in self._POSITIVE_INTS:
            value = self._config.get(key)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        for key in self._NON_NEGATIVE_NUMBERS:
            value = self._config.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger.warning(f"Invalid {key} {value!r}, using {self.DEFAULTS[key]}")
                self._config[key] = self.DEFAULTS[key]

        factor = self._config.get('narration_min_scale_factor')
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) or factor <= 0:
            logger.warning(f"Invalid narration_min_scale_factor {factor!r}, using 1.0")
            self._config['narration_min_scale_factor'] = self.DEFAULTS['narration_min_scale_factor']

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value (runtime only)."""
        self._config[key] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self._config.copy()

    def reload(self):
        """Reload configuration from all sources."""
        self._load_configuration()

    # Simple pans
    @property
    def smooth_pan_steps(self) -> int:
        return self._config.get('smooth_pan_steps', 20)

    @property
    def smooth_pan_step_delay_ms(self) -> float:
        return self._config.get('smooth_pan_step_delay_ms', 20)

    # Cinematic transitions
    @property
    def cinematic_pan_steps(self) -> int:
        return self._config.get('cinematic_pan_steps', 100)

    @property
    def cinematic_pan_step_delay_ms(self) -> float:
        return self._config.get('cinematic_pan_step_delay_ms', 20)

    @property
    def zoom_out_step_delay_ms(self) -> float:
        return self._config.get('zoom_out_step_delay_ms', 200)

    @property
    def zoom_in_step_delay_ms(self) -> float:
        return self._config.get('zoom_in_step_delay_ms', 280)

    @property
    def pan_settle_delay_ms(self) -> float:
        return self._config.get('pan_settle_delay_ms', 200)

    @property
    def min_zoom_level(self) -> int:
        return self._config.get('min_zoom_level', 5)

    @property
    def zoom_ack_timeout_ms(self) -> float:
        return self._config.get('zoom_ack_timeout_ms', 0)

    # Narration
    @property
    def narration_trailing_silence_s(self) -> float:
        return self._config.get('narration_trailing_silence_s', 0.8)

    @property
    def narration_min_scale_factor(self) -> float:
        return self._config.get('narration_min_scale_factor', 1.0)

    @property
    def narration_enabled(self) -> bool:
        return self._config.get('narration_enabled', True)

    @property
    def auto_play_narration(self) -> bool:
        return self._config.get('auto_play_narration', True)

    @property
    def text_highlighting_sync(self) -> bool:
        return self._config.get('text_highlighting_sync', True)

    @property
    def auto_advance_waypoints(self) -> bool:
        return self._config.get('auto_advance_waypoints', False)

    # Traversal
    @property
    def skip_transitions(self) -> bool:
        return self._config.get('skip_transitions', False)

    @property
    def skip_transition_delay_ms(self) -> float:
        return self._config.get('skip_transition_delay_ms', 300)

    @property
    def initial_setup_ms(self) -> float:
        return self._config.get('initial_setup_ms', 4000)

    @property
    def demo_zoom_level(self) -> int:
        return self._config.get('demo_zoom_level', 17)

    @property
    def default_zoom_level(self) -> int:
        return self._config.get('default_zoom_level', 3)

    # Sources
    @property
    def request_timeout_s(self) -> float:
        return self._config.get('request_timeout_s', 10.0)

    @property
    def debug_mode(self) -> bool:
        return self._config.get('debug_mode', False)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {len(self._config)} settings>"


_global_config_instance: Optional[TourConfig] = None


def get_config() -> TourConfig:
    """Get the process-wide default configuration instance."""
    global _global_config_instance
    if _global_config_instance is None:
        _global_config_instance = TourConfig()
    return _global_config_instance
