"""
Defaults and the optional YAML settings file.

Everything has a sensible default below; a settings file only needs the keys
it wants to change, and command-line flags win over both.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import yaml

from vibesrgb.errors import ConfigError

logger = logging.getLogger(__name__)

# ── Settings ───────────────────────────────────────────────────────
WINDOW_MS = 50.0           # analysis window == pipeline period
CHUNK_SIZE = 1024          # WAV playback block
DEFAULT_BINS = 10
THRESHOLD = 1.0            # bin magnitude that lights an LED
ACTIVE_COLOR = (255, 0, 0)
BRIGHTNESS_CAP = 1.0
DEVICE_NAME = 'stereo mix'  # loopback capture device
LED_CONFIG = 'assets/razerkbd.json'

OPENRGB_HOST = 'localhost'
OPENRGB_PORT = 6742
CONTROLLER_ID = 0

BAUD_RATE = 1000000
START_BYTE_1 = 0xFF
START_BYTE_2 = 0xAA

SINK_TIMEOUT = 0.5         # seconds before a frame delivery is abandoned
BACKOFF_BASE = 0.25
BACKOFF_MAX = 5.0

BLINK_PERIOD = 0.25


@dataclass
class SinkSettings:
    kind: str = 'openrgb'  # openrgb | serial | terminal
    host: str = OPENRGB_HOST
    port: int = OPENRGB_PORT
    controller: int = CONTROLLER_ID
    serial_port: Optional[str] = None
    num_leds: Optional[int] = None
    timeout: float = SINK_TIMEOUT


@dataclass
class Settings:
    led_config: str = LED_CONFIG
    device: str = DEVICE_NAME
    window_ms: float = WINDOW_MS
    binning: dict = field(default_factory=lambda: {'strategy': 'linear', 'bins': DEFAULT_BINS})
    threshold: float = THRESHOLD
    color: Tuple[int, int, int] = ACTIVE_COLOR
    brightness: float = BRIGHTNESS_CAP
    sink: SinkSettings = field(default_factory=SinkSettings)

    def validate(self):
        if self.window_ms <= 0:
            raise ConfigError(f"window_ms must be positive, got {self.window_ms}")
        if not 0.0 <= self.brightness <= 1.0:
            raise ConfigError(f"brightness must be in [0, 1], got {self.brightness}")
        if len(self.color) != 3 or not all(0 <= c <= 255 for c in self.color):
            raise ConfigError(f"color must be three 0-255 values, got {self.color}")
        if self.sink.kind not in ('openrgb', 'serial', 'terminal'):
            raise ConfigError(f"unknown sink kind: {self.sink.kind}")
        if self.sink.kind == 'serial' and not self.sink.serial_port:
            raise ConfigError("serial sink needs serial_port")
        if self.sink.timeout <= 0:
            raise ConfigError(f"sink timeout must be positive, got {self.sink.timeout}")
        return self


_TOP_KEYS = {'led_config', 'audio', 'window_ms', 'binning', 'paint', 'brightness', 'sink'}
_SINK_TYPES = {
    'kind': str,
    'host': str,
    'port': int,
    'controller': int,
    'serial_port': str,
    'num_leds': int,
    'timeout': float,
}
_SINK_OPTIONAL = {'serial_port', 'num_leds'}


def _check_keys(section: str, data: dict, allowed: set):
    unknown = set(data) - allowed
    if unknown:
        raise ConfigError(f"unknown keys in {section}: {', '.join(sorted(unknown))}")


def settings_from_dict(data: dict) -> Settings:
    """Overlay a parsed settings mapping onto the defaults."""
    if not isinstance(data, dict):
        raise ConfigError("settings file must contain a mapping")
    _check_keys('settings', data, _TOP_KEYS)
    s = Settings()

    try:
        if 'led_config' in data:
            s.led_config = str(data['led_config'])
        audio = data.get('audio') or {}
        _check_keys('audio', audio, {'device'})
        if 'device' in audio:
            s.device = str(audio['device'])
        if 'window_ms' in data:
            s.window_ms = float(data['window_ms'])
        if 'binning' in data:
            s.binning = data['binning']
        paint = data.get('paint') or {}
        _check_keys('paint', paint, {'threshold', 'color'})
        if 'threshold' in paint:
            s.threshold = float(paint['threshold'])
        if 'color' in paint:
            s.color = tuple(int(c) for c in paint['color'])
        if 'brightness' in data:
            s.brightness = float(data['brightness'])

        sink = data.get('sink') or {}
        _check_keys('sink', sink, set(_SINK_TYPES))
        for key, value in sink.items():
            setattr(s.sink, key, _sink_value(key, value))

        return s.validate()
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(f"bad settings value: {e}") from e


def _sink_value(key: str, value):
    wanted = _SINK_TYPES[key]
    if value is None:
        if key in _SINK_OPTIONAL:
            return None
        raise ConfigError(f"sink.{key} cannot be empty")
    if wanted is str:
        if not isinstance(value, str):
            raise ConfigError(f"sink.{key} must be a string, got {value!r}")
        return value
    # bool is an int subclass; `port: yes` is a mistake, not port 1
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigError(f"sink.{key} must be a number, got {value!r}")
    return wanted(value)


def load_settings(path=None) -> Settings:
    """Read a YAML settings file, or return the defaults when path is None."""
    if path is None:
        return Settings().validate()
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"cannot read settings {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"settings {path} is not valid YAML: {e}") from e
    logger.debug("Loaded settings from %s", path)
    return settings_from_dict(data)
