"""
LED layout and spatial painting.

The layout file comes from the configurator: each LED on the controller
either has a normalized (x, y) position on a reference photo or is unplaced.
Only x matters for painting; it picks a frequency along [0, max_freq), so the
left edge of the photo follows the bass and the right edge the treble.

File format (JSON), either

    {"aspect_ratio": 1.78, "leds": [null, {"x": 0.1, "y": 0.5}, ...]}

or the bare pair the configurator's save button writes:

    [1.78, [null, {"x": 0.1, "y": 0.5}, ...]]
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from vibesrgb.errors import BinCoverageError, ConfigError
from vibesrgb.spectrum import Bin, BinRange

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]
LedSlot = Optional[Tuple[float, float]]

OFF: Color = (0, 0, 0)
RED: Color = (255, 0, 0)


@dataclass(frozen=True)
class LedConfig:
    """Immutable LED layout: one slot per LED index on the controller."""
    aspect_ratio: float
    leds: Tuple[LedSlot, ...]

    def __len__(self):
        return len(self.leds)

    @property
    def placed(self) -> List[int]:
        """Indexes of LEDs that have a position."""
        return [i for i, slot in enumerate(self.leds) if slot is not None]

    @classmethod
    def unplaced(cls, num_leds: int, aspect_ratio: float = 1.0) -> 'LedConfig':
        return cls(aspect_ratio, (None,) * num_leds)

    def to_json(self) -> dict:
        return {
            'aspect_ratio': self.aspect_ratio,
            'leds': [None if slot is None else {'x': slot[0], 'y': slot[1]}
                     for slot in self.leds],
        }


def _parse_coord(value, what: str, index: int) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"LED {index}: {what} must be a number, got {value!r}")
    value = float(value)
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"LED {index}: {what}={value} outside [0, 1]")
    return value


def _parse_slot(raw, index: int) -> LedSlot:
    if raw is None:
        return None
    if isinstance(raw, dict):
        if 'x' not in raw or 'y' not in raw:
            raise ConfigError(f"LED {index}: position needs both x and y")
        x, y = raw['x'], raw['y']
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        x, y = raw
    else:
        raise ConfigError(f"LED {index}: unrecognized position {raw!r}")
    return (_parse_coord(x, 'x', index), _parse_coord(y, 'y', index))


def parse_led_config(data) -> LedConfig:
    """Build an LedConfig from already-decoded JSON."""
    if isinstance(data, dict):
        if 'leds' not in data:
            raise ConfigError("LED config has no 'leds' list")
        aspect, raw_leds = data.get('aspect_ratio', 1.0), data['leds']
    elif isinstance(data, (list, tuple)) and len(data) == 2:
        aspect, raw_leds = data
    else:
        raise ConfigError("LED config must be an object or an [aspect_ratio, leds] pair")

    if isinstance(aspect, bool) or not isinstance(aspect, (int, float)):
        raise ConfigError(f"aspect_ratio must be a number, got {aspect!r}")
    if not isinstance(raw_leds, list):
        raise ConfigError("'leds' must be a list")

    leds = tuple(_parse_slot(raw, i) for i, raw in enumerate(raw_leds))
    return LedConfig(float(aspect), leds)


def load_led_config(path) -> LedConfig:
    """Read the configurator's JSON file. Any problem is a ConfigError."""
    try:
        with open(path) as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read LED config {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"LED config {path} is not valid JSON: {e}") from e

    config = parse_led_config(data)
    logger.info("Loaded %d LEDs (%d placed) from %s",
                len(config), len(config.placed), path)
    return config


def save_led_config(config: LedConfig, path):
    with open(path, 'w') as f:
        json.dump(config.to_json(), f, indent=2)
    logger.info("Wrote %d LEDs to %s", len(config), path)


# ── Painting ──────────────────────────────────────────────────────

def target_freq(x: float, max_freq: float) -> int:
    """Whole-Hertz frequency an LED at horizontal position x listens to.

    x == 1.0 lands on max_freq itself, which no half-open range contains,
    so it is pulled down onto the top whole Hertz below max_freq.
    """
    freq = int(math.floor(x * max_freq))
    return max(0, min(freq, int(max_freq) - 1))


def find_bin(bins: Sequence[Bin], freq: int) -> Optional[Bin]:
    """First bin whose range contains `freq`."""
    for b in bins:
        if b.range.contains(freq):
            return b
    return None


def paint(config: LedConfig, bins: Sequence[Bin], max_freq: float,
          threshold: float = 1.0, color: Color = RED, strict: bool = True) -> List[Color]:
    """Turn one set of bins into a frame, one color per LED slot.

    Args:
        config: LED layout.
        bins: output of bin_spectrum() for the current window.
        max_freq: half the sample rate.
        threshold: bins louder than this light their LEDs.
        color: color for lit LEDs; everything else is OFF.
        strict: raise BinCoverageError when a placed LED falls outside every
                bin. With strict=False the LED is painted OFF instead.
    """
    frame = []
    for index, slot in enumerate(config.leds):
        if slot is None:
            frame.append(OFF)
            continue
        freq = target_freq(slot[0], max_freq)
        b = find_bin(bins, freq)
        if b is None:
            if strict:
                raise BinCoverageError(index, freq)
            logger.debug("LED %d: no bin covers %d Hz, painting off", index, freq)
            frame.append(OFF)
            continue
        frame.append(color if b.magnitude > threshold else OFF)
    return frame


def check_coverage(config: LedConfig, ranges: Sequence[BinRange], max_freq: float) -> List[int]:
    """Indexes of placed LEDs whose target frequency no range covers."""
    missing = []
    for index in config.placed:
        freq = target_freq(config.leds[index][0], max_freq)
        if not any(r.contains(freq) for r in ranges):
            missing.append(index)
    return missing
