"""
Spectrum analysis and frequency binning.

A window of mono samples goes through a plain forward FFT (no Hann window,
the raw samples are transformed as-is) and only the non-redundant lower half
is kept. The binning strategies then carve [0, max_freq) into Hertz ranges:

  Linear(n)          — n equal-width ranges
  Logarithmic(base)  — ranges that grow by `base` each step, starting at 1 Hz
  Ranges([...])      — exactly what the caller passes in

All three share the same aggregation in bin_spectrum(): the complex FFT
values inside a range are summed first and the magnitude is taken of the
sum, not the sum of magnitudes. Components with opposing phase cancel.

Hertz ranges and spectrum-index ranges are both BinRange; bin_spectrum is the
only place that converts one into the other.
"""

import math
from dataclasses import dataclass
from typing import List, NamedTuple, Tuple, Union

import numpy as np

from vibesrgb.errors import ConfigError


class BinRange(NamedTuple):
    """Half-open integer interval [start, end)."""
    start: int
    end: int

    def contains(self, value: int) -> bool:
        return self.start <= value < self.end

    def scale(self, factor: float) -> 'BinRange':
        """Multiply both ends by `factor`, truncating toward zero."""
        return BinRange(int(self.start * factor), int(self.end * factor))

    @property
    def width(self) -> int:
        return self.end - self.start


class Bin(NamedTuple):
    """A Hertz range and the magnitude of the spectrum summed over it."""
    range: BinRange
    magnitude: float


def compute_spectrum(window: np.ndarray) -> np.ndarray:
    """Forward FFT of a real window, truncated to len(window) // 2 values."""
    window = np.asarray(window, dtype=np.float32)
    n = len(window)
    return np.fft.fft(window)[:n // 2]


def _round_half_up(value: float) -> float:
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class Linear:
    """`bins` equal-width ranges over [0, max_freq)."""
    bins: int = 10

    covers_spectrum = True

    def __post_init__(self):
        if int(self.bins) != self.bins or self.bins < 1:
            raise ConfigError(f"linear binning needs a positive bin count, got {self.bins}")

    def ranges(self, max_freq: float) -> List[BinRange]:
        n = int(self.bins)
        return [BinRange(int(i * max_freq / n), int((i + 1) * max_freq / n))
                for i in range(n)]


@dataclass(frozen=True)
class Logarithmic:
    """Geometrically growing ranges: 1, base, base², ... Hz up to max_freq.

    Each boundary is rounded to a whole Hertz, so bases close to 1 would
    round straight back onto the previous boundary and never advance; those
    are rejected when the ranges are generated.
    """
    base: float = 2.0

    covers_spectrum = True

    def __post_init__(self):
        if not self.base > 1:
            raise ConfigError(f"logarithmic binning needs base > 1, got {self.base}")

    def ranges(self, max_freq: float) -> List[BinRange]:
        base = float(self.base)
        base_log = math.log(base, base)
        bins = []
        current = 1.0
        while current < max_freq:
            nxt = min(_round_half_up(base ** ((math.log(current, base) + 1) / base_log)),
                      max_freq)
            if nxt <= current:
                raise ConfigError(
                    f"logarithmic base {base} does not advance past {current:g} Hz")
            bins.append(BinRange(int(current), int(nxt)))
            current = nxt
        return bins


@dataclass(frozen=True)
class Ranges:
    """Explicit Hertz ranges. Gaps and overlaps are the caller's business."""
    ranges_hz: Tuple[BinRange, ...] = ()

    covers_spectrum = False

    def __post_init__(self):
        object.__setattr__(self, 'ranges_hz',
                           tuple(BinRange(int(s), int(e)) for s, e in self.ranges_hz))

    def ranges(self, max_freq: float) -> List[BinRange]:
        return list(self.ranges_hz)


Binning = Union[Linear, Logarithmic, Ranges]


def aggregate(spectrum: np.ndarray, index_range: BinRange) -> float:
    """Magnitude of the complex sum of spectrum[index_range]."""
    start = max(0, index_range.start)
    end = min(len(spectrum), index_range.end)
    if end <= start:
        return 0.0
    return float(abs(np.sum(spectrum[start:end])))


def bin_spectrum(spectrum: np.ndarray, sample_rate: float, binning: Binning) -> List[Bin]:
    """Group a half spectrum into Hertz bins using `binning`.

    Args:
        spectrum: output of compute_spectrum().
        sample_rate: rate the window was captured at; max_freq is half of it.
        binning: Linear, Logarithmic or Ranges.

    Returns:
        One Bin per generated range, in generation order.
    """
    max_freq = sample_rate / 2.0
    scale = len(spectrum) / max_freq
    return [Bin(hz, aggregate(spectrum, hz.scale(scale)))
            for hz in binning.ranges(max_freq)]


# ── Config helpers ────────────────────────────────────────────────

def binning_from_config(cfg) -> Binning:
    """Build a binning strategy from the `binning:` block of a settings file."""
    if isinstance(cfg, str):
        return parse_binning(cfg)
    if not isinstance(cfg, dict):
        raise ConfigError(f"binning must be a mapping, got {cfg!r}")
    strategy = str(cfg.get('strategy', 'linear')).lower()
    try:
        if strategy == 'linear':
            return Linear(int(cfg.get('bins', 10)))
        if strategy in ('log', 'logarithmic'):
            return Logarithmic(float(cfg.get('base', 2)))
        if strategy == 'ranges':
            return Ranges(tuple((int(s), int(e)) for s, e in cfg['ranges']))
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"bad {strategy} binning {cfg!r}: {e}") from e
    raise ConfigError(f"unknown binning strategy: {strategy}")


def parse_binning(text: str) -> Binning:
    """Parse the short CLI form: 'linear:10', 'log:2' or 'ranges:0-200,200-2000'."""
    strategy, _, arg = text.partition(':')
    strategy = strategy.strip().lower()
    try:
        if strategy == 'linear':
            return Linear(int(arg) if arg else 10)
        if strategy in ('log', 'logarithmic'):
            return Logarithmic(float(arg) if arg else 2.0)
        if strategy == 'ranges':
            pairs = []
            for part in arg.split(','):
                lo, hi = part.split('-')
                pairs.append((int(lo), int(hi)))
            return Ranges(tuple(pairs))
    except ValueError as e:
        raise ConfigError(f"bad binning '{text}': {e}") from e
    raise ConfigError(f"unknown binning strategy: {strategy}")


def describe(binning: Binning) -> str:
    if isinstance(binning, Linear):
        return f"linear ({binning.bins} bins)"
    if isinstance(binning, Logarithmic):
        return f"logarithmic (base {binning.base:g})"
    return f"{len(binning.ranges_hz)} custom ranges"
