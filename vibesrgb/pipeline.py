"""
The fixed-rate control loop: window → spectrum → bins → LED frame → sink.

Architecture:
  Capture thread: mix_block() + WindowAccumulator.append(), nothing else
  Main loop:      drain → FFT → binning → paint → deliver, once per window

The period is the window duration, so in steady state every tick finds
exactly one fresh window. A tick that finds too little audio does nothing.

Sink delivery runs on a single worker thread with a deadline so a stuck
controller can't stall the loop. Policy is skip-if-slow: while a frame is
still in flight, newer frames are dropped rather than queued, and after a
failure frames are dropped for an exponentially growing backoff interval.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import List, Optional

import numpy as np

from vibesrgb.errors import BinCoverageError, ConfigError, SinkError
from vibesrgb.leds import RED, Color, LedConfig, check_coverage, paint
from vibesrgb.settings import BACKOFF_BASE, BACKOFF_MAX, SINK_TIMEOUT, THRESHOLD
from vibesrgb.signals import WindowAccumulator
from vibesrgb.spectrum import Binning, bin_spectrum, compute_spectrum, describe

logger = logging.getLogger(__name__)


def window_length(window_ms: float, sample_rate: float) -> int:
    """Samples per analysis window for a given duration and sample rate."""
    n = int(round(window_ms / 1000.0 * sample_rate))
    if n < 2:
        raise ConfigError(f"{window_ms} ms at {sample_rate} Hz is only {n} samples")
    return n


class FrameDelivery:
    """Hands frames to a sink with a deadline, dropping instead of queueing."""

    def __init__(self, sink, timeout: float = SINK_TIMEOUT,
                 backoff_base: float = BACKOFF_BASE, backoff_max: float = BACKOFF_MAX,
                 clock=time.monotonic):
        self.sink = sink
        self.timeout = timeout
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.clock = clock
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='sink')
        self._inflight = None

        self.retry_at = 0.0
        self.failures_in_row = 0
        self.sent = 0
        self.dropped = 0
        self.failures = 0

    def _failed(self, reason: str):
        self.failures += 1
        self.failures_in_row += 1
        delay = min(self.backoff_base * 2 ** (self.failures_in_row - 1), self.backoff_max)
        self.retry_at = self.clock() + delay
        logger.warning("Frame delivery failed (%s); dropping frames for %.2fs", reason, delay)

    def deliver(self, colors: List[Color]) -> bool:
        """Send one frame. Returns True if the sink accepted it in time."""
        if self._inflight is not None:
            if not self._inflight.done():
                self.dropped += 1
                return False
            self._inflight = None

        if self.clock() < self.retry_at:
            self.dropped += 1
            return False

        future = self._executor.submit(self.sink.update_all, colors)
        try:
            future.result(timeout=self.timeout)
        except FutureTimeout:
            self._inflight = future
            self._failed(f"no answer within {self.timeout:g}s")
            return False
        except SinkError as e:
            self._failed(str(e))
            return False
        except Exception as e:
            logger.exception("Sink raised an unexpected error")
            self._failed(repr(e))
            return False

        self.sent += 1
        self.failures_in_row = 0
        self.retry_at = 0.0
        return True

    def close(self):
        """Blank and release the sink, waiting at most `timeout` for it.

        The close runs on the delivery worker, queued behind any frame still
        in flight, so the sink never sees two calls at once. If it doesn't
        finish in time it is cancelled or abandoned.
        """
        future = self._executor.submit(self.sink.close)
        try:
            future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning("Sink did not close within %gs; leaving it as is", self.timeout)
        except Exception:
            logger.exception("Sink failed to close")
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)


class Pipeline:
    """Turns drained windows into LED frames and pushes them to the sink.

    Args:
        accumulator: shared buffer the capture side appends to.
        sample_rate: capture sample rate in Hz.
        leds: LED layout, same length as the sink.
        binning: Linear, Logarithmic or Ranges.
        delivery: FrameDelivery wrapping the sink.
        threshold: bin magnitude above which an LED lights.
        color: color of a lit LED.
        brightness: 0-1 multiplier applied to every frame.
    """

    def __init__(self, accumulator: WindowAccumulator, sample_rate: float,
                 leds: LedConfig, binning: Binning, delivery: FrameDelivery,
                 threshold: float = THRESHOLD, color: Color = RED,
                 brightness: float = 1.0):
        self.accumulator = accumulator
        self.sample_rate = sample_rate
        self.max_freq = sample_rate / 2.0
        self.leds = leds
        self.binning = binning
        self.delivery = delivery
        self.threshold = threshold
        self.color = color
        self.brightness = brightness
        self.period = accumulator.window_len / sample_rate
        self.strict = binning.covers_spectrum

        self.ticks = 0
        self.frames = 0
        self.lit = 0

        sink_leds = delivery.sink.led_count
        if len(leds) != sink_leds:
            raise ConfigError(f"LED config has {len(leds)} LEDs, controller has {sink_leds}")
        self._check_layout()

    def _check_layout(self):
        ranges = self.binning.ranges(self.max_freq)
        missing = check_coverage(self.leds, ranges, self.max_freq)
        if not missing:
            return
        if self.strict:
            raise ConfigError(f"{describe(self.binning)} leaves LEDs {missing} "
                              f"without a bin at {self.sample_rate:.0f} Hz")
        logger.warning("LEDs %s fall outside every custom range and will stay off", missing)

    def process(self, window: np.ndarray) -> List[Color]:
        """Run one window through FFT, binning and painting."""
        spectrum = compute_spectrum(window)
        bins = bin_spectrum(spectrum, self.sample_rate, self.binning)
        try:
            frame = paint(self.leds, bins, self.max_freq,
                          threshold=self.threshold, color=self.color, strict=self.strict)
        except BinCoverageError:
            logger.error("Bins %s do not cover the LED layout",
                         [tuple(b.range) for b in bins])
            raise
        if self.brightness < 1.0:
            frame = [tuple(int(c * self.brightness) for c in rgb) for rgb in frame]
        return frame

    def tick(self) -> Optional[List[Color]]:
        """One period: process and deliver a window if one is ready."""
        self.ticks += 1
        window = self.accumulator.drain_if_ready()
        if window is None:
            return None
        frame = self.process(window)
        self.frames += 1
        self.lit = sum(1 for c in frame if c != (0, 0, 0))
        self.delivery.deliver(frame)
        return frame

    def run(self, stop: threading.Event = None):
        """Tick every `period` seconds until `stop` is set.

        Uses absolute time targets so processing time doesn't accumulate as
        drift; if a tick overruns, the schedule restarts from now instead of
        trying to catch up.
        """
        stop = stop or threading.Event()
        logger.info("Pipeline running: %d-sample windows every %.1f ms, %s",
                    self.accumulator.window_len, self.period * 1000, describe(self.binning))

        next_tick = time.monotonic()
        while not stop.is_set():
            self.tick()

            next_tick += self.period
            sleep_time = next_tick - time.monotonic()
            if sleep_time > 0:
                stop.wait(sleep_time)
            else:
                # Behind schedule, reset to prevent backlog
                next_tick = time.monotonic()

    def get_diagnostics(self) -> dict:
        return {
            'ticks': self.ticks,
            'frames': self.frames,
            'lit': self.lit,
            'sent': self.delivery.sent,
            'dropped': self.delivery.dropped,
            'failures': self.delivery.failures,
        }
