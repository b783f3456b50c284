import threading

import numpy as np
import pytest

from vibesrgb.errors import SinkError
from vibesrgb.sinks import LightingSink


class RecordingSink(LightingSink):
    """Keeps every frame it is given instead of lighting anything."""

    def __init__(self, num_leds, fail=0, delay=0.0):
        self.num_leds = num_leds
        self.frames = []
        self.singles = []
        self.fail = fail      # number of upcoming update_all calls that raise
        self.delay = delay    # seconds each update_all blocks for
        self.release = threading.Event()
        self.closed = False

    @property
    def led_count(self):
        return self.num_leds

    def update_all(self, colors):
        if self.delay:
            self.release.wait(self.delay)
        if self.fail:
            self.fail -= 1
            raise SinkError("controller went away")
        self.frames.append(list(colors))

    def update_one(self, index, color):
        self.singles.append((index, color))

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def recording_sink():
    return RecordingSink


@pytest.fixture
def clock():
    return FakeClock()


def sine(freq, sample_rate, n, amplitude=1.0, phase=0.0):
    t = np.arange(n) / sample_rate
    return (amplitude * np.sin(2 * np.pi * freq * t + phase)).astype(np.float32)


@pytest.fixture
def make_sine():
    return sine
