"""
Lighting sinks: where finished frames go.

Every sink has the same small interface so the pipeline doesn't care whether
it's talking to an OpenRGB server, an Arduino on a serial port, or just the
terminal:

  led_count             — number of addressable LEDs
  update_all(colors)    — replace the whole frame
  update_one(i, color)  — change a single LED
  close()               — blank the LEDs and let go of the connection

Sinks raise SinkError when an update doesn't make it. Deciding whether to
retry is the pipeline's job, not the sink's.
"""

import logging
import sys
import time
from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np
from openrgb import OpenRGBClient
from openrgb.utils import ModeColors, RGBColor

from vibesrgb.errors import SinkError
from vibesrgb.leds import OFF, Color
from vibesrgb.settings import BAUD_RATE, OPENRGB_PORT, START_BYTE_1, START_BYTE_2

logger = logging.getLogger(__name__)


class LightingSink(ABC):
    """Base class for all LED outputs."""

    @property
    @abstractmethod
    def led_count(self) -> int:
        """Number of LEDs this sink addresses."""

    @abstractmethod
    def update_all(self, colors: Sequence[Color]):
        """Send a full frame. len(colors) must equal led_count."""

    @abstractmethod
    def update_one(self, index: int, color: Color):
        """Set a single LED."""

    def close(self):
        """Blank everything. Subclasses that hold a connection extend this."""
        try:
            self.update_all([OFF] * self.led_count)
        except SinkError as e:
            logger.warning("Could not blank LEDs on close: %s", e)

    def _check_frame(self, colors: Sequence[Color]):
        if len(colors) != self.led_count:
            raise SinkError(f"frame has {len(colors)} colors, controller has {self.led_count} LEDs")

    def _check_index(self, index: int):
        if not 0 <= index < self.led_count:
            raise SinkError(f"LED index {index} out of range 0..{self.led_count - 1}")


class OpenRGBSink(LightingSink):
    """One controller on an OpenRGB SDK server.

    Per-LED colors only reach the hardware while the controller is in a mode
    that takes them (usually "Direct"), so the sink switches to one on open.
    """

    def __init__(self, client, controller: int = 0):
        self.client = client
        self.controller = controller
        try:
            self.device = client.devices[controller]
        except IndexError as e:
            raise SinkError(f"OpenRGB has no controller {controller} "
                            f"({len(client.devices)} found)") from e
        self._led_count = len(self.device.leds)
        self._use_per_led_mode()
        logger.info("OpenRGB controller %d: %s (%d LEDs)",
                    controller, self.device.name, self._led_count)

    def _use_per_led_mode(self):
        modes = self.device.modes
        active = modes[self.device.active_mode] if 0 <= self.device.active_mode < len(modes) else None
        if active is not None and active.color_mode == ModeColors.PER_LED:
            return
        per_led = [m for m in modes if m.color_mode == ModeColors.PER_LED]
        if not per_led:
            raise SinkError(f"OpenRGB controller {self.device.name} has no per-LED mode")
        # Direct first, then any other per-LED mode
        mode = next((m for m in per_led if m.name.lower() == 'direct'), per_led[0])
        try:
            self.device.set_mode(mode)
        except OSError as e:
            raise SinkError(f"OpenRGB could not switch to mode {mode.name}: {e}") from e
        logger.info("OpenRGB controller %s: switched to mode %s", self.device.name, mode.name)

    @classmethod
    def connect(cls, host: str = 'localhost', port: int = OPENRGB_PORT,
                controller: int = 0, name: str = 'vibesrgb') -> 'OpenRGBSink':
        try:
            client = OpenRGBClient(host, port, name)
        except OSError as e:
            raise SinkError(f"cannot reach OpenRGB at {host}:{port}: {e}") from e
        return cls(client, controller)

    @property
    def led_count(self) -> int:
        return self._led_count

    def update_all(self, colors: Sequence[Color]):
        self._check_frame(colors)
        try:
            self.device.set_colors([RGBColor(*c) for c in colors], fast=True)
        except OSError as e:
            raise SinkError(f"OpenRGB update failed: {e}") from e

    def update_one(self, index: int, color: Color):
        self._check_index(index)
        try:
            self.device.leds[index].set_color(RGBColor(*color), fast=True)
        except OSError as e:
            raise SinkError(f"OpenRGB update failed: {e}") from e

    def close(self):
        super().close()
        try:
            self.client.disconnect()
        except OSError as e:
            logger.debug("OpenRGB disconnect: %s", e)


class SerialSink(LightingSink):
    """Sends RGB frames to an Arduino over serial.

    Packet: 0xFF 0xAA followed by num_leds * 3 bytes of RGB.
    The firmware has no single-LED command, so update_one() patches the last
    frame sent and resends all of it.
    """

    def __init__(self, port, num_leds: int, baud_rate: int = BAUD_RATE, ser=None):
        self.num_leds = num_leds
        self.last_frame = np.zeros((num_leds, 3), dtype=np.uint8)

        if ser is not None:
            self.ser = ser
            return

        import serial
        try:
            if port.startswith('rfc2217://'):
                self.ser = serial.serial_for_url(port, baudrate=baud_rate, timeout=1)
            else:
                self.ser = serial.Serial(port, baud_rate, timeout=1)
                time.sleep(2)  # Arduino reset
            while self.ser.in_waiting:
                self.ser.readline()
        except serial.SerialException as e:
            raise SinkError(f"serial connection to {port} failed: {e}") from e
        logger.info("Serial LED output: %s (%d LEDs)", port, num_leds)

    @property
    def led_count(self) -> int:
        return self.num_leds

    def _send(self, frame: np.ndarray):
        packet = bytearray([START_BYTE_1, START_BYTE_2])
        packet.extend(frame.flatten().tobytes())
        try:
            self.ser.write(packet)
            self.ser.flush()
            # Drain Arduino chatter (FPS stats, ready signals) so RX doesn't fill up
            if self.ser.in_waiting:
                self.ser.read(self.ser.in_waiting)
        except (OSError, ValueError) as e:
            raise SinkError(f"serial write failed: {e}") from e
        self.last_frame = frame

    def update_all(self, colors: Sequence[Color]):
        self._check_frame(colors)
        self._send(np.array(colors, dtype=np.uint8).reshape(self.num_leds, 3))

    def update_one(self, index: int, color: Color):
        self._check_index(index)
        frame = self.last_frame.copy()
        frame[index] = color
        self._send(frame)

    def close(self):
        super().close()
        self.ser.close()


class TerminalSink(LightingSink):
    """No hardware: draws the frame as a row of characters on one line."""

    LIT = '█'
    DARK = '·'

    def __init__(self, num_leds: int, stream=None):
        self.num_leds = num_leds
        self.stream = stream or sys.stdout
        self.frame: List[Color] = [OFF] * num_leds

    @property
    def led_count(self) -> int:
        return self.num_leds

    def _draw(self):
        bar = ''.join(self.DARK if c == OFF else self.LIT for c in self.frame)
        self.stream.write('\r  ' + bar + '   ')
        self.stream.flush()

    def update_all(self, colors: Sequence[Color]):
        self._check_frame(colors)
        self.frame = list(colors)
        self._draw()

    def update_one(self, index: int, color: Color):
        self._check_index(index)
        self.frame[index] = color
        self._draw()

    def close(self):
        super().close()
        self.stream.write('\n')
