"""
Audio sources that feed a WindowAccumulator.

  LiveCapture — sounddevice input stream on a named device (e.g. a loopback
                "Stereo Mix" or BlackHole device)
  WavPlayback — plays a WAV file into the accumulator at real-time pace, for
                testing effects without a live source

Both run on their own thread (the audio driver's, or a playback thread) and
only ever call mix_block() and accumulator.append() there.
"""

import logging
import threading
import time

try:
    import sounddevice as sd
except OSError:
    sd = None  # PortAudio not available (headless server)
import soundfile as sf

from vibesrgb.errors import ConfigError, DeviceNotFoundError
from vibesrgb.settings import CHUNK_SIZE
from vibesrgb.signals import WindowAccumulator, mix_block

logger = logging.getLogger(__name__)


def _require_portaudio():
    if sd is None:
        raise DeviceNotFoundError("no audio input: the PortAudio library is not installed")


def list_input_devices():
    """(index, name, channels, default sample rate) for every input device."""
    _require_portaudio()
    devices = []
    for i, d in enumerate(sd.query_devices()):
        if d['max_input_channels'] > 0:
            devices.append((i, d['name'], d['max_input_channels'], d['default_samplerate']))
    return devices


def find_input_device(name: str) -> int:
    """Index of the first input device whose name contains `name` (any case)."""
    wanted = name.lower()
    for i, dev_name, _, _ in list_input_devices():
        if wanted in dev_name.lower():
            return i
    raise DeviceNotFoundError(f"no input device matching '{name}'")


class LiveCapture:
    """Captures from an input device into an accumulator.

    The device's own default sample rate and input channel count are used;
    the accumulator's window length has to be derived from `sample_rate`
    before the stream is started.
    """

    def __init__(self, device_id: int):
        _require_portaudio()
        info = sd.query_devices(device_id)
        self.device_id = device_id
        self.name = info['name']
        self.channels = int(info['max_input_channels'])
        self.sample_rate = float(info['default_samplerate'])
        self.status_count = 0
        self._stream = None

    def _callback(self, accumulator: WindowAccumulator):
        def audio_callback(indata, frames, time_info, status):
            if status:
                # Overflows and the like; the stream keeps going
                self.status_count += 1
                logger.warning("Audio: %s", status)
            accumulator.append(mix_block(indata))
        return audio_callback

    def start(self, accumulator: WindowAccumulator):
        self._stream = sd.InputStream(
            device=self.device_id,
            channels=self.channels,
            samplerate=self.sample_rate,
            dtype='float32',
            callback=self._callback(accumulator),
        )
        self._stream.start()
        logger.info("Capturing from %s (#%d, %d ch @ %.0f Hz)",
                    self.name, self.device_id, self.channels, self.sample_rate)

    def stop(self):
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None


class WavPlayback:
    """Feeds a WAV file to an accumulator in CHUNK_SIZE blocks, paced to the
    file's own sample rate.
    """

    def __init__(self, path, chunk_size: int = CHUNK_SIZE):
        try:
            audio, sr = sf.read(path, dtype='float32', always_2d=True)
        except (RuntimeError, OSError) as e:
            raise ConfigError(f"cannot read WAV {path}: {e}") from e
        self.path = path
        self.audio = audio
        self.channels = audio.shape[1]
        self.sample_rate = float(sr)
        self.chunk_size = chunk_size
        self.finished = threading.Event()
        self._stop = threading.Event()
        self._thread = None

    @property
    def duration(self) -> float:
        return len(self.audio) / self.sample_rate

    def _play(self, accumulator: WindowAccumulator):
        chunk_time = self.chunk_size / self.sample_rate
        next_time = time.monotonic()
        for start in range(0, len(self.audio), self.chunk_size):
            if self._stop.is_set():
                break
            accumulator.append(mix_block(self.audio[start:start + self.chunk_size]))
            next_time += chunk_time
            sleep_time = next_time - time.monotonic()
            if sleep_time > 0:
                time.sleep(sleep_time)
        self.finished.set()

    def start(self, accumulator: WindowAccumulator):
        logger.info("Playing %s (%.1fs, %d ch @ %.0f Hz)",
                    self.path, self.duration, self.channels, self.sample_rate)
        self._thread = threading.Thread(target=self._play, args=(accumulator,),
                                        name='wav-playback', daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
