"""
Sample-level primitives shared by the capture callback and the pipeline.

  mix_frame / mix_block — collapse interleaved multi-channel audio to mono
  WindowAccumulator     — collects mono chunks, hands out fixed-length windows

The capture callback runs on the audio driver's thread, so everything it
touches here has to be fast and must not wait on the analysis side:

    accum = WindowAccumulator(window_len)

    def audio_callback(indata, frames, time_info, status):
        accum.append(mix_block(indata))

    # main loop, once per window period
    window = accum.drain_if_ready()
    if window is not None:
        ...
"""

import threading

import numpy as np


def mix_frame(values) -> float:
    """Mean of one frame's channel values, 0.0 for an empty frame."""
    count = len(values)
    if count == 0:
        return 0.0
    return float(sum(values)) / count


def mix_block(block: np.ndarray, channels: int = None) -> np.ndarray:
    """Mix a block of audio frames down to one float32 sample per frame.

    Args:
        block: either (frames, channels) as sounddevice delivers it, or a
               flat interleaved array (then `channels` is required).
        channels: channel count for flat input.
    """
    block = np.asarray(block, dtype=np.float32)
    if block.ndim == 1:
        if channels is None:
            return block.copy()
        if channels <= 0:
            return np.zeros(0, dtype=np.float32)
        usable = len(block) - len(block) % channels
        block = block[:usable].reshape(-1, channels)
    if block.shape[1] == 0:
        return np.zeros(block.shape[0], dtype=np.float32)
    return block.mean(axis=1, dtype=np.float32)


class WindowAccumulator:
    """Lock-protected buffer between the capture thread and the pipeline.

    append() keeps every chunk it is given. drain_if_ready() hands back the
    newest `window_len` samples once that many have arrived and then throws
    the whole buffer away, so consecutive windows never overlap and a burst
    of late audio only ever costs the older part of the burst.

    The lock only guards list bookkeeping; concatenating the window happens
    after the chunk list has been swapped out.
    """

    def __init__(self, window_len: int):
        if window_len < 1:
            raise ValueError(f"window_len must be positive, got {window_len}")
        self.window_len = window_len
        self._chunks = []
        self._count = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        """Samples currently buffered."""
        with self._lock:
            return self._count

    def append(self, samples: np.ndarray):
        """Queue a chunk of mono samples. Called from the audio thread."""
        if len(samples) == 0:
            return
        with self._lock:
            self._chunks.append(samples)
            self._count += len(samples)

    def drain_if_ready(self):
        """Return the latest window and clear the buffer, or None if short."""
        with self._lock:
            if self._count < self.window_len:
                return None
            chunks = self._chunks
            self._chunks = []
            self._count = 0

        # Walk back from the newest chunk until we have enough samples
        needed = self.window_len
        tail = []
        for chunk in reversed(chunks):
            if len(chunk) >= needed:
                tail.append(chunk[len(chunk) - needed:])
                break
            tail.append(chunk)
            needed -= len(chunk)
        tail.reverse()
        return np.concatenate(tail).astype(np.float32, copy=False)
