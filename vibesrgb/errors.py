"""Exceptions raised by the audio → LED pipeline."""


class VibesError(Exception):
    """Base class for everything this package raises on purpose."""


class ConfigError(VibesError):
    """Settings file, LED file or binning parameters are unusable."""


class DeviceNotFoundError(VibesError):
    """No audio input device matched the requested name."""


class SinkError(VibesError):
    """The lighting controller could not be reached or rejected an update."""


class BinCoverageError(VibesError):
    """A placed LED maps to a frequency that no bin covers."""

    def __init__(self, led_index: int, freq: int):
        super().__init__(f"LED {led_index}: no bin covers {freq} Hz")
        self.led_index = led_index
        self.freq = freq
