"""Audio-reactive lighting: live audio spectrum → OpenRGB LED frames."""

__version__ = '0.1.0'
