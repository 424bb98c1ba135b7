"""ParkPulse - site analytics for the national parks guide."""

__version__ = "0.1.0"
