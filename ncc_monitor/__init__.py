"""Serial-number leak monitor."""

__version__ = "0.1.0"
