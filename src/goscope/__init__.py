"""goscope: regex-based structural analysis of Go source trees."""

__version__ = "0.1.0"
