"""No-contact recovery progression service."""

__version__ = "1.0.0"
