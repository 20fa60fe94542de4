"""pulpa.work - voice journaling turn capture and conversation controller."""

__version__ = "0.1.0"
