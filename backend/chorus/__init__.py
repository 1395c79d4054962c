"""chorus: a multi-platform chat bot command engine."""

__version__ = "0.4.0"
