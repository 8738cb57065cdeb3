"""Thread-safe building blocks: RCU map, broadcast ring, channels, deferred release, hazard pointers and cooperative tasks."""

__version__ = "0.1.0"