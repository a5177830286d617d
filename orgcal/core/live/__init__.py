"""Live change notices for open client sessions."""

from .broadcaster import LiveBroadcaster, LiveSession  # noqa: F401

__all__ = ["LiveBroadcaster", "LiveSession"]
