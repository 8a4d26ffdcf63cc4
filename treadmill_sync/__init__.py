"""treadmill-sync: websocket treadmill link with randomised scenarios."""

__version__ = "0.1.0"
