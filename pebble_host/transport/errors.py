# pebble_host/transport/errors.py
from __future__ import annotations

class DisplayError(Exception):
    """Base class for remote display transport failures."""

class DisplayConnectError(DisplayError):
    pass

class DisplayIOError(DisplayError):
    pass

class DisplayHandshakeError(DisplayConnectError):
    """The endpoint accepted the connection but did not complete the RFB handshake."""
