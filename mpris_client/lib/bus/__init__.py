"""
Bus bindings for the MPRIS client.

The factory function ``create_bus`` reads config.json and returns the right
binding.

Supported types:
  - ``session`` – the D-Bus session bus via pydbus (default, needs the
                  ``dbus`` extra: pydbus + PyGObject)
"""

import logging

from ..config import cfg
from .base import Bus, Endpoint

logger = logging.getLogger(__name__)

__all__ = [
    "Bus",
    "Endpoint",
    "create_bus",
]


def create_bus() -> Bus:
    """Create the bus binding selected by config.json.

    Reads from config.json "bus" section:
      type  – "session" (default)
    """
    bus_type = cfg("bus", "type", default="session")

    if bus_type == "session":
        # Imported lazily: pydbus pulls in GLib, which tests never need.
        from .pydbus_bus import PydbusBus
        logger.info("Using D-Bus session bus")
        return PydbusBus()

    raise ValueError(f"unknown bus.type {bus_type!r}")
