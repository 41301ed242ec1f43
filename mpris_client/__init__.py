"""
mpris-client — observe and steer MPRIS media players over D-Bus.

The interesting part is ``player.position``: it follows a player's playback
position in real time from change notifications, without polling.

  lib/       config loader, error taxonomy, bus bindings
  player/    descriptors, feeds, the position estimator, RemoteObjectHandle
  service.py HTTP + WebSocket service broadcasting the estimated position
"""

__version__ = "0.3.0"
