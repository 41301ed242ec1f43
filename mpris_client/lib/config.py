"""
Shared configuration loader for the MPRIS client and its player service.

Loads a single JSON config file.  Search order:
  1. $MPRIS_CLIENT_CONFIG           (explicit override)
  2. /etc/mpris-client/config.json  (system install)
  3. config.json                    (CWD — handy for local dev)

Usage:
    from mpris_client.lib.config import cfg

    bus_name      = cfg("player", "bus_name", default="org.mpris.MediaPlayer2.vlc")
    tick_interval = cfg("position", "tick_interval", default=1.0)
    service       = cfg("service")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SYSTEM_PATH = "/etc/mpris-client/config.json"

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
BUS_TYPES = ("session",)


def _search_paths() -> list[str]:
    paths = []
    override = os.environ.get("MPRIS_CLIENT_CONFIG")
    if override:
        paths.append(override)
    paths.extend([
        _SYSTEM_PATH,
        "config.json",
    ])
    return paths


def _section(config: dict, name: str, path: str) -> dict:
    section = config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning("Config %s: '%s' should be an object, got %s", path, name, type(section).__name__)
        return {}
    return section


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    if not isinstance(config, dict):
        logger.warning("Config %s: top level should be an object, ignoring it", path)
        return
    bus_name = _section(config, "player", path).get("bus_name")
    if bus_name and not (isinstance(bus_name, str) and bus_name.startswith(MPRIS_PREFIX)):
        logger.warning("Config %s: player.bus_name '%s' is outside the %s* namespace",
                       path, bus_name, MPRIS_PREFIX)
    tick = _section(config, "position", path).get("tick_interval")
    if tick is not None:
        try:
            if float(tick) <= 0:
                logger.warning("Config %s: position.tick_interval must be positive, got %s", path, tick)
        except (TypeError, ValueError):
            logger.warning("Config %s: position.tick_interval is not a number: %r", path, tick)
    bus_type = _section(config, "bus", path).get("type", "session")
    if bus_type not in BUS_TYPES:
        logger.warning("Config %s: unknown bus.type '%s'", path, bus_type)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                loaded = json.load(f)
            logger.info("Config loaded from %s", path)
            _validate(loaded, path)
            _config = loaded if isinstance(loaded, dict) else {}
            return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.info("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("player")                         → config["player"]
    cfg("player", "bus_name")             → config["player"]["bus_name"]
    cfg("position", "tick_interval", default=1.0)
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
