"""
Session-bus binding over pydbus.

pydbus is blocking and delivers signals on a GLib main loop, so:
  * requests run in a small thread pool via ``run_in_executor``
  * one GLib main loop runs in a daemon thread; signal callbacks hand their
    values to per-subscription asyncio queues with ``call_soon_threadsafe``

A subscription ends when the remote name loses its owner (the player quit or
crashed), which ends the parsed feeds built on top of it.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

try:
    from gi.repository import GLib
    from pydbus import SessionBus
except ImportError as e:
    raise ImportError("pydbus/PyGObject not installed. Install with: pip install 'mpris-client[dbus]'") from e

from ..errors import InterfaceUnavailable, ParseError, TransportError, WriteRejected
from .base import Bus, Endpoint

logger = logging.getLogger(__name__)

PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"

# D-Bus error names that mean the connection, not the request, failed
_TRANSPORT_ERRORS = (
    "org.freedesktop.DBus.Error.ServiceUnknown",
    "org.freedesktop.DBus.Error.NoReply",
    "org.freedesktop.DBus.Error.Disconnected",
    "org.freedesktop.DBus.Error.Timeout",
    "org.freedesktop.DBus.Error.NameHasNoOwner",
)

# Thread pool for blocking pydbus calls
executor = ThreadPoolExecutor(max_workers=2)

_END = object()


def _is_transport_error(e: Exception) -> bool:
    message = str(e)
    return any(name in message for name in _TRANSPORT_ERRORS)


class _GLibLoop:
    """The single GLib main loop shared by every subscription."""

    _lock = threading.Lock()
    _thread: threading.Thread | None = None

    @classmethod
    def ensure_running(cls):
        with cls._lock:
            if cls._thread is not None and cls._thread.is_alive():
                return
            loop = GLib.MainLoop()
            cls._thread = threading.Thread(target=loop.run, name="glib-mainloop", daemon=True)
            cls._thread.start()
            logger.debug("GLib main loop started")


class PydbusEndpoint(Endpoint):

    def __init__(self, bus: "PydbusBus", bus_name: str, proxy, interface: str):
        self._bus = bus
        self._bus_name = bus_name
        self._proxy = proxy
        self._iface = proxy[interface]
        self.interface = interface

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, fn, *args)

    async def get_property(self, name):
        try:
            return await self._run(getattr, self._iface, name)
        except AttributeError:
            # Optional property the player does not list in its introspection
            raise ParseError(name, None, f"a property of {self.interface}") from None
        except GLib.Error as e:
            if _is_transport_error(e):
                raise TransportError(f"Get {self.interface}.{name} failed: {e}") from e
            raise ParseError(name, None, f"a readable property ({e})") from e

    async def set_property(self, name, value):
        try:
            await self._run(setattr, self._iface, name, value)
        except AttributeError:
            raise WriteRejected(f"{self.interface} has no property {name}") from None
        except GLib.Error as e:
            if _is_transport_error(e):
                raise TransportError(f"Set {self.interface}.{name} failed: {e}") from e
            raise WriteRejected(f"Set {self.interface}.{name} rejected: {e}") from e

    async def call(self, method, *args):
        def _call():
            return getattr(self._iface, method)(*args)

        try:
            return await self._run(_call)
        except AttributeError:
            raise WriteRejected(f"{self.interface} has no method {method}") from None
        except GLib.Error as e:
            if _is_transport_error(e):
                raise TransportError(f"{self.interface}.{method} failed: {e}") from e
            raise WriteRejected(f"{self.interface}.{method} rejected: {e}") from e

    def property_changes(self, name):
        loop = asyncio.get_running_loop()
        stream = _SignalStream(self._bus_name, loop)

        def on_changed(interface, changed, invalidated):
            if interface != self.interface:
                return
            if name in changed:
                stream.push(changed[name])
            elif name in invalidated:
                # Value not carried in the signal, fetch it (we are on the GLib thread)
                try:
                    stream.push(getattr(self._iface, name))
                except GLib.Error as e:
                    logger.debug("Refetch of invalidated %s failed: %s", name, e)

        stream.attach(self._proxy[PROPERTIES_IFACE].PropertiesChanged.connect(on_changed))
        stream.attach(self._bus.watch_owner(self._bus_name, stream.end))
        _GLibLoop.ensure_running()
        return stream

    def signals(self, name):
        loop = asyncio.get_running_loop()
        stream = _SignalStream(self._bus_name, loop)

        def on_signal(*args):
            stream.push(tuple(args))

        stream.attach(getattr(self._iface, name).connect(on_signal))
        stream.attach(self._bus.watch_owner(self._bus_name, stream.end))
        _GLibLoop.ensure_running()
        return stream


class _SignalStream:
    """Async iterator fed from GLib callbacks.  Live from construction."""

    def __init__(self, bus_name, loop):
        self._bus_name = bus_name
        self._loop = loop
        self._queue = asyncio.Queue()
        self._subscriptions = []
        self._closed = False

    def attach(self, subscription):
        self._subscriptions.append(subscription)

    def push(self, item):
        # Called on the GLib thread
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def end(self):
        self.push(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            logger.info("%s left the bus", self._bus_name)
            self.close()
            raise StopAsyncIteration
        return item

    async def aclose(self):
        self.close()

    def close(self):
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription.disconnect()
        self._subscriptions.clear()


class PydbusBus(Bus):
    """Session bus connection.  Endpoints share one connection."""

    def __init__(self):
        try:
            self.session = SessionBus()
        except GLib.Error as e:
            raise TransportError(f"cannot connect to the session bus: {e}") from e

    async def endpoint(self, bus_name, object_path, interface):
        loop = asyncio.get_running_loop()
        try:
            proxy = await loop.run_in_executor(executor, self.session.get, bus_name, object_path)
        except GLib.Error as e:
            raise TransportError(f"cannot reach {bus_name}: {e}") from e
        try:
            return PydbusEndpoint(self, bus_name, proxy, interface)
        except KeyError:
            raise InterfaceUnavailable(interface, bus_name)

    def watch_owner(self, bus_name, on_gone):
        """Call *on_gone* (on the GLib thread) when *bus_name* loses its owner."""
        def on_owner_changed(name, old_owner, new_owner):
            if name == bus_name and not new_owner:
                on_gone()

        return self.session.dbus.NameOwnerChanged.connect(on_owner_changed)

    async def close(self):
        self.session.con.close_sync(None)
