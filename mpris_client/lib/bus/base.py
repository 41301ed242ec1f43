"""
Abstract bus collaborator.

The MPRIS client never talks to D-Bus directly.  It asks a ``Bus`` for one
``Endpoint`` per (bus name, object path, interface) and issues requests on
that.  Concrete bindings translate their library's failures into the
``mpris_client.lib.errors`` taxonomy.

Every call to ``property_changes`` or ``signals`` returns a fresh stream that
is live from the moment it is returned (not from its first read): two
subscriptions to the same property each see every change.  Streams end when
the remote object goes away.  They offer ``aclose()`` and a synchronous
``close()``; both drop the subscription, and calling either twice is harmless.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator


class Endpoint(ABC):
    """One interface of one remote object."""

    @abstractmethod
    async def get_property(self, name: str) -> Any: ...

    @abstractmethod
    async def set_property(self, name: str, value: Any) -> None: ...

    @abstractmethod
    async def call(self, method: str, *args: Any) -> Any: ...

    # Plain methods, called from a running event loop

    @abstractmethod
    def property_changes(self, name: str) -> AsyncIterator[Any]:
        """Stream of the new raw value each time *name* changes remotely."""

    @abstractmethod
    def signals(self, name: str) -> AsyncIterator[tuple]:
        """Stream of the argument tuple of each *name* signal."""


class Bus(ABC):
    """A connection able to produce endpoints for remote objects."""

    @abstractmethod
    async def endpoint(self, bus_name: str, object_path: str, interface: str) -> Endpoint:
        """Resolve one interface of a remote object.

        Raises InterfaceUnavailable when the object does not implement
        *interface*, TransportError when the bus itself fails.
        """

    async def close(self) -> None:
        pass  # no-op by default
