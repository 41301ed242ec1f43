"""
Error taxonomy for the MPRIS client.

Every failure that originates on the remote side (or on the bus between us
and it) surfaces as one of these.  Nothing in the core retries; the error is
returned to the immediate caller.

    MprisError
     ├── TransportError        bus/connection failure
     ├── InterfaceUnavailable  the remote object lacks an optional interface
     ├── ParseError            wire value does not match the descriptor
     └── WriteRejected         remote refused a property write or a call
"""


class MprisError(Exception):
    """Base class for all remote-player errors."""


class TransportError(MprisError):
    """The bus connection failed while a request or stream was in flight."""


class InterfaceUnavailable(MprisError):
    """The player did not expose *interface* when the handle was built."""

    def __init__(self, interface, bus_name: str = ""):
        self.interface = interface
        self.bus_name = bus_name
        where = f" on {bus_name}" if bus_name else ""
        super().__init__(f"interface {interface} unavailable{where}")


class ParseError(MprisError):
    """A wire value had the wrong shape for the field or event *name*."""

    def __init__(self, name: str, raw, expected: str = ""):
        self.name = name
        self.raw = raw
        self.expected = expected
        detail = f" (expected {expected})" if expected else ""
        super().__init__(f"cannot parse {name} from {raw!r}{detail}")


class WriteRejected(MprisError):
    """The remote player refused a property write or a method call."""
