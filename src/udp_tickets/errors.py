"""Exception taxonomy.

Everything raised on purpose by this package derives from `TicketingError`,
so callers can catch the whole family at the edge (the CLI does).
"""

from __future__ import annotations


class TicketingError(Exception):
    pass


class BindError(TicketingError):
    """The requested local address could not be bound."""


class ConnectError(TicketingError):
    """The liveness handshake with the remote peer failed."""


class ConnectTimeout(ConnectError):
    pass


class ConnectRefused(ConnectError):
    """The peer refused the datagram or answered with something other than OK."""


class NotConnected(TicketingError):
    pass


class DecodeError(TicketingError, ValueError):
    """Raw bytes do not form a packet at all."""


class IntegrityError(TicketingError, ValueError):
    """The packet header decoded, but its payload is unusable."""


class FormatMismatch(IntegrityError):
    pass


class MissingData(IntegrityError):
    pass


class CorruptData(IntegrityError):
    pass


class ResponseError(TicketingError):
    """The distributor answered with a response kind the caller cannot use."""
