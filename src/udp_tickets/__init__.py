"""Flight ticket distribution over UDP.

A distributor holds an in-memory ledger of flights and seats; passengers ask it
for the flight list and reserve seats with one datagram each way:
- packet framing and CRC-16 payload checks live in `packet`
- `server` / `client` are the async transport cores
- `ledger` guarantees a seat is issued at most once
"""

from .distributor import Distributor, LedgerHandler
from .ledger import FlightSummary, ReservationLedger
from .packet import Packet, PacketRequest, PacketResponse
from .passenger import Passenger, Ticket

__all__ = [
    "Distributor",
    "FlightSummary",
    "LedgerHandler",
    "Packet",
    "PacketRequest",
    "PacketResponse",
    "Passenger",
    "ReservationLedger",
    "Ticket",
]
