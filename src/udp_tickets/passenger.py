from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .client import ClientCore
from .constants import FLIGHT_NUMBER_MAX, HANDSHAKE_TIMEOUT_S
from .errors import ResponseError
from .ledger import FlightSummary, decode_flights
from .net import Address, AddressLike
from .packet import FLIGHT_NUMBER, Packet, PacketRequest, PacketResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Ticket:
    flight_number: int
    seat_code: str


class Passenger:
    def __init__(self, client: ClientCore):
        self.client = client
        self._tickets: list[Ticket] = []

    @classmethod
    def open(cls, address: AddressLike = None) -> "Passenger":
        return cls(ClientCore.open(address))

    @property
    def is_connected(self) -> bool:
        return self.client.is_connected

    def local_address(self) -> Address:
        return self.client.local_address()

    def acquired_tickets(self) -> list[Ticket]:
        return list(self._tickets)

    async def connect(self, remote: AddressLike, timeout: float = HANDSHAKE_TIMEOUT_S) -> None:
        await self.client.connect(remote, timeout)

    async def list_flights(self) -> list[FlightSummary]:
        reply = await self.client.exchange(Packet.new(PacketRequest.LIST_FLIGHTS))
        if reply.response != PacketResponse.OK:
            raise ResponseError(f"flight list request answered with {reply.response.name}")
        return decode_flights(reply.retrieve_payload())

    async def reserve(self, flight_number: int) -> Optional[str]:
        """Ask for one seat on `flight_number`.

        Returns the seat code, or None when the flight is unknown or sold out.
        """
        if not 0 <= flight_number <= FLIGHT_NUMBER_MAX:
            raise ValueError(f"flight number out of range: {flight_number}")

        request = Packet.new(PacketRequest.RESERVE_TICKET).with_payload(
            FLIGHT_NUMBER.pack(flight_number)
        )
        reply = await self.client.exchange(request)

        if reply.response in (PacketResponse.NO_REPLY, PacketResponse.SOLD_OUT):
            return None
        if reply.response != PacketResponse.OK:
            raise ResponseError(f"ticket request answered with {reply.response.name}")

        try:
            seat = reply.retrieve_payload().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ResponseError(f"seat code is not text: {exc}") from exc
        self._tickets.append(Ticket(flight_number=flight_number, seat_code=seat))
        logger.info("acquired seat %s on flight %d", seat, flight_number)
        return seat

    def close(self) -> None:
        self.client.close()

    async def __aenter__(self) -> "Passenger":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
