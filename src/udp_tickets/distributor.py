from __future__ import annotations

import asyncio
import logging

from .errors import IntegrityError
from .ledger import FlightSummary, ReservationLedger, encode_flights
from .net import Address, AddressLike, Impairment
from .packet import FLIGHT_NUMBER, Packet, PacketRequest, PacketResponse
from .server import ServerCore

logger = logging.getLogger(__name__)


class LedgerHandler:
    """Answers passenger requests from a ReservationLedger."""

    def __init__(self, ledger: ReservationLedger):
        self.ledger = ledger

    def handle(self, packet: Packet) -> Packet:
        if packet.request == PacketRequest.LIVENESS:
            return packet.with_response(PacketResponse.OK)

        if packet.request == PacketRequest.LIST_FLIGHTS:
            flights = self.ledger.list_flights()
            return packet.with_response(PacketResponse.OK).with_payload(encode_flights(flights))

        return self._reserve(packet)

    def _reserve(self, packet: Packet) -> Packet:
        try:
            data = packet.retrieve_payload()
        except IntegrityError as exc:
            logger.warning("rejecting ticket request: %s", exc)
            return packet.with_response(PacketResponse.MALFORMED)
        if len(data) != FLIGHT_NUMBER.size:
            logger.warning("rejecting ticket request: %d-byte flight number", len(data))
            return packet.with_response(PacketResponse.MALFORMED)

        (flight_number,) = FLIGHT_NUMBER.unpack(data)
        seat = self.ledger.reserve_seat(flight_number)
        if seat is None:
            return packet.with_response(PacketResponse.SOLD_OUT)
        return packet.with_response(PacketResponse.OK).with_payload(seat.encode("utf-8"))


class Distributor:
    """Holds the ledger and serves it over a ServerCore."""

    def __init__(self, server: ServerCore, ledger: ReservationLedger | None = None):
        self.server = server
        self.ledger = ledger or ReservationLedger()
        self.server.set_handler(LedgerHandler(self.ledger))

    @classmethod
    def bind(
        cls,
        address: AddressLike = None,
        impairment: Impairment | None = None,
    ) -> "Distributor":
        return cls(ServerCore.bind(address, impairment))

    def local_address(self) -> Address:
        return self.server.local_address()

    def ledger_handle(self) -> ReservationLedger:
        return self.ledger

    def generate_flight(self, rows: int) -> FlightSummary:
        return self.ledger.generate_flight(rows)

    @property
    def is_running(self) -> bool:
        return self.server.is_running

    def start(self) -> asyncio.Task[None]:
        return self.server.start()

    def stop(self) -> None:
        self.server.stop()

    def close(self) -> None:
        self.server.close()

    async def __aenter__(self) -> "Distributor":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
