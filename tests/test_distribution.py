from __future__ import annotations

import asyncio
import re
import pytest

from udp_tickets.distributor import Distributor, LedgerHandler
from udp_tickets.errors import ResponseError
from udp_tickets.ledger import FlightSummary, ReservationLedger, seat_codes
from udp_tickets.packet import FLIGHT_NUMBER, Packet, PacketData, PacketRequest, PacketResponse
from udp_tickets.passenger import Passenger, Ticket

LOOPBACK = ("127.0.0.1", 0)


def reserve_request(flight_number: int) -> Packet:
    return Packet.new(PacketRequest.RESERVE_TICKET).with_payload(FLIGHT_NUMBER.pack(flight_number))


def test_handler_liveness():
    handler = LedgerHandler(ReservationLedger())
    assert handler.handle(Packet.new(PacketRequest.LIVENESS)).response == PacketResponse.OK


@pytest.mark.parametrize("request_kind", list(PacketRequest))
def test_handler_answers_every_request_kind(request_kind):
    handler = LedgerHandler(ReservationLedger())
    reply = handler.handle(Packet.new(request_kind))
    assert reply.request == request_kind
    assert reply.response != PacketResponse.NO_REPLY


def test_handler_reserve_and_sell_out():
    ledger = ReservationLedger()
    f = ledger.generate_flight(1)
    handler = LedgerHandler(ledger)

    seats = []
    for _ in range(6):
        reply = handler.handle(reserve_request(f.number))
        assert reply.response == PacketResponse.OK
        seats.append(reply.retrieve_payload().decode())
    assert sorted(seats) == sorted(seat_codes(1))

    assert handler.handle(reserve_request(f.number)).response == PacketResponse.SOLD_OUT
    assert handler.handle(reserve_request(77)).response == PacketResponse.SOLD_OUT


@pytest.mark.parametrize(
    "packet",
    [
        Packet.new(PacketRequest.RESERVE_TICKET),
        Packet.new(PacketRequest.RESERVE_TICKET).with_payload(b"\x01\x00"),
        Packet.new(PacketRequest.RESERVE_TICKET).with_payload(b"\x01\x00\x00\x00\x00"),
        Packet(request=PacketRequest.RESERVE_TICKET, payload=PacketData(crc=1, data=b"\x01\x00\x00\x00")),
        Packet(request=PacketRequest.RESERVE_TICKET, tag=7).with_payload(b"\x01\x00\x00\x00"),
    ],
)
def test_handler_rejects_malformed_reservations(packet):
    ledger = ReservationLedger()
    ledger.generate_flight(1)
    reply = LedgerHandler(ledger).handle(packet)
    assert reply.response == PacketResponse.MALFORMED
    assert ledger.flight(1).seats_remaining == 6


@pytest.mark.asyncio
async def test_end_to_end():
    async with Distributor.bind(LOOPBACK) as distr:
        f = distr.generate_flight(1)
        async with Passenger.open(LOOPBACK) as p:
            await p.connect(distr.local_address())
            assert p.is_connected

            assert await p.list_flights() == [FlightSummary(number=f.number, seats_remaining=6)]

            seat = await p.reserve(f.number)
            assert seat is not None
            assert re.fullmatch(r"[A-F][1-9][0-9]*", seat)
            assert p.acquired_tickets() == [Ticket(flight_number=f.number, seat_code=seat)]

            assert await p.list_flights() == [FlightSummary(number=f.number, seats_remaining=5)]
            assert distr.ledger_handle().flight(f.number).seats_remaining == 5


@pytest.mark.asyncio
async def test_empty_flight_list():
    async with Distributor.bind(LOOPBACK) as distr:
        async with Passenger.open(LOOPBACK) as p:
            await p.connect(distr.local_address())
            assert await p.list_flights() == []


@pytest.mark.asyncio
async def test_reserve_unknown_flight():
    async with Distributor.bind(LOOPBACK) as distr:
        distr.generate_flight(1)
        async with Passenger.open(LOOPBACK) as p:
            await p.connect(distr.local_address())
            assert await p.reserve(42) is None
            assert p.acquired_tickets() == []


@pytest.mark.asyncio
async def test_reserve_rejects_out_of_range_number():
    p = Passenger.open(LOOPBACK)
    try:
        with pytest.raises(ValueError):
            await p.reserve(-1)
        with pytest.raises(ValueError):
            await p.reserve(2**32)
    finally:
        p.close()


@pytest.mark.asyncio
async def test_malformed_reply_raises():
    distr = Distributor.bind(LOOPBACK)
    distr.server.set_handler(
        lambda packet: packet.with_response(
            PacketResponse.OK if packet.request == PacketRequest.LIVENESS else PacketResponse.MALFORMED
        )
    )
    async with distr:
        async with Passenger.open(LOOPBACK) as p:
            await p.connect(distr.local_address())
            with pytest.raises(ResponseError):
                await p.reserve(1)
            with pytest.raises(ResponseError):
                await p.list_flights()


@pytest.mark.asyncio
async def test_ten_passengers_six_seats():
    async with Distributor.bind(LOOPBACK) as distr:
        f = distr.generate_flight(1)
        generated = set(distr.ledger_handle().seats_of(f.number))

        crowd = [Passenger.open(LOOPBACK) for _ in range(10)]
        try:
            for p in crowd:
                await p.connect(distr.local_address())
            results = await asyncio.gather(*(p.reserve(f.number) for p in crowd))
        finally:
            for p in crowd:
                p.close()

    seats = [s for s in results if s is not None]
    assert results.count(None) == 4
    assert len(seats) == len(set(seats)) == 6
    assert set(seats) <= generated
    assert sum(len(p.acquired_tickets()) for p in crowd) == 6


@pytest.mark.asyncio
async def test_one_passenger_concurrent_reservations():
    async with Distributor.bind(LOOPBACK) as distr:
        f = distr.generate_flight(1)
        async with Passenger.open(LOOPBACK) as p:
            await p.connect(distr.local_address())
            results = await asyncio.gather(*(p.reserve(f.number) for _ in range(8)))
            assert sorted(s for s in results if s is not None) == sorted(seat_codes(1))
            assert len(p.acquired_tickets()) == 6
