from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

import cbor2

from .constants import FLIGHT_NUMBER_MAX, MAX_ROWS, MIN_ROWS, SEAT_LETTERS
from .errors import DecodeError
from .rwlock import RWLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FlightSummary:
    """Public state of a flight, the only flight data passengers ever see."""

    number: int
    seats_remaining: int

    def to_wire(self) -> dict[str, int]:
        return {"num": self.number, "seats_num": self.seats_remaining}

    @staticmethod
    def from_wire(obj: Any) -> "FlightSummary":
        if not isinstance(obj, dict):
            raise DecodeError(f"flight entry must be a map, got {type(obj).__name__}")
        try:
            number, seats = obj["num"], obj["seats_num"]
        except KeyError as exc:
            raise DecodeError(f"flight entry missing {exc.args[0]}") from exc
        if not isinstance(number, int) or not 0 <= number <= FLIGHT_NUMBER_MAX:
            raise DecodeError(f"bad flight number: {number!r}")
        if not isinstance(seats, int) or not 0 <= seats <= 0xFF:
            raise DecodeError(f"bad seat count: {seats!r}")
        return FlightSummary(number=number, seats_remaining=seats)


def encode_flights(flights: Iterable[FlightSummary]) -> bytes:
    return cbor2.dumps([f.to_wire() for f in flights])


def decode_flights(raw: bytes) -> list[FlightSummary]:
    try:
        obj = cbor2.loads(raw)
    except (cbor2.CBORDecodeError, ValueError) as exc:
        raise DecodeError(f"flight list is not valid CBOR: {exc}") from exc
    if not isinstance(obj, list):
        raise DecodeError("flight list must be a CBOR array")
    return [FlightSummary.from_wire(item) for item in obj]


def clamp_rows(requested_rows: int) -> int:
    return max(MIN_ROWS, min(MAX_ROWS, requested_rows))


def seat_codes(rows: int) -> list[str]:
    return [f"{letter}{row}" for row in range(1, rows + 1) for letter in SEAT_LETTERS]


@dataclass(slots=True)
class FlightRecord:
    summary: FlightSummary
    unissued_seats: list[str] = field(default_factory=list)

    def issue(self) -> str:
        seat = self.unissued_seats.pop()
        self.summary = replace(self.summary, seats_remaining=len(self.unissued_seats))
        return seat


class ReservationLedger:
    """Flights and their unissued seats, shared by every request handler.

    All access goes through the methods below, which take the read or write
    side of one RWLock; records never leave the ledger.
    """

    def __init__(self) -> None:
        self._lock = RWLock()
        self._records: list[FlightRecord] = []

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._records)

    def list_flights(self) -> list[FlightSummary]:
        with self._lock.read_locked():
            return [r.summary for r in self._records]

    def flight(self, number: int) -> Optional[FlightSummary]:
        with self._lock.read_locked():
            record = self._find(number)
            return record.summary if record is not None else None

    def seats_of(self, number: int) -> list[str]:
        with self._lock.read_locked():
            record = self._find(number)
            return list(record.unissued_seats) if record is not None else []

    def generate_flight(self, requested_rows: int) -> FlightSummary:
        rows = clamp_rows(requested_rows)
        seats = seat_codes(rows)
        with self._lock.write_locked():
            number = max((r.summary.number for r in self._records), default=0) + 1
            summary = FlightSummary(number=number, seats_remaining=len(seats))
            self._records.append(FlightRecord(summary=summary, unissued_seats=seats))
        logger.info("generated flight %d with %d rows (%d seats)", number, rows, len(seats))
        return summary

    def reserve_seat(self, flight_number: int) -> Optional[str]:
        with self._lock.write_locked():
            record = self._find(flight_number)
            if record is None or record.summary.seats_remaining == 0:
                return None
            seat = record.issue()
        logger.debug("issued seat %s on flight %d", seat, flight_number)
        return seat

    def _find(self, number: int) -> Optional[FlightRecord]:
        for record in self._records:
            if record.summary.number == number:
                return record
        return None
