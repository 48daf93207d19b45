from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .distributor import Distributor
from .errors import ConnectError
from .net import Impairment
from .passenger import Passenger

logger = logging.getLogger(__name__)

DEFAULT_REPLY_TIMEOUT_S = 2.0


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    passengers: int
    seats: int
    issued: int
    sold_out: int
    lost: int
    duplicates: int
    duration_s: float


async def _reserve_or_give_up(
    p: Passenger, flight_number: int, timeout_s: float
) -> tuple[bool, Optional[str]]:
    if not p.is_connected:
        return False, None
    try:
        return True, await asyncio.wait_for(p.reserve(flight_number), timeout_s)
    except TimeoutError:
        return False, None


async def rush(
    *,
    passengers: int,
    rows: int = 1,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    timeout_s: float = DEFAULT_REPLY_TIMEOUT_S,
) -> BenchmarkResult:
    """One flight, many passengers, one reservation each, all at once.

    Requests or replies lost to the simulated impairment are counted as lost
    after `timeout_s`; nothing is retried.
    """
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms)
    distr = Distributor.bind(("127.0.0.1", 0), impairment=impair)
    flight = distr.generate_flight(rows)
    host, port = distr.local_address()

    crowd: list[Passenger] = []
    try:
        async with distr:
            for _ in range(passengers):
                p = Passenger.open(("127.0.0.1", 0))
                crowd.append(p)
                try:
                    await p.connect((host, port))
                except ConnectError as exc:
                    logger.debug("passenger %d could not connect: %s", len(crowd), exc)

            start = time.monotonic()
            outcomes = await asyncio.gather(
                *(_reserve_or_give_up(p, flight.number, timeout_s) for p in crowd)
            )
            duration_s = time.monotonic() - start
    finally:
        for p in crowd:
            p.close()

    answered = [seat for ok, seat in outcomes if ok]
    issued = [seat for seat in answered if seat is not None]
    return BenchmarkResult(
        passengers=passengers,
        seats=flight.seats_remaining,
        issued=len(issued),
        sold_out=len(answered) - len(issued),
        lost=len(outcomes) - len(answered),
        duplicates=len(issued) - len(set(issued)),
        duration_s=duration_s,
    )


def run_benchmark(
    *,
    passengers: int,
    rows: int = 1,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    timeout_s: float = DEFAULT_REPLY_TIMEOUT_S,
) -> BenchmarkResult:
    return asyncio.run(
        rush(
            passengers=passengers,
            rows=rows,
            loss_rate=loss_rate,
            delay_ms=delay_ms,
            timeout_s=timeout_s,
        )
    )
