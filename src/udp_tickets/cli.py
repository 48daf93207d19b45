from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from typing import Any, Coroutine

from .bench import DEFAULT_REPLY_TIMEOUT_S, run_benchmark
from .constants import DEFAULT_HOST, DEFAULT_PORT, HANDSHAKE_TIMEOUT_S
from .distributor import Distributor
from .errors import BindError, TicketingError
from .net import Impairment, format_address
from .passenger import Passenger


async def _distribute(args: argparse.Namespace) -> None:
    impair = Impairment(args.loss_rate, args.delay_ms)
    distr = Distributor.bind((args.listen_host, args.listen_port), impairment=impair)
    for _ in range(args.flights):
        distr.generate_flight(args.rows)

    async with distr:
        logging.info("distributing on %s", format_address(distr.local_address()))
        for f in distr.ledger_handle().list_flights():
            logging.info("flight %d: %d seats", f.number, f.seats_remaining)
        await asyncio.Event().wait()


def cmd_distribute(args: argparse.Namespace) -> int:
    try:
        asyncio.run(_distribute(args))
    except BindError as exc:
        logging.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logging.info("distributor shut down")
    return 0


def _run_passenger(coro: Coroutine[Any, Any, int]) -> int:
    try:
        return asyncio.run(coro)
    except TicketingError as exc:
        logging.error("%s", exc)
        return 1


async def _flights(args: argparse.Namespace) -> int:
    async with Passenger.open() as p:
        await p.connect((args.dest_host, args.dest_port), timeout=args.timeout)
        flights = await p.list_flights()

    payload = [{"flight": f.number, "seats": f.seats_remaining} for f in flights]
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_flights(args: argparse.Namespace) -> int:
    return _run_passenger(_flights(args))


async def _reserve(args: argparse.Namespace) -> int:
    async with Passenger.open() as p:
        await p.connect((args.dest_host, args.dest_port), timeout=args.timeout)
        for _ in range(args.count):
            if await p.reserve(args.flight) is None:
                logging.info("flight %d is sold out or unknown", args.flight)
                break
        tickets = p.acquired_tickets()

    payload = [{"flight": t.flight_number, "seat": t.seat_code} for t in tickets]
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0


def cmd_reserve(args: argparse.Namespace) -> int:
    return _run_passenger(_reserve(args))


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        passengers=args.passengers,
        rows=args.rows,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        timeout_s=args.timeout,
    )
    payload = {"role": "bench", **asdict(r)}
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if r.duplicates == 0 else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="udp-tickets", description="Flight ticket distribution over UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_impairment(x: argparse.ArgumentParser) -> None:
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate datagram loss at the distributor")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate reply delay at the distributor")

    def add_dest(x: argparse.ArgumentParser) -> None:
        x.add_argument("--dest-host", default="127.0.0.1")
        x.add_argument("--dest-port", type=int, default=DEFAULT_PORT)
        x.add_argument("--timeout", type=float, default=HANDSHAKE_TIMEOUT_S, help="handshake timeout (s)")
        x.add_argument("--json", action="store_true")

    distribute = sub.add_parser("distribute", help="run a distributor until interrupted")
    add_impairment(distribute)
    distribute.add_argument("--listen-host", default=DEFAULT_HOST)
    distribute.add_argument("--listen-port", type=int, default=DEFAULT_PORT)
    distribute.add_argument("--flights", type=int, default=1, help="flights to generate at startup")
    distribute.add_argument("--rows", type=int, default=1, help="seat rows per flight (clamped to 1..42)")
    distribute.set_defaults(func=cmd_distribute)

    flights = sub.add_parser("flights", help="list a distributor's flights")
    add_dest(flights)
    flights.set_defaults(func=cmd_flights)

    reserve = sub.add_parser("reserve", help="reserve seats on a flight")
    add_dest(reserve)
    reserve.add_argument("--flight", type=int, required=True)
    reserve.add_argument("--count", type=int, default=1)
    reserve.set_defaults(func=cmd_reserve)

    bench = sub.add_parser("bench", help="loopback rush: many passengers, one flight")
    add_impairment(bench)
    bench.add_argument("--passengers", type=int, default=10)
    bench.add_argument("--rows", type=int, default=1)
    bench.add_argument("--timeout", type=float, default=DEFAULT_REPLY_TIMEOUT_S, help="per-reservation timeout (s)")
    bench.add_argument("--json", action="store_true")
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
