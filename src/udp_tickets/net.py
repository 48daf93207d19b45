from __future__ import annotations

import asyncio
import random
import socket
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .errors import BindError

Address = Tuple[str, int]
AddressLike = Union[str, Address, None]

AUTO = "auto"


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return self.loss_rate > 0 and random.random() < self.loss_rate

    async def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000.0)


def parse_address(address: AddressLike) -> Address:
    """Turn "host:port", (host, port), None or "auto" into a bindable address.

    None and "auto" select an ephemeral port on every interface.
    """
    if address is None or address == AUTO:
        return ("0.0.0.0", 0)
    if isinstance(address, tuple):
        host, port = address
        return (host, int(port))

    host, sep, port = address.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"expected host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return (host or "0.0.0.0", int(port))


def bind_udp(address: AddressLike) -> socket.socket:
    """Create a non-blocking UDP socket bound to `address`.

    Any failure, including an unparsable address, surfaces as BindError.
    """
    try:
        host, port = parse_address(address)
    except ValueError as exc:
        raise BindError(str(exc)) from exc

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.bind((host, port))
    except (OSError, OverflowError) as exc:
        sock.close()
        raise BindError(f"cannot bind {host}:{port}: {exc}") from exc
    sock.setblocking(False)
    return sock


def sockname(sock: socket.socket) -> Address:
    host, port = sock.getsockname()[:2]
    return (host, port)


def format_address(address: Optional[tuple]) -> str:
    if address is None:
        return "-"
    # AF_INET6 peers come back as (host, port, flowinfo, scope_id)
    host, port = address[:2]
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"
