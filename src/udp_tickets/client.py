from __future__ import annotations

import asyncio
import logging
import socket
from typing import Optional

from .constants import HANDSHAKE_TIMEOUT_S, RECV_BUFFER_SIZE
from .errors import (
    ConnectError,
    ConnectRefused,
    ConnectTimeout,
    DecodeError,
    NotConnected,
)
from .net import Address, AddressLike, bind_udp, format_address, parse_address, sockname
from .packet import Packet, PacketRequest, PacketResponse

logger = logging.getLogger(__name__)


class ClientCore:
    """A UDP socket associated with one server.

    `connect` proves the server is alive with a single Liveness round trip;
    after that `exchange` sends one packet and waits, without a time limit, for
    one reply.
    """

    def __init__(self, sock: socket.socket, buffer_size: int = RECV_BUFFER_SIZE):
        self.sock = sock
        self._buffer = bytearray(buffer_size)
        self._connected = False
        self._remote: Optional[Address] = None
        self._lock = asyncio.Lock()

    @classmethod
    def open(cls, address: AddressLike = None) -> "ClientCore":
        sock = bind_udp(address)
        logger.debug("client bound to %s", format_address(sockname(sock)))
        return cls(sock)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def remote_address(self) -> Optional[Address]:
        return self._remote if self._connected else None

    def local_address(self) -> Address:
        return sockname(self.sock)

    async def connect(self, remote: AddressLike, timeout: float = HANDSHAKE_TIMEOUT_S) -> None:
        try:
            addr = parse_address(remote)
        except ValueError as exc:
            raise ConnectError(str(exc)) from exc

        loop = asyncio.get_running_loop()
        async with self._lock:
            self._connected = False
            try:
                await loop.sock_connect(self.sock, addr)
            except OSError as exc:
                raise ConnectRefused(f"cannot associate with {format_address(addr)}: {exc}") from exc
            self._drain()

            try:
                reply = await asyncio.wait_for(
                    self._round_trip(Packet.new(PacketRequest.LIVENESS)), timeout
                )
            except TimeoutError:
                raise ConnectTimeout(
                    f"no liveness reply from {format_address(addr)} within {timeout}s"
                ) from None
            except (ConnectionRefusedError, DecodeError) as exc:
                raise ConnectRefused(f"{format_address(addr)} refused liveness check: {exc}") from exc

            if reply.response != PacketResponse.OK:
                raise ConnectRefused(
                    f"{format_address(addr)} answered liveness check with {reply.response.name}"
                )

            self._connected = True
            self._remote = addr
        logger.info("connected to %s", format_address(addr))

    async def exchange(self, packet: Packet) -> Packet:
        if not self._connected:
            raise NotConnected("connect() must succeed before exchanging packets")
        async with self._lock:
            return await self._round_trip(packet)

    def close(self) -> None:
        self._connected = False
        self.sock.close()

    async def _round_trip(self, packet: Packet) -> Packet:
        loop = asyncio.get_running_loop()
        await loop.sock_sendall(self.sock, packet.to_bytes())
        n = await loop.sock_recv_into(self.sock, self._buffer)
        return Packet.from_bytes(bytes(self._buffer[:n]))

    def _drain(self) -> None:
        # Late replies from an earlier association must not answer the next request.
        while True:
            try:
                self.sock.recv_into(self._buffer)
            except (BlockingIOError, InterruptedError):
                return
            except ConnectionRefusedError:
                continue
