from __future__ import annotations

import asyncio
import errno
import logging
import socket
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

from .constants import RECV_BUFFER_SIZE, SOCKET_CHECK_INTERVAL_S
from .errors import DecodeError
from .net import Address, AddressLike, Impairment, bind_udp, format_address, sockname
from .packet import Packet, PacketResponse

logger = logging.getLogger(__name__)


class PacketHandler(Protocol):
    def handle(self, packet: Packet) -> Packet: ...


@dataclass(frozen=True, slots=True)
class FunctionHandler:
    func: Callable[[Packet], Packet]

    def handle(self, packet: Packet) -> Packet:
        return self.func(packet)


HandlerLike = Union[PacketHandler, Callable[[Packet], Packet]]


def as_handler(handler: HandlerLike) -> PacketHandler:
    if hasattr(handler, "handle"):
        return handler  # type: ignore[return-value]
    if callable(handler):
        return FunctionHandler(handler)
    raise TypeError(f"not a packet handler: {handler!r}")


def _answer_ok(packet: Packet) -> Packet:
    return packet.with_response(PacketResponse.OK)


class ServerCore:
    """Receives datagrams on one bound socket and answers them through a handler.

    The receive step is sequential; each datagram is then decoded, handled and
    answered in its own task, with the handler itself running in a worker
    thread so a slow handler never holds up reception.
    """

    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()
        self._handler: PacketHandler = FunctionHandler(_answer_ok)
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._inflight: set[asyncio.Task[None]] = set()

    @classmethod
    def bind(
        cls,
        address: AddressLike = None,
        impairment: Impairment | None = None,
    ) -> "ServerCore":
        sock = bind_udp(address)
        logger.info("server bound to %s", format_address(sockname(sock)))
        return cls(sock, impairment)

    def local_address(self) -> Address:
        return sockname(self.sock)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def set_handler(self, handler: HandlerLike) -> None:
        """Replace the handler. A running loop keeps the one it started with."""
        self._handler = as_handler(handler)

    def start(self) -> asyncio.Task[None]:
        """(Re)start the receive loop on the running event loop.

        The returned task only finishes on its own if the socket fails; await it
        to observe that error.
        """
        self.stop()
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._receive_loop(self._handler), name="udp-tickets-recv")
        task.add_done_callback(self._loop_finished)
        self._loop_task = task
        logger.info("server started on %s", format_address(self.local_address()))
        return task

    def stop(self) -> None:
        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        """Stop receiving, then close the socket. In-flight replies fail quietly."""
        self.stop()
        self.sock.close()

    async def _receive_loop(self, handler: PacketHandler) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                raw, addr = await asyncio.wait_for(
                    loop.sock_recvfrom(self.sock, RECV_BUFFER_SIZE), SOCKET_CHECK_INTERVAL_S
                )
            except TimeoutError:
                # a socket closed under a pending receive never wakes it up
                if self.sock.fileno() == -1:
                    raise OSError(errno.EBADF, "server socket closed while receiving") from None
                continue
            except ConnectionResetError:
                # ICMP port-unreachable from an earlier reply, reported on receive
                continue

            if self.impairment.should_drop():
                logger.debug("dropped inbound datagram from %s", format_address(addr))
                continue

            task = loop.create_task(self._process(raw, addr, handler))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _process(self, raw: bytes, addr: Address, handler: PacketHandler) -> None:
        try:
            packet = Packet.from_bytes(raw)
        except DecodeError as exc:
            logger.debug("ignoring datagram from %s: %s", format_address(addr), exc)
            return

        try:
            reply = await asyncio.to_thread(handler.handle, packet)
        except Exception:
            logger.exception(
                "handler failed on %s from %s", packet.request.name, format_address(addr)
            )
            return

        await self._transmit(reply, addr)

    async def _transmit(self, packet: Packet, addr: Address) -> None:
        # The single place replies leave the server.
        if packet.response == PacketResponse.NO_REPLY:
            logger.debug("no reply for %s from %s", packet.request.name, format_address(addr))
            return
        if self.impairment.should_drop():
            logger.debug("dropped outbound reply to %s", format_address(addr))
            return
        await self.impairment.sleep_if_needed()

        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self.sock, packet.to_bytes(), addr)
        except OSError as exc:
            logger.warning("could not reply to %s: %s", format_address(addr), exc)

    def _loop_finished(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            logger.info("server receive loop stopped")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("server receive loop terminated: %s", exc)
