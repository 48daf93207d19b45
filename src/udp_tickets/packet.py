from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, replace
from typing import Any, Optional

import cbor2

from .constants import (
    CRC16_INIT,
    CRC16_POLY_REFLECTED,
    CRC16_XOROUT,
    LIST_FLIGHTS,
    LIVENESS,
    MALFORMED,
    NO_REPLY,
    OK,
    PACKET_TAG,
    RESERVE_TICKET,
    SOLD_OUT,
)
from .errors import CorruptData, DecodeError, FormatMismatch, MissingData

# ReserveTicket request payload: little-endian u32 flight number
FLIGHT_NUMBER = struct.Struct("<I")


class PacketRequest(enum.IntEnum):
    LIVENESS = LIVENESS
    LIST_FLIGHTS = LIST_FLIGHTS
    RESERVE_TICKET = RESERVE_TICKET


class PacketResponse(enum.IntEnum):
    NO_REPLY = NO_REPLY
    OK = OK
    MALFORMED = MALFORMED
    SOLD_OUT = SOLD_OUT


def crc16_ibm_sdlc(data: bytes) -> int:
    """CRC-16/IBM-SDLC (X-25): reflected poly 0x1021, init and xorout 0xFFFF."""
    crc = CRC16_INIT
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ CRC16_POLY_REFLECTED
            else:
                crc >>= 1
    return crc ^ CRC16_XOROUT


@dataclass(frozen=True, slots=True)
class PacketData:
    crc: int
    data: bytes

    @staticmethod
    def wrap(data: bytes) -> "PacketData":
        data = bytes(data)
        return PacketData(crc=crc16_ibm_sdlc(data), data=data)

    def verified(self) -> bytes:
        if crc16_ibm_sdlc(self.data) != self.crc:
            raise CorruptData("payload checksum mismatch")
        return self.data


@dataclass(frozen=True, slots=True)
class Packet:
    request: PacketRequest
    response: PacketResponse = PacketResponse.NO_REPLY
    payload: Optional[PacketData] = None
    tag: int = PACKET_TAG

    @staticmethod
    def new(request: PacketRequest) -> "Packet":
        return Packet(request=request)

    def with_payload(self, data: bytes) -> "Packet":
        return replace(self, payload=PacketData.wrap(data))

    def with_response(self, response: PacketResponse) -> "Packet":
        return replace(self, response=response)

    def retrieve_payload(self) -> bytes:
        if self.tag != PACKET_TAG:
            raise FormatMismatch(f"unexpected packet tag {self.tag}")
        if self.payload is None:
            raise MissingData("packet carries no payload")
        return self.payload.verified()

    def to_bytes(self) -> bytes:
        # Key order and the integer-array payload are part of the wire format.
        data: Optional[dict[str, Any]] = None
        if self.payload is not None:
            data = {"crc": self.payload.crc, "data": list(self.payload.data)}
        return cbor2.dumps(
            {
                "secret": int(self.tag),
                "request": int(self.request),
                "response": int(self.response),
                "data": data,
            }
        )

    @staticmethod
    def from_bytes(raw: bytes) -> "Packet":
        try:
            obj = cbor2.loads(raw)
        except (cbor2.CBORDecodeError, ValueError) as exc:
            raise DecodeError(f"datagram is not valid CBOR: {exc}") from exc

        if not isinstance(obj, dict):
            raise DecodeError("packet must be a CBOR map")
        try:
            tag = obj["secret"]
            request = obj["request"]
            response = obj["response"]
            data = obj["data"]
        except KeyError as exc:
            raise DecodeError(f"packet field missing: {exc.args[0]}") from exc

        if not _is_uint(tag, 0xFF):
            raise DecodeError(f"bad tag field: {tag!r}")
        try:
            request = PacketRequest(request)
            response = PacketResponse(response)
        except ValueError as exc:
            raise DecodeError(str(exc)) from exc

        return Packet(
            request=request,
            response=response,
            payload=_payload_from_wire(data),
            tag=tag,
        )


def _is_uint(value: Any, limit: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= limit


def _payload_from_wire(data: Any) -> Optional[PacketData]:
    if data is None:
        return None
    if not isinstance(data, dict) or "crc" not in data or "data" not in data:
        raise DecodeError("payload must be a map with crc and data")

    crc = data["crc"]
    if not _is_uint(crc, 0xFFFF):
        raise DecodeError(f"bad crc field: {crc!r}")

    body = data["data"]
    if isinstance(body, (bytes, bytearray)):
        return PacketData(crc=crc, data=bytes(body))
    if not isinstance(body, list) or not all(_is_uint(b, 0xFF) for b in body):
        raise DecodeError("payload data must be a byte array")
    return PacketData(crc=crc, data=bytes(body))


def encode(packet: Packet) -> bytes:
    return packet.to_bytes()


def decode(raw: bytes) -> Packet:
    return Packet.from_bytes(raw)


def attach_payload(packet: Packet, data: bytes) -> Packet:
    return packet.with_payload(data)


def retrieve_payload(packet: Packet) -> bytes:
    return packet.retrieve_payload()
