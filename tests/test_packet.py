from __future__ import annotations

import cbor2
import pytest

from udp_tickets.errors import CorruptData, DecodeError, FormatMismatch, IntegrityError, MissingData
from udp_tickets.packet import (
    FLIGHT_NUMBER,
    Packet,
    PacketData,
    PacketRequest,
    PacketResponse,
    attach_payload,
    crc16_ibm_sdlc,
    decode,
    encode,
    retrieve_payload,
)

# Bytes produced by the deployed distributor for a Liveness packet carrying b"data".
LIVENESS_WITH_DATA = bytes(
    [164, 102, 115, 101, 99, 114, 101, 116, 24, 51, 103, 114, 101, 113, 117, 101, 115, 116, 1, 104, 114, 101,
     115, 112, 111, 110, 115, 101, 0, 100, 100, 97, 116, 97, 162, 99, 99, 114, 99, 25, 173, 108, 100, 100, 97,
     116, 97, 132, 24, 100, 24, 97, 24, 116, 24, 97]
)


def test_crc_check_value():
    assert crc16_ibm_sdlc(b"123456789") == 0x906E


def test_flight_number_layout():
    assert FLIGHT_NUMBER.size == 4
    assert FLIGHT_NUMBER.pack(7) == b"\x07\x00\x00\x00"
    assert FLIGHT_NUMBER.unpack(b"\x01\x02\x00\x00") == (0x0201,)


def test_crc_matches_deployed_values():
    assert crc16_ibm_sdlc(b"data") == 0xAD6C
    assert crc16_ibm_sdlc(b"cbor test") == 0x4535
    assert crc16_ibm_sdlc(b"a lot of data somewhere there in a packet") == 0xA4DE


def test_encode_matches_deployed_bytes():
    p = Packet.new(PacketRequest.LIVENESS).with_payload(b"data")
    assert encode(p) == LIVENESS_WITH_DATA


def test_longer_payload_encoding_size():
    p = Packet.new(PacketRequest.LIVENESS).with_payload(b"a lot of data somewhere there in a packet")
    raw = p.to_bytes()
    assert len(raw) == 131
    assert raw[39:42] == bytes([25, 164, 222])


def test_decode_deployed_bytes():
    p = decode(LIVENESS_WITH_DATA)
    assert p.request == PacketRequest.LIVENESS
    assert p.response == PacketResponse.NO_REPLY
    assert p.tag == 51
    assert p.retrieve_payload() == b"data"


def test_roundtrip_with_payload():
    p = Packet.new(PacketRequest.RESERVE_TICKET).with_payload(b"\x07\x00\x00\x00")
    p = p.with_response(PacketResponse.SOLD_OUT)
    q = Packet.from_bytes(p.to_bytes())
    assert q.request == PacketRequest.RESERVE_TICKET
    assert q.response == PacketResponse.SOLD_OUT
    assert q.retrieve_payload() == b"\x07\x00\x00\x00"
    assert q == p


def test_roundtrip_without_payload():
    p = Packet.new(PacketRequest.LIST_FLIGHTS).with_response(PacketResponse.OK)
    q = decode(encode(p))
    assert q.request == PacketRequest.LIST_FLIGHTS
    assert q.response == PacketResponse.OK
    assert q.payload is None


def test_enum_wire_values():
    assert [int(r) for r in PacketRequest] == [1, 2, 3]
    assert [int(r) for r in PacketResponse] == [0, 1, 2, 3]


def test_response_defaults_to_no_reply():
    assert Packet.new(PacketRequest.LIVENESS).response == PacketResponse.NO_REPLY


def test_setters_do_not_mutate():
    p = Packet.new(PacketRequest.LIVENESS)
    q = attach_payload(p, b"x")
    assert p.payload is None
    assert retrieve_payload(q) == b"x"


def test_payload_is_copied():
    data = bytearray(b"array")
    p = Packet.new(PacketRequest.LIVENESS).with_payload(data)
    data[0] = ord("b")
    assert p.retrieve_payload() == b"array"


def test_missing_data():
    with pytest.raises(MissingData):
        Packet.new(PacketRequest.LIVENESS).retrieve_payload()


def test_format_mismatch():
    raw = cbor2.dumps({"secret": 50, "request": 1, "response": 1, "data": None})
    p = decode(raw)
    assert p.response == PacketResponse.OK
    with pytest.raises(FormatMismatch):
        p.retrieve_payload()


def test_corrupt_data():
    p = Packet(request=PacketRequest.LIVENESS, payload=PacketData(crc=0, data=b"\x01" * 100))
    with pytest.raises(CorruptData):
        p.retrieve_payload()


@pytest.mark.parametrize("bit", [0, 5, 13, 31])
def test_bit_flip_in_payload_is_detected(bit):
    payload = b"F7\x00\xff"
    good = PacketData.wrap(payload)
    flipped = bytearray(payload)
    flipped[bit // 8] ^= 1 << (bit % 8)
    p = Packet(request=PacketRequest.RESERVE_TICKET, payload=PacketData(crc=good.crc, data=bytes(flipped)))
    with pytest.raises(CorruptData):
        decode(encode(p)).retrieve_payload()


def test_integrity_errors_share_a_base():
    assert issubclass(CorruptData, IntegrityError)
    assert issubclass(IntegrityError, ValueError)


def test_decoder_accepts_byte_string_payload():
    raw = cbor2.dumps(
        {"secret": 51, "request": 2, "response": 1, "data": {"crc": crc16_ibm_sdlc(b"hi"), "data": b"hi"}}
    )
    assert decode(raw).retrieve_payload() == b"hi"


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\xff\x00garbage",
        cbor2.dumps([1, 2, 3]),
        cbor2.dumps({"secret": 51, "request": 1, "response": 0}),
        cbor2.dumps({"secret": 51, "request": 9, "response": 0, "data": None}),
        cbor2.dumps({"secret": 51, "request": 1, "response": 7, "data": None}),
        cbor2.dumps({"secret": 300, "request": 1, "response": 0, "data": None}),
        cbor2.dumps({"secret": 51, "request": 1, "response": 0, "data": {"crc": 1}}),
        cbor2.dumps({"secret": 51, "request": 1, "response": 0, "data": {"crc": 1, "data": [256]}}),
    ],
)
def test_decode_rejects_non_packets(raw):
    with pytest.raises(DecodeError):
        decode(raw)
