from __future__ import annotations

PACKET_TAG = 51  # format sentinel carried in the "secret" field

LIVENESS = 1
LIST_FLIGHTS = 2
RESERVE_TICKET = 3

NO_REPLY = 0
OK = 1
MALFORMED = 2
SOLD_OUT = 3

CRC16_POLY_REFLECTED = 0x8408  # 0x1021 bit-reversed
CRC16_INIT = 0xFFFF
CRC16_XOROUT = 0xFFFF

HANDSHAKE_TIMEOUT_S = 1.0
RECV_BUFFER_SIZE = 65535
SOCKET_CHECK_INTERVAL_S = 0.5

SEAT_LETTERS = "ABCDEF"
MIN_ROWS = 1
MAX_ROWS = 42
FLIGHT_NUMBER_MAX = 0xFFFFFFFF

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
