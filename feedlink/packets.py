"""MQTT 3.1.1 wire constants and the small encoders shared by the client."""

from __future__ import annotations

from enum import IntEnum

PROTOCOL_NAME = b"MQTT"
PROTOCOL_LEVEL = 4

MAX_HEADER_SIZE = 5
"""Largest fixed header: one type byte plus up to four length bytes."""

DEFAULT_BUFFER_SIZE = 1024
DEFAULT_KEEPALIVE = 15
DEFAULT_SOCKET_TIMEOUT = 15

MAX_REMAINING_LENGTH = 268_435_455
MAX_STRING_LENGTH = 0xFFFF

QOS0 = 0 << 1
QOS1 = 1 << 1
QOS2 = 2 << 1


class PacketType(IntEnum):
    """Control packet types, already shifted into the high nibble."""

    CONNECT = 1 << 4
    CONNACK = 2 << 4
    PUBLISH = 3 << 4
    PUBACK = 4 << 4
    PUBREC = 5 << 4
    PUBREL = 6 << 4
    PUBCOMP = 7 << 4
    SUBSCRIBE = 8 << 4
    SUBACK = 9 << 4
    UNSUBSCRIBE = 10 << 4
    UNSUBACK = 11 << 4
    PINGREQ = 12 << 4
    PINGRESP = 13 << 4
    DISCONNECT = 14 << 4
    RESERVED = 15 << 4


class ClientState(IntEnum):
    """Connection state of a client; positive values are CONNACK return codes."""

    CONNECTION_TIMEOUT = -4
    CONNECTION_LOST = -3
    CONNECT_FAILED = -2
    DISCONNECTED = -1
    CONNECTED = 0
    CONNECT_BAD_PROTOCOL = 1
    CONNECT_BAD_CLIENT_ID = 2
    CONNECT_UNAVAILABLE = 3
    CONNECT_BAD_CREDENTIALS = 4
    CONNECT_UNAUTHORIZED = 5


def encode_remaining_length(length: int) -> bytes:
    """Encode a remaining-length value as 1 to 4 variable-length bytes."""
    if length < 0 or length > MAX_REMAINING_LENGTH:
        raise ValueError(f"remaining length out of range: {length}")
    out = bytearray()
    while True:
        digit = length & 0x7F
        length >>= 7
        if length:
            digit |= 0x80
        out.append(digit)
        if not length:
            return bytes(out)


def encode_string(text: str | bytes) -> bytes:
    """Encode text as a two-byte big-endian length followed by its bytes."""
    data = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    if len(data) > MAX_STRING_LENGTH:
        raise ValueError(f"string too long for MQTT: {len(data)} bytes")
    return len(data).to_bytes(2, "big") + data


def fixed_header(header: int, length: int) -> bytes:
    """Build the fixed header: the type/flags byte then the remaining length."""
    if not 0 <= header <= 0xFF:
        raise ValueError(f"header byte out of range: {header}")
    return bytes([header]) + encode_remaining_length(length)