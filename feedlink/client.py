"""A small blocking MQTT 3.1.1 client driven by polling :meth:`MQTTClient.loop`."""

from __future__ import annotations

import ipaddress
import select
import socket
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol, Sequence, Union

from .packets import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_KEEPALIVE,
    DEFAULT_SOCKET_TIMEOUT,
    MAX_HEADER_SIZE,
    PROTOCOL_LEVEL,
    PROTOCOL_NAME,
    QOS1,
    ClientState,
    PacketType,
    encode_string,
    fixed_header,
)

MessageCallback = Callable[[str, bytes], None]
Host = Union[str, bytes, bytearray, Sequence[int], ipaddress.IPv4Address]

_POLL_INTERVAL = 0.001


class PayloadStream(Protocol):
    """Anything that accepts streamed payload bytes."""

    def write(self, data: bytes) -> object: ...


class Transport(ABC):
    """A byte-oriented network connection used by :class:`MQTTClient`."""

    @abstractmethod
    def connect(self, host: str, port: int) -> bool:
        """Open the connection; return whether it succeeded."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Send bytes and return how many were accepted."""

    @abstractmethod
    def available(self) -> int:
        """Return the number of bytes that can be read without waiting."""

    @abstractmethod
    def read(self) -> int:
        """Return the next received byte, or -1 if none is waiting."""

    @abstractmethod
    def flush(self) -> None:
        """Discard any received data that has not been read."""

    @abstractmethod
    def stop(self) -> None:
        """Close the connection."""

    @abstractmethod
    def connected(self) -> bool:
        """Return whether the connection is open or data is still waiting."""


class SocketTransport(Transport):
    """A :class:`Transport` over a TCP socket."""

    def __init__(self, timeout: float = 15.0) -> None:
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._pending = bytearray()

    def connect(self, host: str, port: int) -> bool:
        self.stop()
        try:
            self._sock = socket.create_connection((host, port), timeout=self.timeout)
        except OSError:
            self._sock = None
            return False
        return True

    def write(self, data: bytes) -> int:
        if self._sock is None:
            return 0
        try:
            self._sock.sendall(data)
        except OSError:
            self._close()
            return 0
        return len(data)

    def available(self) -> int:
        if not self._pending and self._sock is not None:
            try:
                readable, _, _ = select.select([self._sock], [], [], 0)
            except (OSError, ValueError):
                self._close()
                return 0
            if readable:
                try:
                    chunk = self._sock.recv(4096)
                except OSError:
                    chunk = b""
                if chunk:
                    self._pending.extend(chunk)
                else:
                    self._close()
        return len(self._pending)

    def read(self) -> int:
        if not self.available():
            return -1
        byte = self._pending[0]
        del self._pending[0]
        return byte

    def flush(self) -> None:
        self._pending.clear()

    def stop(self) -> None:
        self._pending.clear()
        self._close()

    def connected(self) -> bool:
        return self._sock is not None or bool(self._pending)

    def _close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None


def _normalise_host(host: Host) -> str:
    if isinstance(host, ipaddress.IPv4Address):
        return str(host)
    if isinstance(host, (bytes, bytearray, tuple, list)):
        octets = bytes(host)
        if len(octets) != 4:
            raise ValueError(f"an IPv4 address needs 4 octets, got {len(octets)}")
        return str(ipaddress.IPv4Address(octets))
    return str(host)


def _encode(text: Union[str, bytes]) -> bytes:
    return text.encode("utf-8") if isinstance(text, str) else bytes(text)


def _state_from_code(code: int) -> int:
    try:
        return ClientState(code)
    except ValueError:
        return code


def _pause() -> None:
    time.sleep(_POLL_INTERVAL)


class MQTTClient:
    """An MQTT client that sends over a :class:`Transport` and is serviced by polling."""

    def __init__(
        self,
        transport: Optional[Transport] = None,
        host: Optional[Host] = None,
        port: int = 1883,
        callback: Optional[MessageCallback] = None,
        stream: Optional[PayloadStream] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.host: Optional[str] = None
        self.port = port
        if host is not None:
            self.set_server(host, port)
        self.callback = callback
        self.stream = stream
        self.keep_alive = DEFAULT_KEEPALIVE
        self.socket_timeout = DEFAULT_SOCKET_TIMEOUT
        self._clock = clock
        self._buffer_size = DEFAULT_BUFFER_SIZE
        self._state: int = ClientState.DISCONNECTED
        self._next_msg_id = 1
        self._last_in = 0.0
        self._last_out = 0.0
        self._ping_outstanding = False

    @property
    def state(self) -> int:
        """The current :class:`ClientState`, or a raw CONNACK code."""
        return self._state

    @property
    def buffer_size(self) -> int:
        """Largest packet, in bytes, that can be sent or received whole."""
        return self._buffer_size

    @buffer_size.setter
    def buffer_size(self, size: int) -> None:
        if not 1 <= size <= 0xFFFF:
            raise ValueError(f"buffer size must be between 1 and 65535, got {size}")
        self._buffer_size = size

    def set_server(self, host: Host, port: int) -> "MQTTClient":
        """Set the broker address: a host name, or an IPv4 address in any common form."""
        self.host = _normalise_host(host)
        self.port = port
        return self

    def connect(
        self,
        client_id: Union[str, bytes],
        username: Optional[Union[str, bytes]] = None,
        password: Optional[Union[str, bytes]] = None,
        will_topic: Optional[Union[str, bytes]] = None,
        will_qos: int = 0,
        will_retain: bool = False,
        will_message: Optional[Union[str, bytes]] = None,
        clean_session: bool = True,
    ) -> bool:
        """Connect to the broker; return whether the session is established."""
        if self.connected():
            return True
        transport = self._require_transport()
        if not transport.connected():
            if self.host is None:
                raise RuntimeError("no server has been set")
            if not transport.connect(self.host, self.port):
                self._state = ClientState.CONNECT_FAILED
                return False

        self._next_msg_id = 1
        flags = 0
        if will_topic is not None:
            flags = 0x04 | (will_qos << 3) | (int(bool(will_retain)) << 5)
        if clean_session:
            flags |= 0x02
        if username is not None:
            flags |= 0x80
            if password is not None:
                flags |= 0x40

        body = bytearray(encode_string(PROTOCOL_NAME))
        body.append(PROTOCOL_LEVEL)
        body.append(flags & 0xFF)
        body += int(self.keep_alive).to_bytes(2, "big")

        fields = [client_id]
        if will_topic is not None:
            fields += [will_topic, will_message if will_message is not None else b""]
        if username is not None:
            fields.append(username)
            if password is not None:
                fields.append(password)
        for field in fields:
            encoded = _encode(field)
            if MAX_HEADER_SIZE + len(body) + 2 + len(encoded) > self._buffer_size:
                transport.stop()
                return False
            body += encode_string(encoded)

        self._send_packet(PacketType.CONNECT, bytes(body))
        self._last_in = self._last_out = self._clock()

        while not transport.available():
            if self._clock() - self._last_in >= self.socket_timeout:
                self._state = ClientState.CONNECTION_TIMEOUT
                transport.stop()
                return False
            _pause()

        packet, _ = self._read_packet()
        if len(packet) == 4:
            if packet[3] == 0:
                self._last_in = self._clock()
                self._ping_outstanding = False
                self._state = ClientState.CONNECTED
                return True
            self._state = _state_from_code(packet[3])
        transport.stop()
        return False

    def disconnect(self) -> None:
        """Send DISCONNECT and close the transport."""
        transport = self._require_transport()
        transport.write(bytes([PacketType.DISCONNECT, 0]))
        self._state = ClientState.DISCONNECTED
        transport.flush()
        transport.stop()
        self._last_in = self._last_out = self._clock()

    def publish(
        self,
        topic: Union[str, bytes],
        payload: Optional[Union[str, bytes]] = None,
        retained: bool = False,
    ) -> bool:
        """Publish a QoS 0 message; return whether it was sent whole."""
        if not self.connected():
            return False
        topic_bytes = _encode(topic)
        data = _encode(payload) if payload is not None else b""
        if self._buffer_size < MAX_HEADER_SIZE + 2 + len(topic_bytes) + len(data):
            return False
        header = PacketType.PUBLISH | (1 if retained else 0)
        return self._send_packet(header, encode_string(topic_bytes) + data)

    def begin_publish(self, topic: Union[str, bytes], length: int, retained: bool = False) -> bool:
        """Send a PUBLISH header for a payload of ``length`` bytes written later with :meth:`write`."""
        if not self.connected():
            return False
        topic_field = encode_string(_encode(topic))
        header = PacketType.PUBLISH | (1 if retained else 0)
        data = fixed_header(header, length + len(topic_field)) + topic_field
        written = self._require_transport().write(data)
        self._last_out = self._clock()
        return written == len(data)

    def write(self, data: Union[int, bytes, bytearray]) -> int:
        """Write payload bytes of a message started with :meth:`begin_publish`."""
        chunk = bytes([data]) if isinstance(data, int) else bytes(data)
        self._last_out = self._clock()
        return self._require_transport().write(chunk)

    def end_publish(self) -> bool:
        """Finish a message started with :meth:`begin_publish`."""
        return True

    def subscribe(self, topic: Optional[Union[str, bytes]], qos: int = 0) -> bool:
        """Send SUBSCRIBE for ``topic`` at QoS 0 or 1; return whether it was sent."""
        if topic is None or qos > 1 or qos < 0:
            return False
        topic_bytes = _encode(topic)
        if self._buffer_size < 9 + len(topic_bytes):
            return False
        if not self.connected():
            return False
        body = self._take_msg_id() + encode_string(topic_bytes) + bytes([qos])
        return self._send_packet(PacketType.SUBSCRIBE | QOS1, body)

    def unsubscribe(self, topic: Optional[Union[str, bytes]]) -> bool:
        """Send UNSUBSCRIBE for ``topic``; return whether it was sent."""
        if topic is None:
            return False
        topic_bytes = _encode(topic)
        if self._buffer_size < 9 + len(topic_bytes):
            return False
        if not self.connected():
            return False
        body = self._take_msg_id() + encode_string(topic_bytes)
        return self._send_packet(PacketType.UNSUBSCRIBE | QOS1, body)

    def loop(self) -> bool:
        """Keep the session alive and handle at most one incoming packet."""
        if not self.connected():
            return False
        transport = self._require_transport()
        now = self._clock()
        if now - self._last_in > self.keep_alive or now - self._last_out > self.keep_alive:
            if self._ping_outstanding:
                self._state = ClientState.CONNECTION_TIMEOUT
                transport.stop()
                return False
            transport.write(bytes([PacketType.PINGREQ, 0]))
            self._last_out = self._last_in = now
            self._ping_outstanding = True

        if transport.available():
            packet, llen = self._read_packet()
            if packet:
                self._last_in = now
                self._dispatch(packet, llen, now)
            elif not self.connected():
                return False
        return True

    def connected(self) -> bool:
        """Return whether the session is up, noticing a dropped transport."""
        transport = self.transport
        if transport is None:
            return False
        if not transport.connected():
            if self._state == ClientState.CONNECTED:
                self._state = ClientState.CONNECTION_LOST
                transport.flush()
                transport.stop()
            return False
        return self._state == ClientState.CONNECTED

    def _require_transport(self) -> Transport:
        if self.transport is None:
            raise RuntimeError("no transport has been set")
        return self.transport

    def _take_msg_id(self) -> bytes:
        self._next_msg_id = (self._next_msg_id + 1) & 0xFFFF or 1
        return self._next_msg_id.to_bytes(2, "big")

    def _send_packet(self, header: int, body: bytes) -> bool:
        data = fixed_header(header, len(body)) + body
        written = self._require_transport().write(data)
        self._last_out = self._clock()
        return written == len(data)

    def _read_byte(self) -> Optional[int]:
        transport = self._require_transport()
        started = self._clock()
        while not transport.available():
            if self._clock() - started >= self.socket_timeout:
                return None
            _pause()
        return transport.read() & 0xFF

    def _read_packet(self) -> tuple[bytes, int]:
        """Read one packet; an empty result means it failed or was dropped."""
        first = self._read_byte()
        if first is None:
            return b"", 0
        packet = bytearray([first])
        is_publish = (first & 0xF0) == PacketType.PUBLISH
        length = 0
        multiplier = 1
        while True:
            if len(packet) == MAX_HEADER_SIZE:
                self._state = ClientState.DISCONNECTED
                self._require_transport().stop()
                return b"", 0
            digit = self._read_byte()
            if digit is None:
                return b"", 0
            packet.append(digit)
            length += (digit & 0x7F) * multiplier
            multiplier <<= 7
            if not digit & 0x80:
                break
        llen = len(packet) - 1

        skip = 0
        start = 0
        if is_publish:
            for _ in range(2):
                byte = self._read_byte()
                if byte is None:
                    return b"", llen
                packet.append(byte)
            skip = (packet[llen + 1] << 8) + packet[llen + 2]
            start = 2
            if first & QOS1:
                skip += 2

        index = len(packet)
        for _ in range(start, length):
            digit = self._read_byte()
            if digit is None:
                return b"", llen
            if self.stream is not None and is_publish and index - llen - 2 > skip:
                self.stream.write(bytes([digit]))
            if len(packet) < self._buffer_size:
                packet.append(digit)
            index += 1

        if self.stream is None and index > self._buffer_size:
            return b"", llen
        return bytes(packet), llen

    def _dispatch(self, packet: bytes, llen: int, now: float) -> None:
        kind = packet[0] & 0xF0
        transport = self._require_transport()
        if kind == PacketType.PUBLISH:
            if self.callback is None:
                return
            topic_length = (packet[llen + 1] << 8) + packet[llen + 2]
            topic_end = llen + 3 + topic_length
            topic = packet[llen + 3:topic_end].decode("utf-8", errors="replace")
            if (packet[0] & 0x06) == QOS1:
                msg_id = packet[topic_end:topic_end + 2]
                self.callback(topic, packet[topic_end + 2:])
                transport.write(bytes([PacketType.PUBACK, 2]) + msg_id)
                self._last_out = now
            else:
                self.callback(topic, packet[topic_end:])
        elif kind == PacketType.PINGREQ:
            transport.write(bytes([PacketType.PINGRESP, 0]))
        elif kind == PacketType.PINGRESP:
            self._ping_outstanding = False