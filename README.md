# feedlink

`feedlink` is a compact MQTT 3.1.1 client that talks through a small
transport interface and is serviced by polling. Alongside it are helpers for
per-user feed topics (`<username>/feeds/<feed>`) and for the messages
exchanged with a sensor dashboard.

It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

- `feedlink.packets` – wire-level building blocks: the `PacketType` and
  `ClientState` enumerations, `encode_remaining_length`, `encode_string` and
  `fixed_header`, plus the protocol constants and defaults (buffer size 1024
  bytes, keep-alive 15 s, socket timeout 15 s).
- `feedlink.client` – `MQTTClient`, the protocol engine; `Transport`, the
  abstract interface it talks through; and `SocketTransport`, a TCP
  implementation of it.
- `feedlink.feeds` – `FeedClient`, which maps feed names to topics, watches
  two control feeds, publishes data and keeps the connection going.
- `feedlink.dashboard` – `parse_device_message`, `OutputStates` and
  `sensor_json`.

## The MQTT client

```python
from feedlink.client import MQTTClient, SocketTransport

def on_message(topic, payload):
    print(topic, payload)

client = MQTTClient(SocketTransport(), host="localhost", port=1883, callback=on_message)

password = "password"
if client.connect("sensor-node", username="user", password=password):
    client.subscribe("user/feeds/feed_2")
    client.publish("user/feeds/temperature", "21")
    while client.connected():
        client.loop()
```

The server can be given as a host name or as an IPv4 address in any common
form (a string, four octets, or an `ipaddress.IPv4Address`), either to the
constructor or later with `set_server(host, port)`.

`connect` also takes a will (`will_topic`, `will_qos`, `will_retain`,
`will_message`) and `clean_session`. `connect`, `publish`, `subscribe`,
`unsubscribe` and `loop` return a boolean rather than raising, so a caller can
simply retry. After a failure the `state` property tells why: a
`ClientState` value such as `CONNECT_FAILED`, `CONNECTION_TIMEOUT` or
`CONNECTION_LOST`, or the return code the broker sent in its CONNACK.

`loop` must be called regularly. Each call sends a PINGREQ when the
keep-alive interval has passed, closes the connection if an earlier ping went
unanswered, and handles at most one incoming packet: publications go to the
callback as `(topic, payload_bytes)`, QoS 1 publications are acknowledged with
PUBACK, and pings are answered.

The client's limits are attributes: `keep_alive` and `socket_timeout` in
seconds, and `buffer_size` (1 to 65535) for the largest packet sent or
received whole. A publication that does not fit the buffer is refused, and an
incoming one that does not fit is dropped — unless a `stream` was given, in
which case the payload bytes are written to it as they arrive and the callback
receives what fitted.

Payloads too large to hold at once can be sent in pieces:

```python
client.begin_publish("user/feeds/log", len(data), retained=False)
client.write(data)
client.end_publish()
```

Any `Transport` implementation (`connect`, `write`, `available`, `read`,
`flush`, `stop`, `connected`) can be handed to `MQTTClient`, which makes the
client easy to drive from tests. A `clock` callable can replace
`time.monotonic` for the same purpose.

## Feeds

```python
from feedlink.feeds import FeedClient

feeds = FeedClient(client, username="user", key="placeholder")
feeds.connect("192.0.2.10")
feeds.publish_data("temperature", "21")
feeds.maintain("192.0.2.10")
```

Creating a `FeedClient` points the client at `io.adafruit.com:1883` and
installs `handle_message` as its callback. `connect` connects with a client id
of `ESP32Client` followed by a random number below 1000, subscribes to
`feed_2` and `feed_3`, and publishes the given local address to the `WIFI`
feed; on failure it prints the state and waits a second. `handle_message`
prints and returns the payload of messages on the two watched feeds and
ignores others. `maintain` runs `loop` while connected and reconnects
otherwise.

## Dashboard messages

```python
from feedlink.dashboard import OutputStates, parse_device_message, sensor_json

states = OutputStates()
states.apply_message('{"device": 2, "state": "on"}')   # True; states.output2 == "on"

parse_device_message('{"device": 1, "state": "off"}')  # DeviceCommand(device=1, state='off')
sensor_json(temperature=24, humidity=60, lux=512, soil=300, distance=42)
```

`parse_device_message` locates the `"device":` and `"state":` keys by plain
text search rather than full JSON parsing. `OutputStates` holds four outputs,
all starting as `"off"`; `apply_message` returns `False` for a device number
outside 1 to 4.

## What it does not do

- Outgoing publications are QoS 0 only; subscriptions accept QoS 0 or 1, and
  QoS 2 is not supported. There is no TLS transport.
- SUBACK and UNSUBACK replies are read but not checked.
- The dashboard module only builds and parses messages: there is no web
  server, WebSocket endpoint or static file serving.
- There is no command-line program; the package is used as a library.