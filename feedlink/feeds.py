"""Named data feeds on an MQTT broker, addressed as ``<username>/feeds/<feed>``."""

from __future__ import annotations

import random
import time
from typing import Optional, Union

from .client import MQTTClient

DEFAULT_SERVER = "io.adafruit.com"
DEFAULT_PORT = 1883
CLIENT_ID_PREFIX = "ESP32Client"
WATCHED_FEEDS = ("feed_2", "feed_3")
STATUS_FEED = "WIFI"
RETRY_DELAY = 1.0


class FeedClient:
    """Publishes to and listens on a user's feeds through an :class:`MQTTClient`."""

    def __init__(self, client: MQTTClient, username: str, key: str) -> None:
        self.client = client
        self.username = username
        self.key = key
        client.set_server(DEFAULT_SERVER, DEFAULT_PORT)
        client.callback = self.handle_message

    def topic(self, feed: str) -> str:
        """Return the full topic name of ``feed``."""
        return f"{self.username}/feeds/{feed}"

    def handle_message(self, topic: str, payload: Union[bytes, str]) -> Optional[str]:
        """Print and return the payload of a message on a watched feed; ignore others."""
        message = payload.decode("latin-1") if isinstance(payload, (bytes, bytearray)) else str(payload)
        if any(topic == self.topic(feed) for feed in WATCHED_FEEDS):
            print(message)
            return message
        return None

    def publish_data(self, feed: str, data: str) -> bool:
        """Publish ``data`` to ``feed``; return whether it was sent."""
        if self.client.connected():
            return self.client.publish(self.topic(feed), data)
        print("MQTT client not connected")
        return False

    def connect(self, local_ip: str) -> bool:
        """Connect, subscribe to the watched feeds and announce ``local_ip``."""
        print("Connecting to MQTT...")
        client_id = f"{CLIENT_ID_PREFIX}{random.randrange(0, 1000)}"
        if self.client.connect(client_id, self.username, self.key):
            print("MQTT Connected")
            for feed in WATCHED_FEEDS:
                self.client.subscribe(self.topic(feed))
            print("Start")
            self.publish_data(STATUS_FEED, local_ip)
            return True
        print(f"MQTT connection failed, rc={int(self.client.state)}")
        time.sleep(RETRY_DELAY)
        return False

    def maintain(self, local_ip: str) -> bool:
        """Service the connection, reconnecting if it has dropped."""
        if self.client.connected():
            return self.client.loop()
        return self.connect(local_ip)