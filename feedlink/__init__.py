"""Polling MQTT 3.1.1 client, feed topic helpers and dashboard message codec."""

__version__ = "0.1.0"