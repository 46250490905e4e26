"""Device switch state and sensor readings exchanged with the web dashboard."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from typing import NamedTuple

DEVICE_KEY = '"device":'
STATE_KEY = '"state":'

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class DeviceCommand(NamedTuple):
    """A request to switch ``device`` to ``state``."""

    device: int
    state: str


def _index_of(text: str, sub: str, start: int = 0) -> int:
    # A negative start position behaves as an out-of-range one: nothing is found.
    if start < 0 or start >= len(text):
        return -1
    return text.find(sub, start)


def _substring(text: str, left: int, right: int) -> str:
    # Negative bounds behave as past-the-end positions; reversed bounds are swapped.
    size = len(text)
    left = sys.maxsize if left < 0 else left
    right = sys.maxsize if right < 0 else right
    if left > right:
        left, right = right, left
    if left >= size:
        return ""
    return text[left:min(right, size)]


def _to_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def parse_device_message(message: str) -> DeviceCommand:
    """Pull the device number and state out of a dashboard message."""
    device_pos = _index_of(message, DEVICE_KEY)
    state_pos = _index_of(message, STATE_KEY)

    comma_pos = _index_of(message, ",", device_pos)
    device = _to_int(_substring(message, device_pos + len(DEVICE_KEY), comma_pos).strip())

    quote1 = _index_of(message, '"', state_pos + len(STATE_KEY))
    quote2 = _index_of(message, '"', quote1 + 1)
    state = _substring(message, quote1 + 1, quote2)
    return DeviceCommand(device, state)


@dataclass
class OutputStates:
    """The switch state of the four dashboard outputs."""

    output1: str = "off"
    output2: str = "off"
    output3: str = "off"
    output4: str = "off"

    def apply_message(self, message: str) -> bool:
        """Apply a dashboard message; return whether it named a known output."""
        device, state = parse_device_message(message)
        if 1 <= device <= 4:
            setattr(self, f"output{device}", state)
            return True
        return False


def sensor_json(temperature: int, humidity: int, lux: int, soil: int, distance: int) -> str:
    """Format sensor readings as the JSON text pushed to dashboard clients."""
    return (
        f'{{ "temperature": {int(temperature)}'
        f', "humidity": {int(humidity)}'
        f', "lux": {int(lux)}'
        f', "soil": {int(soil)}'
        f', "distance": {int(distance)}}}'
    )