"""Outbound command vocabulary for the treadmill websocket protocol.

Every command is a JSON object ``{"type": <name>}`` optionally carrying a
numeric ``value``:

    {"type": "REQUEST_CONTROL"}
    {"type": "GET_STATE"}
    {"type": "SET_SPEED_NOW", "value": 5.5}
    {"type": "SET_INCLINE_NOW", "value": 2.0}
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class CommandType(str, Enum):
    """Command names understood by the telemetry endpoint."""

    REQUEST_CONTROL = "REQUEST_CONTROL"
    """Ask the endpoint to grant this client control of the machine."""

    GET_STATE = "GET_STATE"
    """Request a fresh telemetry frame (needed by pull-only protocols)."""

    SET_SPEED_NOW = "SET_SPEED_NOW"
    """Set the target belt speed in km/h."""

    SET_INCLINE_NOW = "SET_INCLINE_NOW"
    """Set the target incline in percent."""


def build_command(command: CommandType | str, value: Optional[float] = None) -> Dict[str, Any]:
    name = command.value if isinstance(command, CommandType) else str(command)
    if value is None:
        return {"type": name}
    return {"type": name, "value": value}


def encode_command(command: CommandType | str, value: Optional[float] = None) -> str:
    """Serialise a command to the compact JSON text sent over the link."""

    return json.dumps(build_command(command, value), separators=(",", ":"))
