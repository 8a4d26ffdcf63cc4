"""Normalization of loosely-structured treadmill telemetry frames.

Telemetry bridges disagree on field names and nesting, so a frame is run
through an ordered list of extractors. The first extractor that yields a
numeric value wins, independently for speed and incline:

1. a nested ``data`` object (``{"data": {"speed_kmh": 5.2}}``)
2. flat top-level fields (``{"speedKmh": "3.4", "inc": 1.0}``)
3. a typed single-value message (``{"type": "SET_SPEED", "value": 6}``)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from .telemetry_state import TelemetryUpdate

NESTED_CONTAINER_KEY = "data"

NESTED_SPEED_KEYS = ("speed_kmh", "speed", "kph")
NESTED_INCLINE_KEYS = ("incline_pct", "incline", "grade")

FLAT_SPEED_KEYS = ("speed_kmh", "speed", "speedKmh", "kph", "spd")
FLAT_INCLINE_KEYS = ("incline_pct", "incline", "inclinePct", "grade", "inc")

TYPED_SPEED_MESSAGES = frozenset({"SPEED", "SET_SPEED"})
TYPED_INCLINE_MESSAGES = frozenset({"INCLINE", "SET_INCLINE"})


def coerce_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it is not numeric."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number):
        return None
    return number


def _first_number(source: Mapping[str, Any], keys: Sequence[str]) -> Optional[float]:
    for key in keys:
        number = coerce_number(source.get(key))
        if number is not None:
            return number
    return None


Extractor = Callable[[Mapping[str, Any]], Optional[float]]


@dataclass(frozen=True, slots=True)
class FieldExtractors:
    """Ordered extractors for one canonical field."""

    name: str
    extractors: Sequence[Extractor]

    def extract(self, payload: Mapping[str, Any]) -> Optional[float]:
        for extractor in self.extractors:
            value = extractor(payload)
            if value is not None:
                return value
        return None


def _nested(keys: Sequence[str]) -> Extractor:
    def extract(payload: Mapping[str, Any]) -> Optional[float]:
        container = payload.get(NESTED_CONTAINER_KEY)
        if not isinstance(container, Mapping):
            return None
        return _first_number(container, keys)

    return extract


def _flat(keys: Sequence[str]) -> Extractor:
    def extract(payload: Mapping[str, Any]) -> Optional[float]:
        return _first_number(payload, keys)

    return extract


def _typed(message_types: frozenset[str]) -> Extractor:
    def extract(payload: Mapping[str, Any]) -> Optional[float]:
        if payload.get("type") not in message_types:
            return None
        return coerce_number(payload.get("value"))

    return extract


SPEED_FIELD = FieldExtractors(
    "speed",
    (
        _nested(NESTED_SPEED_KEYS),
        _flat(FLAT_SPEED_KEYS),
        _typed(TYPED_SPEED_MESSAGES),
    ),
)

INCLINE_FIELD = FieldExtractors(
    "incline",
    (
        _nested(NESTED_INCLINE_KEYS),
        _flat(FLAT_INCLINE_KEYS),
        _typed(TYPED_INCLINE_MESSAGES),
    ),
)


def normalize_frame(payload: Any) -> Optional[TelemetryUpdate]:
    """Extract a speed/incline update from a decoded frame.

    Returns ``None`` when the frame carries no usable data. That is a skipped
    frame, not an error.
    """

    if not isinstance(payload, Mapping):
        return None

    update = TelemetryUpdate(
        speed=SPEED_FIELD.extract(payload),
        incline=INCLINE_FIELD.extract(payload),
    )
    if update.is_empty:
        return None
    return update
