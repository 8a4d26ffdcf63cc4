"""Tests for telemetry frame normalization."""

import pytest

from treadmill_sync.normalizer import coerce_number, normalize_frame
from treadmill_sync.telemetry_state import TelemetryUpdate


def test_nested_container_speed_only():
    update = normalize_frame({"data": {"speed_kmh": 5.2}})

    assert update == TelemetryUpdate(speed=5.2, incline=None)


def test_flat_extended_keys_with_string_values():
    update = normalize_frame({"speedKmh": "3.4", "inc": 1.0})

    assert update == TelemetryUpdate(speed=3.4, incline=1.0)


def test_typed_speed_message():
    assert normalize_frame({"type": "SET_SPEED", "value": 6}) == TelemetryUpdate(speed=6.0)
    assert normalize_frame({"type": "SPEED", "value": "7.5"}) == TelemetryUpdate(speed=7.5)


def test_typed_incline_message():
    assert normalize_frame({"type": "INCLINE", "value": 2}) == TelemetryUpdate(incline=2.0)
    assert normalize_frame({"type": "SET_INCLINE", "value": -1.5}) == TelemetryUpdate(
        incline=-1.5
    )


def test_unrecognised_shape_is_not_an_update():
    assert normalize_frame({"foo": 1}) is None
    assert normalize_frame({"type": "HEARTBEAT", "value": 3}) is None
    assert normalize_frame({}) is None


@pytest.mark.parametrize("payload", [None, [1, 2], "speed", 4.2])
def test_non_object_payloads_are_skipped(payload):
    assert normalize_frame(payload) is None


def test_nested_wins_over_flat_when_both_present():
    update = normalize_frame({"data": {"speed": 4.0}, "speed": 9.0, "grade": 3})

    assert update == TelemetryUpdate(speed=4.0, incline=3.0)


def test_fields_are_resolved_independently():
    update = normalize_frame({"data": {"incline_pct": 2.0}, "kph": 6.5})

    assert update == TelemetryUpdate(speed=6.5, incline=2.0)


def test_nested_candidate_order():
    update = normalize_frame(
        {"data": {"kph": 1.0, "speed": 2.0, "speed_kmh": 3.0, "grade": 4, "incline": 5}}
    )

    assert update == TelemetryUpdate(speed=3.0, incline=5.0)


def test_unparseable_candidate_falls_through_to_next_source():
    update = normalize_frame({"data": {"speed": "fast"}, "spd": 2.5})

    assert update == TelemetryUpdate(speed=2.5)


def test_flat_fields_win_over_typed_value():
    update = normalize_frame({"type": "SPEED", "value": 8.0, "speed": 4.0})

    assert update == TelemetryUpdate(speed=4.0)


def test_nested_container_must_be_an_object():
    assert normalize_frame({"data": "speed_kmh=5"}) is None
    assert normalize_frame({"data": [5.0], "speed": 1.0}) == TelemetryUpdate(speed=1.0)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (5, 5.0),
        (5.25, 5.25),
        ("3.4", 3.4),
        (" 2 ", 2.0),
        ("-1.5", -1.5),
        ("abc", None),
        ("", None),
        ("nan", None),
        (float("inf"), None),
        (True, None),
        (None, None),
        ({"value": 1}, None),
        ([1], None),
    ],
)
def test_coerce_number(raw, expected):
    assert coerce_number(raw) == expected
