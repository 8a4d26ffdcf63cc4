import json
from pathlib import Path

import pytest

from treadmill_sync.recording import SessionRecorder, normalize_landmarks
from treadmill_sync.telemetry_state import TelemetryState

LANDMARKS = [
    {"x": 0.5, "y": 0.25, "z": -0.1, "visibility": 0.9},
    {"x": 0.4, "y": 0.3, "z": 0.0},
]


def _recorder(tmp_path: Path, state: TelemetryState) -> SessionRecorder:
    return SessionRecorder(lambda: state, directory=tmp_path, clock=lambda: 1700000000.5)


def test_samples_are_ignored_until_recording(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path, TelemetryState())

    assert recorder.record_pose(LANDMARKS) is None
    assert len(recorder) == 0


def test_recorded_frames_carry_telemetry_snapshot(tmp_path: Path) -> None:
    state = TelemetryState(speed=5.5, incline=2.0, linked=True)
    recorder = _recorder(tmp_path, state)
    recorder.start()

    first = recorder.record_pose(LANDMARKS)
    second = recorder.record_pose(None)

    assert first is not None and second is not None
    assert first.frame_id == 0
    assert second.frame_id == 1
    assert first.telemetry is state
    assert first.landmarks == LANDMARKS
    assert second.landmarks is None
    assert first.timestamp_ms == 1700000000500


def test_stop_and_clear(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path, TelemetryState())
    recorder.start()
    recorder.record_pose(LANDMARKS)

    recorder.stop()
    assert recorder.record_pose(LANDMARKS) is None
    assert len(recorder) == 1

    recorder.clear()
    assert recorder.frames == []


def test_export_writes_session_json(tmp_path: Path) -> None:
    state = TelemetryState(speed=4.2, incline=1.0, linked=True)
    recorder = _recorder(tmp_path, state)
    recorder.start()
    recorder.record_pose(LANDMARKS)

    path = recorder.export()

    assert path.name == "treadmill_pose_session_1700000000500.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert len(payload) == 1
    frame = payload[0]
    assert frame["frameId"] == 0
    assert frame["treadmillState"]["speedKmh"] == 4.2
    assert frame["treadmillState"]["inclinePct"] == 1.0
    assert frame["treadmillState"]["isConnected"] is True
    assert frame["landmarks"][0]["visibility"] == 0.9
    assert "visibility" not in frame["landmarks"][1]


def test_export_to_explicit_directory(tmp_path: Path) -> None:
    recorder = _recorder(tmp_path / "default", TelemetryState())

    path = recorder.export(tmp_path / "elsewhere")

    assert path.parent == tmp_path / "elsewhere"
    assert json.loads(path.read_text(encoding="utf-8")) == []


@pytest.mark.parametrize(
    "landmarks",
    [
        [{"x": 1, "y": 2}],
        [{"x": "left", "y": 2, "z": 3}],
        ["not-a-landmark"],
    ],
)
def test_invalid_landmarks_are_rejected(landmarks) -> None:
    with pytest.raises(ValueError):
        normalize_landmarks(landmarks)
