"""Session recording of pose samples annotated with treadmill telemetry."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from . import constants
from .telemetry_state import TelemetryState

LOGGER = logging.getLogger(__name__)

LANDMARK_AXES = ("x", "y", "z")


@dataclass(frozen=True, slots=True)
class PoseFrame:
    timestamp_ms: int
    frame_id: int
    telemetry: TelemetryState
    landmarks: Optional[List[Dict[str, float]]]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp_ms,
            "frameId": self.frame_id,
            "treadmillState": self.telemetry.as_dict(),
            "landmarks": self.landmarks,
        }


def normalize_landmarks(
    landmarks: Optional[Sequence[Mapping[str, Any]]],
) -> Optional[List[Dict[str, float]]]:
    """Reduce landmarks to ``{x, y, z, visibility?}`` floats.

    Raises:
        ValueError: If a landmark lacks a coordinate or is not numeric.
    """

    if landmarks is None:
        return None

    normalized: List[Dict[str, float]] = []
    for index, landmark in enumerate(landmarks):
        if not isinstance(landmark, Mapping):
            raise ValueError(f"landmark {index} is not an object")
        try:
            point = {axis: float(landmark[axis]) for axis in LANDMARK_AXES}
            if landmark.get("visibility") is not None:
                point["visibility"] = float(landmark["visibility"])
        except KeyError as exc:
            raise ValueError(f"landmark {index} is missing {exc.args[0]!r}") from exc
        except (TypeError, ValueError) as exc:
            raise ValueError(f"landmark {index} is not numeric") from exc
        normalized.append(point)
    return normalized


class SessionRecorder:
    """Passive sink for pose samples; serialised to JSON on demand."""

    def __init__(
        self,
        telemetry: Callable[[], TelemetryState],
        *,
        directory: Path = constants.DEFAULT_RECORDING_DIR,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._telemetry = telemetry
        self._directory = directory
        self._clock = clock
        self._frames: List[PoseFrame] = []
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def frames(self) -> List[PoseFrame]:
        return list(self._frames)

    def __len__(self) -> int:
        return len(self._frames)

    def start(self) -> None:
        if not self._recording:
            self._recording = True
            LOGGER.info("Recording started")

    def stop(self) -> None:
        if self._recording:
            self._recording = False
            LOGGER.info("Recording stopped (%d frames)", len(self._frames))

    def record_pose(
        self, landmarks: Optional[Sequence[Mapping[str, Any]]]
    ) -> Optional[PoseFrame]:
        """Store a pose sample with the current telemetry snapshot.

        Samples arriving while not recording are ignored.
        """

        if not self._recording:
            return None

        frame = PoseFrame(
            timestamp_ms=int(self._clock() * 1000),
            frame_id=len(self._frames),
            telemetry=self._telemetry(),
            landmarks=normalize_landmarks(landmarks),
        )
        self._frames.append(frame)
        return frame

    def clear(self) -> None:
        self._frames.clear()
        LOGGER.info("Session data cleared")

    def export(self, directory: Optional[Path] = None) -> Path:
        """Write all frames to ``treadmill_pose_session_<ms>.json``."""

        target_dir = directory or self._directory
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / f"treadmill_pose_session_{int(self._clock() * 1000)}.json"

        payload = [frame.as_dict() for frame in self._frames]
        with path.open("w", encoding="utf-8") as stream:
            json.dump(payload, stream, indent=2)

        LOGGER.info("Exported %d frames to %s", len(payload), path)
        return path
