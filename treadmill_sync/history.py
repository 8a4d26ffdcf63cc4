"""Bounded telemetry history for live charts."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional

from . import constants
from .telemetry_state import TelemetryState

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChartPoint:
    time: str
    speed: float
    incline: float

    def as_dict(self) -> Dict[str, object]:
        return {"time": self.time, "speed": self.speed, "incline": self.incline}


class TelemetryHistory:
    """Sample telemetry once per interval into a sliding window."""

    def __init__(
        self,
        source: Callable[[], TelemetryState],
        *,
        size: int = constants.CHART_HISTORY_SIZE,
        interval: float = constants.CHART_SAMPLE_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._source = source
        self._interval = interval
        self._clock = clock
        self._points: Deque[ChartPoint] = deque(maxlen=size)
        self._task: Optional[asyncio.Task[None]] = None

    def sample(self) -> ChartPoint:
        state = self._source()
        point = ChartPoint(
            time=self._clock().strftime("%M:%S"),
            speed=state.speed,
            incline=state.incline,
        )
        self._points.append(point)
        return point

    def points(self) -> List[ChartPoint]:
        return list(self._points)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.sample()
