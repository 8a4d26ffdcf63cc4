"""Randomised exercise scenarios.

Targets follow a mean-reverting random walk (Ornstein-Uhlenbeck style):
each step drifts part of the way back to the middle of the allowed range and
adds bounded uniform noise, so the walk never sticks at a boundary.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from . import constants
from .config import ScenarioConfig, ValueRange
from .protocol import CommandType
from .telemetry_state import TelemetryState

LOGGER = logging.getLogger(__name__)


def _round_half_away(value: float, precision: int) -> float:
    quantum = Decimal(1).scaleb(-precision)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def next_value(
    current: float,
    minimum: float,
    maximum: float,
    volatility: float,
    precision: int = constants.VALUE_PRECISION,
    *,
    rng: Optional[random.Random] = None,
) -> float:
    """Return the next step of the bounded random walk.

    ``current`` is clamped into ``[minimum, maximum]`` before use, and the
    result is clamped again so machine limits are never exceeded, then
    rounded half away from zero to ``precision`` digits.
    """

    base = min(max(current, minimum), maximum)

    center = (minimum + maximum) / 2
    drift = (center - base) * constants.MEAN_REVERSION_STRENGTH

    source = rng if rng is not None else random
    noise = source.uniform(-volatility, volatility) if volatility else 0.0

    following = min(max(base + drift + noise, minimum), maximum)
    return _round_half_away(following, precision)


def generate_next_state(
    speed: float,
    incline: float,
    config: ScenarioConfig,
    *,
    rng: Optional[random.Random] = None,
) -> Dict[str, float]:
    """Step both dimensions of a scenario at once."""

    return {
        "speed": next_value(
            speed,
            config.speed.minimum,
            config.speed.maximum,
            config.speed.volatility,
            rng=rng,
        ),
        "incline": next_value(
            incline,
            config.incline.minimum,
            config.incline.maximum,
            config.incline.volatility,
            rng=rng,
        ),
    }


class Dimension(str, Enum):
    SPEED = "speed"
    INCLINE = "incline"

    @property
    def command(self) -> CommandType:
        if self is Dimension.SPEED:
            return CommandType.SET_SPEED_NOW
        return CommandType.SET_INCLINE_NOW

    def reading(self, state: TelemetryState) -> float:
        return state.speed if self is Dimension.SPEED else state.incline

    def range_of(self, config: ScenarioConfig) -> ValueRange:
        return config.speed if self is Dimension.SPEED else config.incline


class CommandLink(Protocol):
    @property
    def is_connected(self) -> bool: ...

    @property
    def telemetry(self) -> TelemetryState: ...

    async def send(self, command: CommandType | str, value: Optional[float] = None) -> bool: ...


@dataclass(slots=True)
class CommandTarget:
    """The value a loop last commanded, distinct from what telemetry reports."""

    current: float = 0.0


ValueGenerator = Callable[[float, float, float, float], float]


class ScenarioLoop:
    """Periodic driver for a single dimension."""

    def __init__(
        self,
        dimension: Dimension,
        link: CommandLink,
        value_range: ValueRange,
        *,
        generator: Optional[ValueGenerator] = None,
    ) -> None:
        self.dimension = dimension
        self.target = CommandTarget()
        self._link = link
        self._range = value_range
        self._generator = generator or next_value
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def value_range(self) -> ValueRange:
        return self._range

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, seed: float) -> None:
        """Seed the tracked target and arm the timer."""

        self.target.current = seed
        self._arm()

    def stop(self) -> None:
        """Cancel the timer. The last commanded value stays in effect."""

        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def reconfigure(self, value_range: ValueRange) -> None:
        self._range = value_range
        if self.running:
            self._arm()

    async def tick(self) -> Optional[float]:
        """Compute and send the next target; skipped while disconnected."""

        if not self._link.is_connected:
            return None

        value_range = self._range
        value = self._generator(
            self.target.current,
            value_range.minimum,
            value_range.maximum,
            value_range.volatility,
        )
        self.target.current = value
        await self._link.send(self.dimension.command, value)
        return value

    def _arm(self) -> None:
        self.stop()
        self._task = asyncio.create_task(self._run(self._range.update_interval_seconds))

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("%s scenario tick failed", self.dimension.value)


class ScenarioRunner:
    """Run independent speed and incline loops against one link."""

    def __init__(
        self,
        link: CommandLink,
        config: ScenarioConfig,
        *,
        generator: Optional[ValueGenerator] = None,
    ) -> None:
        self._link = link
        self._config = config
        self._active = False
        self.loops: Dict[Dimension, ScenarioLoop] = {
            dimension: ScenarioLoop(
                dimension, link, dimension.range_of(config), generator=generator
            )
            for dimension in Dimension
        }

    @property
    def active(self) -> bool:
        return self._active

    @property
    def config(self) -> ScenarioConfig:
        return self._config

    def start(self) -> None:
        """Pick up from the machine's current reading and arm both loops."""

        telemetry = self._link.telemetry
        for dimension, loop in self.loops.items():
            loop.start(dimension.reading(telemetry))
        self._active = True
        LOGGER.info(
            "Scenario %r started: initialized trackers at %.1f km/h, %.1f%%",
            self._config.name,
            telemetry.speed,
            telemetry.incline,
        )

    def stop(self) -> None:
        if not self._active:
            return
        for loop in self.loops.values():
            loop.stop()
        self._active = False
        LOGGER.info("Scenario %r stopped", self._config.name)

    def apply_config(self, config: ScenarioConfig) -> None:
        """Adopt a new snapshot; only loops whose range changed are re-armed."""

        previous = self._config
        self._config = config
        for dimension, loop in self.loops.items():
            value_range = dimension.range_of(config)
            if value_range != dimension.range_of(previous):
                loop.reconfigure(value_range)
                LOGGER.info(
                    "%s range updated: %.1f-%.1f every %dms",
                    dimension.value,
                    value_range.minimum,
                    value_range.maximum,
                    value_range.update_interval_ms,
                )

    async def close(self) -> None:
        for loop in self.loops.values():
            await loop.aclose()
        self._active = False
