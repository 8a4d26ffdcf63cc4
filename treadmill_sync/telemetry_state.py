"""Last-known-good treadmill telemetry."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class TelemetryUpdate:
    """Partial reading extracted from a single inbound frame."""

    speed: Optional[float] = None
    incline: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.speed is None and self.incline is None


@dataclass(frozen=True, slots=True)
class TelemetryState:
    """Immutable snapshot of what the machine last reported.

    The link manager is the only writer; it swaps in a new snapshot for every
    usable frame, so readers can hold on to an instance without copying it.
    """

    speed: float = 0.0
    incline: float = 0.0
    observed_at: datetime = field(default_factory=_utcnow)
    linked: bool = False

    def merged(
        self, update: TelemetryUpdate, *, observed_at: Optional[datetime] = None
    ) -> "TelemetryState":
        return TelemetryState(
            speed=max(0.0, update.speed) if update.speed is not None else self.speed,
            incline=update.incline if update.incline is not None else self.incline,
            observed_at=observed_at or _utcnow(),
            linked=True,
        )

    def unlinked(self) -> "TelemetryState":
        if not self.linked:
            return self
        return replace(self, linked=False)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "speedKmh": self.speed,
            "inclinePct": self.incline,
            "timestamp": int(self.observed_at.timestamp() * 1000),
            "isConnected": self.linked,
        }
