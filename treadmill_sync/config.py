"""Configuration loader for treadmill-sync."""

from __future__ import annotations

import logging
import math
from configparser import ConfigParser
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from . import constants
from .errors import ConfigInvalid

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ValueRange:
    minimum: float
    maximum: float
    volatility: float
    update_interval_ms: int

    @property
    def update_interval_seconds(self) -> float:
        return self.update_interval_ms / 1000.0

    def validated(self, label: str = "range") -> "ValueRange":
        """Return a checked copy, clamping sub-second intervals up to one second."""

        for name, value in (
            ("min", self.minimum),
            ("max", self.maximum),
            ("volatility", self.volatility),
        ):
            if not math.isfinite(value):
                raise ConfigInvalid(
                    f"{label}: {name} must be a finite number, got {value}"
                )

        if self.minimum > self.maximum:
            raise ConfigInvalid(
                f"{label}: min ({self.minimum}) must not exceed max ({self.maximum})"
            )
        if self.volatility < 0:
            raise ConfigInvalid(f"{label}: volatility must be >= 0")

        if self.update_interval_ms < constants.MIN_UPDATE_INTERVAL_MS:
            LOGGER.warning(
                "%s: update interval %dms is below %dms; clamping",
                label,
                self.update_interval_ms,
                constants.MIN_UPDATE_INTERVAL_MS,
            )
            return replace(self, update_interval_ms=constants.MIN_UPDATE_INTERVAL_MS)
        return self


@dataclass(frozen=True, slots=True)
class ScenarioConfig:
    name: str = "Random Walk"
    speed: ValueRange = field(
        default_factory=lambda: ValueRange(2.0, 8.0, 0.5, 5000)
    )
    incline: ValueRange = field(
        default_factory=lambda: ValueRange(0.0, 10.0, 1.0, 30000)
    )

    def validated(self) -> "ScenarioConfig":
        return replace(
            self,
            speed=self.speed.validated("speed"),
            incline=self.incline.validated("incline"),
        )


@dataclass(slots=True)
class LinkConfig:
    url: str = constants.DEFAULT_LINK_URL


@dataclass(slots=True)
class ScenarioSettings:
    autostart: bool = False
    scenario: ScenarioConfig = field(default_factory=ScenarioConfig)


@dataclass(slots=True)
class RecordingConfig:
    directory: Path = constants.DEFAULT_RECORDING_DIR


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class StatusConfig:
    enabled: bool = False
    host: str = constants.DEFAULT_STATUS_HOST
    port: int = constants.DEFAULT_STATUS_PORT


@dataclass(slots=True)
class SyncConfig:
    link: LinkConfig
    scenario: ScenarioSettings
    recording: RecordingConfig
    logging: LoggingConfig
    status: StatusConfig
    raw: ConfigParser
    path: Path


def is_valid_link_url(url: str) -> bool:
    parsed = urlparse(url.strip())
    return parsed.scheme in ("ws", "wss") and bool(parsed.netloc)


def _defaults() -> dict[str, dict[str, str]]:
    scenario = ScenarioConfig()
    return {
        "link": {"url": constants.DEFAULT_LINK_URL},
        "scenario": {
            "name": scenario.name,
            "autostart": "false",
            "speed_min": str(scenario.speed.minimum),
            "speed_max": str(scenario.speed.maximum),
            "speed_volatility": str(scenario.speed.volatility),
            "speed_interval_ms": str(scenario.speed.update_interval_ms),
            "incline_min": str(scenario.incline.minimum),
            "incline_max": str(scenario.incline.maximum),
            "incline_volatility": str(scenario.incline.volatility),
            "incline_interval_ms": str(scenario.incline.update_interval_ms),
        },
        "recording": {"directory": str(constants.DEFAULT_RECORDING_DIR)},
        "logging": {
            "level": "INFO",
            "path": str(constants.DEFAULT_LOG_PATH),
            "log_network": "false",
        },
        "status": {
            "enabled": "false",
            "host": constants.DEFAULT_STATUS_HOST,
            "port": str(constants.DEFAULT_STATUS_PORT),
        },
    }


def _get_float(parser: ConfigParser, section: str, option: str) -> float:
    try:
        return parser.getfloat(section, option)
    except ValueError as exc:
        raise ConfigInvalid(
            f"[{section}] {option} must be a number, got {parser.get(section, option)!r}"
        ) from exc


def _get_int(parser: ConfigParser, section: str, option: str) -> int:
    try:
        return int(parser.getfloat(section, option))
    except (ValueError, OverflowError) as exc:
        raise ConfigInvalid(
            f"[{section}] {option} must be an integer, got {parser.get(section, option)!r}"
        ) from exc


def _get_bool(parser: ConfigParser, section: str, option: str) -> bool:
    try:
        return parser.getboolean(section, option)
    except ValueError as exc:
        raise ConfigInvalid(
            f"[{section}] {option} must be a boolean, got {parser.get(section, option)!r}"
        ) from exc


def _read_range(parser: ConfigParser, prefix: str) -> ValueRange:
    return ValueRange(
        minimum=_get_float(parser, "scenario", f"{prefix}_min"),
        maximum=_get_float(parser, "scenario", f"{prefix}_max"),
        volatility=_get_float(parser, "scenario", f"{prefix}_volatility"),
        update_interval_ms=_get_int(parser, "scenario", f"{prefix}_interval_ms"),
    ).validated(prefix)


def load_config(path: Optional[Path] = None) -> SyncConfig:
    """Load configuration from disk, applying defaults where necessary.

    Raises:
        ConfigInvalid: If a value is malformed or a range is inconsistent.
    """

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(_defaults())

    if config_path.exists():
        parser.read(config_path)

    link = LinkConfig(url=parser.get("link", "url").strip())
    if not is_valid_link_url(link.url):
        # Left to the link manager, which reports it as a transport error.
        LOGGER.warning("Configured link url %r is not a ws:// or wss:// address", link.url)

    scenario = ScenarioSettings(
        autostart=_get_bool(parser, "scenario", "autostart"),
        scenario=ScenarioConfig(
            name=parser.get("scenario", "name"),
            speed=_read_range(parser, "speed"),
            incline=_read_range(parser, "incline"),
        ),
    )

    recording = RecordingConfig(
        directory=Path(parser.get("recording", "directory")).expanduser()
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=_get_bool(parser, "logging", "log_network"),
    )

    status = StatusConfig(
        enabled=_get_bool(parser, "status", "enabled"),
        host=parser.get("status", "host"),
        port=_get_int(parser, "status", "port"),
    )

    return SyncConfig(
        link=link,
        scenario=scenario,
        recording=recording,
        logging=logging_config,
        status=status,
        raw=parser,
        path=config_path,
    )
