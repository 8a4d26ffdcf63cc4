"""Constants used across the treadmill-sync package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "treadmill-sync"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".treadmill-sync" / DEFAULT_CONFIG_FILENAME
DEFAULT_LOG_PATH = Path.home() / ".treadmill-sync" / "logs" / f"{APP_NAME}.log"
DEFAULT_RECORDING_DIR = Path.home() / ".treadmill-sync" / "sessions"

DEFAULT_LINK_URL = "ws://localhost:8000/ws"

DEFAULT_STATUS_HOST = "127.0.0.1"
DEFAULT_STATUS_PORT = 8765

# Link timing
RECONNECT_DELAY_SECONDS = 3.0
STATE_POLL_INTERVAL_SECONDS = 0.5

# Scenario generation
MEAN_REVERSION_STRENGTH = 0.2
MIN_UPDATE_INTERVAL_MS = 1000
VALUE_PRECISION = 1

# Downstream sinks
CHART_SAMPLE_INTERVAL_SECONDS = 1.0
CHART_HISTORY_SIZE = 30
LOG_BUFFER_SIZE = 200
FIRST_FRAME_LOG_CHARS = 100
