"""Main application entry-point for treadmill-sync."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import ScenarioConfig, SyncConfig, load_config
from .history import TelemetryHistory
from .link import LinkManager
from .logging import LogBuffer, configure_logging
from .recording import SessionRecorder
from .scenario import ScenarioRunner
from .status import StatusServer

LOGGER = logging.getLogger(__name__)


class TreadmillSyncApp:
    """Coordinates startup and shutdown of the link, scenario and sinks.

    Components are created up front so collaborators (a UI, the status
    server, tests) can reach them before ``run()`` is awaited.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        *,
        link: Optional[LinkManager] = None,
        log_buffer: Optional[LogBuffer] = None,
    ) -> None:
        self._config = config or load_config()
        self.log_buffer = log_buffer
        self.link = link or LinkManager(self._config.link.url)
        self.scenario = ScenarioRunner(self.link, self._config.scenario.scenario)
        self.history = TelemetryHistory(lambda: self.link.telemetry)
        self.recorder = SessionRecorder(
            lambda: self.link.telemetry, directory=self._config.recording.directory
        )
        self._status_server: Optional[StatusServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def config(self) -> SyncConfig:
        return self._config

    async def run(self) -> None:
        """Run until cancelled or :meth:`request_shutdown` is called."""

        self._shutdown_event = asyncio.Event()
        LOGGER.info("treadmill-sync starting with config: %s", self._config.path)

        try:
            await self._start_services()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("treadmill-sync received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def update_scenario(self, scenario: ScenarioConfig) -> None:
        """Apply a validated scenario snapshot from the configuration form."""

        self.scenario.apply_config(scenario.validated())

    @classmethod
    def start(cls, config: Optional[SyncConfig] = None) -> None:
        config = config or load_config()
        buffer = LogBuffer()
        configure_logging(
            config.logging.level,
            log_path=config.logging.path,
            log_network=config.logging.log_network,
            buffer=buffer,
        )
        instance = cls(config=config, log_buffer=buffer)
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("treadmill-sync received shutdown signal")

    async def _start_services(self) -> None:
        self.link.start()
        await self.link.connect()
        self.history.start()

        if self._config.scenario.autostart:
            self.scenario.start()

        status = self._config.status
        if status.enabled:
            server = StatusServer(
                link=self.link,
                scenario=self.scenario,
                recorder=self.recorder,
                history=self.history,
                log_buffer=self.log_buffer,
                host=status.host,
                port=status.port,
            )
            try:
                await server.start()
            except OSError as exc:
                LOGGER.error("Status endpoint unavailable: %s", exc)
            else:
                self._status_server = server

    async def _stop_services(self) -> None:
        # Scenario first so no tick races the link teardown.
        await self.scenario.close()
        await self.history.stop()

        if self._status_server is not None:
            await self._status_server.stop()
            self._status_server = None

        await self.link.close()
        self.recorder.stop()
