"""HTTP status surface for treadmill-sync.

Exposes the link state indicator, the scrolling log and the chart window,
and accepts pose samples plus scenario/recording control from a front end.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from .history import TelemetryHistory
from .link import LinkManager
from .logging import LogBuffer
from .recording import SessionRecorder
from .scenario import ScenarioRunner

LOGGER = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 50


class StatusServer:
    """Minimal aiohttp server wrapping the running components."""

    def __init__(
        self,
        *,
        link: LinkManager,
        scenario: ScenarioRunner,
        recorder: SessionRecorder,
        history: TelemetryHistory,
        log_buffer: Optional[LogBuffer],
        host: str,
        port: int,
    ) -> None:
        self._link = link
        self._scenario = scenario
        self._recorder = recorder
        self._history = history
        self._log_buffer = log_buffer
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self._handle_status)
        app.router.add_post("/pose", self._handle_pose)
        app.router.add_post("/scenario", self._handle_scenario)
        app.router.add_post("/recording", self._handle_recording)
        app.router.add_post("/link", self._handle_link)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Status endpoint listening on http://%s:%s/status", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    def snapshot(self, *, log_limit: int = DEFAULT_LOG_LIMIT) -> Dict[str, Any]:
        logs = []
        if self._log_buffer is not None:
            logs = [entry.as_dict() for entry in self._log_buffer.entries(log_limit)]

        return {
            "link": {
                "status": self._link.status.value,
                "url": self._link.address,
                "reconnectPending": self._link.reconnect_pending,
            },
            "telemetry": self._link.telemetry.as_dict(),
            "scenario": {
                "name": self._scenario.config.name,
                "active": self._scenario.active,
                "targets": {
                    dimension.value: loop.target.current
                    for dimension, loop in self._scenario.loops.items()
                },
            },
            "recording": {
                "active": self._recorder.recording,
                "frames": len(self._recorder),
            },
            "chart": [point.as_dict() for point in self._history.points()],
            "logs": logs,
        }

    async def _handle_status(self, request: web.Request) -> web.Response:
        try:
            limit = int(request.query.get("logs", DEFAULT_LOG_LIMIT))
        except ValueError:
            raise web.HTTPBadRequest(text="logs must be an integer")
        return web.json_response(self.snapshot(log_limit=max(0, limit)))

    async def _handle_pose(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        try:
            frame = self._recorder.record_pose(body.get("landmarks"))
        except (TypeError, ValueError) as exc:
            raise web.HTTPBadRequest(text=str(exc))
        return web.json_response(
            {"recorded": frame is not None, "frames": len(self._recorder)}
        )

    async def _handle_scenario(self, request: web.Request) -> web.Response:
        action = (await _read_json(request)).get("action")
        if action == "start":
            if not self._scenario.active:
                self._scenario.start()
        elif action == "stop":
            self._scenario.stop()
        else:
            raise web.HTTPBadRequest(text=f"Unsupported scenario action: {action!r}")
        return web.json_response({"active": self._scenario.active})

    async def _handle_recording(self, request: web.Request) -> web.Response:
        action = (await _read_json(request)).get("action")
        payload: Dict[str, Any] = {}
        if action == "start":
            self._recorder.start()
        elif action == "stop":
            self._recorder.stop()
        elif action == "clear":
            self._recorder.clear()
        elif action == "export":
            payload["path"] = str(self._recorder.export())
        else:
            raise web.HTTPBadRequest(text=f"Unsupported recording action: {action!r}")
        payload.update(active=self._recorder.recording, frames=len(self._recorder))
        return web.json_response(payload)

    async def _handle_link(self, request: web.Request) -> web.Response:
        url = (await _read_json(request)).get("url")
        if not isinstance(url, str) or not url.strip():
            raise web.HTTPBadRequest(text="url is required")
        await self._link.connect(url)
        return web.json_response(
            {"status": self._link.status.value, "url": self._link.address}
        )


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(text="body must be JSON")
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(text="body must be a JSON object")
    return body
