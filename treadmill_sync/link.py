"""Telemetry link management.

The :class:`LinkManager` keeps a single logical websocket link to the
treadmill bridge. It owns the connection state machine, the timed reconnect,
the state poll, outbound command serialisation, and the last-known
:class:`~treadmill_sync.telemetry_state.TelemetryState`.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import aiohttp

from . import constants
from .config import is_valid_link_url
from .errors import ProtocolParseError, TransportError
from .logging import KIND_ERROR, KIND_SUCCESS, KIND_TX
from .normalizer import normalize_frame
from .protocol import CommandType, encode_command
from .telemetry_state import TelemetryState

LOGGER = logging.getLogger(__name__)

ABNORMAL_CLOSURE = 1006


class LinkStatus(str, Enum):
    """Current state of the telemetry link."""

    DISCONNECTED = "disconnected"
    """No transport, or the last one closed; a reconnect may be pending."""

    CONNECTING = "connecting"
    """A transport has been opened and is waiting for establishment."""

    CONNECTED = "connected"
    """The active transport is open and commands are delivered."""

    ERROR = "error"
    """The address was rejected or the transport reported an error."""


class TransportListener(Protocol):
    async def on_transport_open(self, connection: "LinkConnection") -> None: ...

    def on_transport_frame(self, connection: "LinkConnection", raw: str) -> None: ...

    def on_transport_error(
        self, connection: "LinkConnection", error: Exception
    ) -> None: ...

    def on_transport_close(
        self, connection: "LinkConnection", code: Optional[int]
    ) -> None: ...


class LinkConnection(Protocol):
    """One transport instance. Identity, not address, tells instances apart."""

    address: str

    @property
    def closed(self) -> bool: ...

    def start(self) -> None: ...

    async def send(self, text: str) -> None: ...

    async def close(self) -> None: ...


ConnectionFactory = Callable[[str, TransportListener], LinkConnection]
StatusListener = Callable[[LinkStatus], Any]


class WebSocketConnection:
    """aiohttp websocket transport reporting its lifecycle to a listener."""

    def __init__(
        self,
        address: str,
        listener: TransportListener,
        *,
        session: aiohttp.ClientSession,
        heartbeat: Optional[float] = None,
    ) -> None:
        self.address = address
        self._listener = listener
        self._session = session
        self._heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws is None or self._ws.closed

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def send(self, text: str) -> None:
        ws = self._ws
        if self._closed or ws is None or ws.closed:
            raise TransportError(f"websocket to {self.address} is not open")
        await ws.send_str(text)

    async def close(self) -> None:
        self._closed = True

        ws = self._ws
        if ws is not None and not ws.closed:
            with contextlib.suppress(Exception):
                await ws.close()

        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        close_code: Optional[int] = ABNORMAL_CLOSURE
        try:
            async with self._session.ws_connect(
                self.address, heartbeat=self._heartbeat
            ) as ws:
                self._ws = ws
                await self._listener.on_transport_open(self)
                async for message in ws:
                    if message.type == aiohttp.WSMsgType.TEXT:
                        self._listener.on_transport_frame(self, message.data)
                    elif message.type == aiohttp.WSMsgType.BINARY:
                        pass  # Telemetry bridges only speak text
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        error = ws.exception() or RuntimeError("websocket error")
                        self._listener.on_transport_error(
                            self, TransportError(str(error))
                        )
                close_code = ws.close_code
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._listener.on_transport_error(self, TransportError(str(exc)))
        finally:
            self._ws = None
            self._closed = True

        self._listener.on_transport_close(self, close_code)


class LinkManager:
    """Maintain one resilient link and route traffic through it.

    All callbacks run on the event loop that owns the manager, so the active
    connection and the telemetry snapshot need no locking.
    """

    def __init__(
        self,
        address: str = constants.DEFAULT_LINK_URL,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        reconnect_delay: float = constants.RECONNECT_DELAY_SECONDS,
        poll_interval: float = constants.STATE_POLL_INTERVAL_SECONDS,
    ) -> None:
        self._address = address.strip()
        self._session = session
        self._owns_session = session is None
        self._connection_factory = connection_factory or self._open_websocket
        self._reconnect_delay = reconnect_delay
        self._poll_interval = poll_interval

        self._status = LinkStatus.DISCONNECTED
        self._telemetry = TelemetryState()
        self._active: Optional[LinkConnection] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._status_listeners: list[StatusListener] = []
        self._first_frame_logged = False
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def status(self) -> LinkStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == LinkStatus.CONNECTED

    @property
    def address(self) -> str:
        return self._address

    @property
    def telemetry(self) -> TelemetryState:
        """Latest telemetry snapshot (read-only)."""
        return self._telemetry

    @property
    def reconnect_pending(self) -> bool:
        task = self._reconnect_task
        return task is not None and not task.done()

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        with contextlib.suppress(ValueError):
            self._status_listeners.remove(listener)

    def start(self) -> None:
        """Start the background state poll."""

        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def connect(self, address: Optional[str] = None) -> None:
        """Open (or re-open) the link, superseding any previous connection."""

        if self._closed:
            LOGGER.warning("Link manager is closed; ignoring connect request")
            return

        target = (address if address is not None else self._address).strip()
        active = self._active
        if (
            self._status == LinkStatus.CONNECTED
            and active is not None
            and active.address == target
        ):
            return

        if target != self._address:
            LOGGER.info("Configuration: switching to %s", target)
        self._address = target

        self._cancel_reconnect()
        await self._close_active()
        if self._closed:
            LOGGER.debug("Link manager closed while switching to %s", target)
            return
        self._first_frame_logged = False

        if not is_valid_link_url(target):
            LOGGER.error("Invalid URL: %s", target, extra={"kind": KIND_ERROR})
            self._set_status(LinkStatus.ERROR)
            return

        self._set_status(LinkStatus.CONNECTING)
        connection = self._connection_factory(target, self)
        self._active = connection
        connection.start()

    async def send(
        self, command: CommandType | str, value: Optional[float] = None
    ) -> bool:
        """Transmit a command if the link is connected.

        Commands issued while not connected are dropped, never queued.
        Returns whether the command was handed to the transport.
        """

        name = command.value if isinstance(command, CommandType) else str(command)
        connection = self._active
        if (
            self._status != LinkStatus.CONNECTED
            or connection is None
            or connection.closed
        ):
            LOGGER.info(
                "Dropped %s: link is %s", name, self._status.value
            )
            return False

        text = encode_command(command, value)
        try:
            await connection.send(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.error("Send error: %s", exc, extra={"kind": KIND_ERROR})
            return False

        LOGGER.debug("-> %s", text, extra={"kind": KIND_TX})
        return True

    async def close(self) -> None:
        """Tear the link down and cancel every pending timer."""

        if self._closed:
            return
        self._closed = True

        self._cancel_reconnect()

        poll_task = self._poll_task
        self._poll_task = None
        if poll_task is not None:
            poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await poll_task

        await self._close_active()
        self._set_status(LinkStatus.DISCONNECTED)

        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------
    async def on_transport_open(self, connection: LinkConnection) -> None:
        if self._closed or connection is not self._active:
            LOGGER.debug("Ignoring open from superseded connection to %s", connection.address)
            return

        self._set_status(LinkStatus.CONNECTED)
        LOGGER.info(
            "Connected to %s", connection.address, extra={"kind": KIND_SUCCESS}
        )
        await self.send(CommandType.REQUEST_CONTROL)
        await self.send(CommandType.GET_STATE)

    def on_transport_frame(self, connection: LinkConnection, raw: str) -> None:
        if connection is not self._active:
            return

        if not self._first_frame_logged:
            LOGGER.info("Rx: %s...", raw[: constants.FIRST_FRAME_LOG_CHARS])
            self._first_frame_logged = True

        try:
            payload = _decode_frame(raw)
        except ProtocolParseError as exc:
            LOGGER.warning("Discarding frame: %s", exc)
            return

        update = normalize_frame(payload)
        if update is None:
            LOGGER.debug("Frame carried no speed or incline; skipped")
            return

        self._telemetry = self._telemetry.merged(update)

    def on_transport_error(self, connection: LinkConnection, error: Exception) -> None:
        if self._closed or connection is not self._active:
            return

        LOGGER.error("Link error: %s", error, extra={"kind": KIND_ERROR})
        self._set_status(LinkStatus.ERROR)

    def on_transport_close(
        self, connection: LinkConnection, code: Optional[int]
    ) -> None:
        if self._closed or connection is not self._active:
            return

        if self._status == LinkStatus.DISCONNECTED and self.reconnect_pending:
            LOGGER.debug("Duplicate close notification (code: %s)", code)
            return

        self._set_status(LinkStatus.DISCONNECTED)
        self._telemetry = self._telemetry.unlinked()
        LOGGER.warning(
            "Connection lost (code: %s). Retrying in %.0fs...",
            code,
            self._reconnect_delay,
            extra={"kind": KIND_ERROR},
        )
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _open_websocket(
        self, address: str, listener: TransportListener
    ) -> LinkConnection:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return WebSocketConnection(address, listener, session=self._session)

    async def _close_active(self) -> None:
        connection = self._active
        self._active = None
        if connection is None:
            return
        try:
            await connection.close()
        except Exception:  # pragma: no cover
            LOGGER.exception("Failed to close connection to %s", connection.address)

    def _schedule_reconnect(self) -> bool:
        if self._closed or self.reconnect_pending:
            return False
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(self._reconnect_delay)
        )
        return True

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach before connecting so connect() does not cancel this task.
        self._reconnect_task = None
        if self._closed:
            return
        try:
            await self.connect()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Reconnect attempt failed")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if self.is_connected:
                await self.send(CommandType.GET_STATE)

    def _set_status(self, status: LinkStatus) -> None:
        if status == self._status:
            return

        previous = self._status
        self._status = status
        LOGGER.info("Link state transition %s -> %s", previous.value, status.value)

        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                LOGGER.exception("Link status listener failed")


def _decode_frame(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolParseError(f"frame is not JSON ({exc})") from exc
