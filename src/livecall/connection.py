"""
WebSocket connection supervisor.

Owns exactly one socket per mounted view and hands every raw frame to a
message callback, in the order the transport delivered them. Nothing here
reorders or buffers: the view relies on the transport's in-order delivery
and has no per-field version stamps. Moving to a transport without that
guarantee (several parallel sockets, say) needs versioned updates first.

There is no automatic reconnect. A remount creates a new supervisor.
"""

import asyncio
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)


class ConnectionSupervisor:
    def __init__(
        self,
        url: str,
        on_message: Callable[[Any], Any],
        on_open: Callable[[], Any] | None = None,
        on_close: Callable[[], Any] | None = None,
        headers: dict | None = None,
        ping_interval: float = 20.0,
        ping_timeout: float = 10.0,
        connect: Callable | None = None,
    ):
        """
        Args:
            url: WebSocket URL of the live event feed
            on_message: called with each raw frame (str or bytes)
            on_open: called once the socket is open
            on_close: called once the socket is gone, however it ended
            headers: extra handshake headers (e.g. X-API-Key)
            connect: coroutine factory replacing websockets.connect (tests)
        """
        self.url = url
        self.on_message = on_message
        self.on_open = on_open
        self.on_close = on_close
        self.headers = headers or {}
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._connect = connect or websockets.connect

        self._ws = None
        self._task: asyncio.Task | None = None
        self._connected = False
        self.received_count = 0

    @property
    def connected(self) -> bool:
        return self._connected

    def start(self) -> asyncio.Task:
        """Run the reader loop in the background."""
        if self._task and not self._task.done():
            return self._task
        self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self):
        """Connect, deliver frames until the socket closes, then clean up."""
        connect_kwargs = {
            "ping_interval": self.ping_interval,
            "ping_timeout": self.ping_timeout,
        }
        if self.headers:
            connect_kwargs["additional_headers"] = self.headers

        try:
            logger.info("Connecting to %s", self.url)
            ws = await self._connect(self.url, **connect_kwargs)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.error("WebSocket connection failed: %s - %s", self.url, e)
            return

        self._ws = ws
        self._connected = True
        logger.info("WebSocket connected: %s", self.url)
        try:
            self._call_hook(self.on_open, "on_open")
            async for raw in ws:
                self._deliver(raw)
        except ConnectionClosed as e:
            logger.warning("WebSocket closed with error: %s", e)
        except (OSError, WebSocketException) as e:
            logger.error("WebSocket error: %s", e)
        finally:
            self._connected = False
            self._ws = None
            await self._close_socket(ws)
            logger.info("WebSocket disconnected: %s", self.url)
            self._call_hook(self.on_close, "on_close")

    async def stop(self):
        """Cancel the reader and close the socket. Safe to call more than once."""
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._ws is not None:
            ws = self._ws
            self._ws = None
            self._connected = False
            await self._close_socket(ws)

    def _deliver(self, raw):
        self.received_count += 1
        try:
            self.on_message(raw)
        except Exception as e:
            logger.error("Message handler failed: %s", e)

    def _call_hook(self, hook, name: str):
        if hook is None:
            return
        try:
            hook()
        except Exception as e:
            logger.error("%s hook failed: %s", name, e)

    async def _close_socket(self, ws):
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug("Error closing WebSocket: %s", e)
