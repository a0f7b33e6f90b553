"""Asynchronous Chrome DevTools Protocol connection.

One websocket per target. A single reader task owns the socket: it resolves
command futures by message id and hands events to listeners one at a time, in
the order the browser sent them.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from .errors import CdpError

logger = logging.getLogger("qunit_cdp.cdp")

EventListener = Callable[[dict[str, Any]], None]
CloseListener = Callable[[CdpError], None]


class CdpConnection:
    """Low-level CDP WebSocket connection."""

    def __init__(self, ws: Any, ws_url: str, timeout: float = 10.0) -> None:
        # NOTE: typed as Any to avoid coupling to a specific websockets protocol class.
        self._ws = ws
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._pending: dict[int, asyncio.Future] = {}
        self._listeners: dict[str, list[EventListener]] = {}
        self._reader: asyncio.Task | None = None
        self._closed = False
        self._closing = False
        self._close_listeners: list[CloseListener] = []

    @classmethod
    async def connect(cls, ws_url: str, timeout: float = 10.0) -> CdpConnection:
        try:
            # CDP responses (e.g. large console payloads) can exceed the default frame limit.
            ws = await websockets.connect(ws_url, ping_interval=None, open_timeout=timeout, max_size=None)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise CdpError(f"Cannot connect to {ws_url}: {exc}") from exc
        conn = cls(ws, ws_url, timeout=timeout)
        conn._reader = asyncio.create_task(conn._read_loop(), name="qunit-cdp-reader")
        return conn

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, method: str, listener: EventListener) -> None:
        """Register a listener for a CDP event; it receives the event params."""
        self._listeners.setdefault(method, []).append(listener)

    def on_close(self, listener: CloseListener) -> None:
        """Register a listener for the browser dropping the socket.

        Not called when the connection is closed through ``close()``.
        """
        self._close_listeners.append(listener)

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        if self._closed:
            raise CdpError(f"CDP connection is closed ({method})")

        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = fut
        try:
            await self._ws.send(json.dumps(msg))
            return await asyncio.wait_for(fut, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise CdpError(f"CDP response timed out: {method}") from exc
        except ConnectionClosed as exc:
            raise CdpError(f"CDP connection lost during {method}: {exc}") from exc
        finally:
            self._pending.pop(msg_id, None)

    async def close(self) -> None:
        """Stop the reader and close the socket."""
        self._closing = True
        reader = self._reader
        self._reader = None
        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        with contextlib.suppress(Exception):
            await self._ws.close()
        self._closed = True
        self._fail_pending(CdpError("CDP connection closed"))

    async def _read_loop(self) -> None:
        reason = "CDP connection closed by the browser"
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if not isinstance(data, dict):
                    continue

                # CDP event (no id): hand it to listeners.
                if isinstance(data.get("method"), str) and "id" not in data:
                    self._dispatch_event(data)
                    continue

                fut = self._pending.get(data.get("id"))
                if fut is None or fut.done():
                    continue
                if "error" in data:
                    fut.set_exception(CdpError(str(data["error"])))
                else:
                    result = data.get("result")
                    fut.set_result(result if isinstance(result, dict) else {})
        except ConnectionClosedError as exc:
            reason = f"CDP connection lost: {exc}"
        finally:
            self._closed = True
            error = CdpError(reason)
            self._fail_pending(error)
            if not self._closing:
                self._notify_closed(error)

    def _dispatch_event(self, event: dict[str, Any]) -> None:
        method = event["method"]
        listeners = self._listeners.get(method)
        if not listeners:
            return
        params = event.get("params")
        if not isinstance(params, dict):
            params = {}
        for listener in list(listeners):
            try:
                listener(params)
            except Exception:
                logger.exception("cdp_listener_failed method=%s", method)

    def _notify_closed(self, error: CdpError) -> None:
        for listener in list(self._close_listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("cdp_close_listener_failed")

    def _fail_pending(self, error: CdpError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(error)


__all__ = ["CdpConnection", "CloseListener", "EventListener"]
