from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from .cdp import CdpConnection
from .config import BrowserConfig
from .errors import CdpError, NavigationError
from .launcher import ChromeLauncher

logger = logging.getLogger("qunit_cdp.page")

_MAX_CONSOLE_ARGS = 8


def _remote_obj_to_str(obj: Any) -> str:
    """Best-effort conversion of CDP RemoteObject to short string."""
    if not isinstance(obj, dict):
        return str(obj)
    for k in ("value", "unserializableValue", "description"):
        if k in obj and obj.get(k) is not None:
            return str(obj.get(k))
    typ = obj.get("type")
    subtype = obj.get("subtype")
    return f"<{typ}{('/' + subtype) if subtype else ''}>"


class Page:
    """
    A single browser tab.

    Wraps CdpConnection with the handful of capabilities a test run needs:
    host bindings callable from page script, pre-navigation scripts, console
    forwarding and navigation.
    """

    def __init__(self, connection: CdpConnection) -> None:
        self.conn = connection
        self.url = "about:blank"
        self._bindings: dict[str, Callable[[str], None]] = {}
        self._console_handlers: list[Callable[[str, str], None]] = []
        self.conn.on("Runtime.bindingCalled", self._on_binding_called)
        self.conn.on("Runtime.consoleAPICalled", self._on_console_api_called)

    async def enable(self) -> None:
        """Enable Page and Runtime domains (bindings and console events need Runtime)."""
        await self.conn.send("Page.enable")
        await self.conn.send("Runtime.enable")

    async def expose_function(self, name: str, fn: Callable[[str], None]) -> None:
        """Make ``window[name](string)`` in the page call ``fn(string)`` on the host."""
        self._bindings[name] = fn
        await self.conn.send("Runtime.addBinding", {"name": name})

    async def add_init_script(self, source: str) -> str | None:
        """Run ``source`` in every new document before the page's own scripts."""
        res = await self.conn.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        identifier = res.get("identifier")
        return identifier if isinstance(identifier, str) else None

    def on_console(self, handler: Callable[[str, str], None]) -> None:
        self._console_handlers.append(handler)

    def on_disconnect(self, handler: Callable[[CdpError], None]) -> None:
        """Call ``handler`` if the browser drops the tab connection."""
        self.conn.on_close(handler)

    async def navigate(self, url: str) -> str:
        res = await self.conn.send("Page.navigate", {"url": url})
        error_text = res.get("errorText")
        if error_text:
            raise NavigationError(url, str(error_text))
        self.url = url
        return url

    async def close(self) -> None:
        await self.conn.close()

    def _on_binding_called(self, params: dict[str, Any]) -> None:
        fn = self._bindings.get(params.get("name") or "")
        if fn is None:
            return
        payload = params.get("payload")
        fn(payload if isinstance(payload, str) else "")

    def _on_console_api_called(self, params: dict[str, Any]) -> None:
        if not self._console_handlers:
            return
        level = params.get("type")
        if level == "warning":
            level = "warn"
        level = level if isinstance(level, str) else "log"
        args = params.get("args")
        text = " ".join(_remote_obj_to_str(a) for a in args[:_MAX_CONSOLE_ARGS]) if isinstance(args, list) else ""
        for handler in list(self._console_handlers):
            handler(level, text)


@contextlib.asynccontextmanager
async def open_page(config: BrowserConfig | None = None) -> AsyncIterator[Page]:
    """Launch a private browser and yield a blank, ready tab.

    The tab and the browser process are released on every exit path.
    """
    launcher = ChromeLauncher(config)
    conn: CdpConnection | None = None
    try:
        await launcher.start()
        ws_url = await launcher.new_page()
        conn = await CdpConnection.connect(ws_url, timeout=launcher.config.command_timeout)
        page = Page(conn)
        await page.enable()
        yield page
    finally:
        if conn is not None:
            with contextlib.suppress(Exception):
                await conn.close()
        await asyncio.to_thread(launcher.stop)
        logger.debug("browser released")
