from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from .aggregator import ResultAggregator
from .bridge import build_bridge_script, callback_names
from .callbacks import HostCallbacks
from .config import BrowserConfig, RunConfig
from .errors import RunTimeoutError
from .models import Report
from .page import open_page

logger = logging.getLogger("qunit_cdp.runner")
console_logger = logging.getLogger("qunit_cdp.console")

PageFactory = Callable[[BrowserConfig | None], Any]


def _log_console(level: str, text: str) -> None:
    if level in {"error", "assert"}:
        console_logger.warning("[%s] %s", level, text)
    else:
        console_logger.info("[%s] %s", level, text)


def _watch_navigation(task: asyncio.Task, callbacks: HostCallbacks) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info("navigation failed: %s", exc)
        callbacks.fail(exc)


async def run_qunit(
    config: RunConfig,
    *,
    browser_config: BrowserConfig | None = None,
    page_factory: PageFactory = open_page,
) -> Report:
    """Open ``config.target_url`` in a private tab and collect its QUnit results.

    Resolves with the report once QUnit fires ``done``. Fails with
    RunTimeoutError when that does not happen within ``config.timeout`` ms,
    with NavigationError when the page cannot be loaded, and with
    ProtocolError when the lifecycle events do not fit together. The tab and
    browser are released on every path.
    """
    loop = asyncio.get_running_loop()
    logger.info("run_start url=%s timeout=%sms", config.target_url, config.timeout)

    async with page_factory(browser_config) as page:
        if config.redirect_console:
            page.on_console(_log_console)

        completion: asyncio.Future = loop.create_future()
        callbacks = HostCallbacks(ResultAggregator(), completion)
        page.on_disconnect(callbacks.fail)
        for name, handler in callbacks.handlers().items():
            await page.expose_function(name, handler)
        await page.add_init_script(build_bridge_script(config.timeout, callback_names()))

        timer = loop.call_later(config.timeout_seconds, callbacks.fail, RunTimeoutError(config.timeout))
        navigation = asyncio.create_task(page.navigate(config.target_url))
        navigation.add_done_callback(lambda task: _watch_navigation(task, callbacks))
        try:
            report = await completion
        finally:
            timer.cancel()
            if not navigation.done():
                navigation.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await navigation

    stats = report.stats
    logger.info(
        "run_done total=%s passed=%s failed=%s runtime=%sms",
        stats.total if stats else None,
        stats.passed if stats else None,
        stats.failed if stats else None,
        stats.runtime if stats else None,
    )
    return report


def run_qunit_sync(config: RunConfig, *, browser_config: BrowserConfig | None = None) -> Report:
    """Blocking wrapper around run_qunit for callers without an event loop."""
    return asyncio.run(run_qunit(config, browser_config=browser_config))
