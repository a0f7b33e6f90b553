from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import pytest

from qunit_cdp.bridge import callback_name
from qunit_cdp.config import RunConfig
from qunit_cdp.errors import CdpError, NavigationError, ProtocolError, RunTimeoutError
from qunit_cdp.runner import run_qunit


class FakePage:
    """Stands in for a browser tab: replays lifecycle events after navigation."""

    def __init__(
        self,
        events: list[tuple[str, dict[str, Any]]] | None = None,
        *,
        nav_error: Exception | None = None,
        console: list[tuple[str, str]] | None = None,
        disconnect: Exception | None = None,
    ) -> None:
        self.events = events or []
        self.nav_error = nav_error
        self.console = console or []
        self.disconnect = disconnect
        self.bindings: dict[str, Any] = {}
        self.init_scripts: list[str] = []
        self.console_handlers: list[Any] = []
        self.disconnect_handlers: list[Any] = []
        self.navigated: list[str] = []
        self.released = False

    async def expose_function(self, name: str, fn: Any) -> None:
        self.bindings[name] = fn

    async def add_init_script(self, source: str) -> str:
        self.init_scripts.append(source)
        return str(len(self.init_scripts))

    def on_console(self, handler: Any) -> None:
        self.console_handlers.append(handler)

    def on_disconnect(self, handler: Any) -> None:
        self.disconnect_handlers.append(handler)

    async def navigate(self, url: str) -> str:
        self.navigated.append(url)
        if self.nav_error is not None:
            raise self.nav_error
        # Page scripts run after navigation returns, one binding call at a time.
        asyncio.get_running_loop().call_soon(self._play)
        return url

    def _play(self) -> None:
        for level, text in self.console:
            for handler in self.console_handlers:
                handler(level, text)
        for event, payload in self.events:
            self.bindings[callback_name(event)](json.dumps(payload))
        if self.disconnect is not None:
            for handler in self.disconnect_handlers:
                handler(self.disconnect)


def _factory(page: FakePage):  # noqa: ANN202
    @contextlib.asynccontextmanager
    async def factory(browser_config: Any) -> AsyncIterator[FakePage]:  # noqa: ARG001
        try:
            yield page
        finally:
            page.released = True

    return factory


def _scenario_events() -> list[tuple[str, dict[str, Any]]]:
    return [
        ("begin", {"totalTests": 4}),
        ("moduleStart", {"name": "M"}),
        ("testStart", {"name": "A", "module": "M", "testId": "a"}),
        ("log", {"result": True, "module": "M", "name": "A", "testId": "a", "message": "fine"}),
        ("testDone", {"name": "A", "module": "M", "testId": "a", "passed": 1, "failed": 0, "total": 1, "runtime": 1}),
        ("testStart", {"name": "B", "module": "M", "testId": "b"}),
        ("log", {"result": False, "module": "M", "name": "B", "testId": "b", "expected": 1, "actual": 2}),
        ("testDone", {"name": "B", "module": "M", "testId": "b", "passed": 0, "failed": 1, "total": 1, "runtime": 2}),
        ("moduleDone", {"name": "M", "passed": 1, "failed": 1, "total": 2, "runtime": 3}),
        ("done", {"total": 2, "passed": 1, "failed": 1, "runtime": 12}),
    ]


def test_run_returns_report_from_done_event() -> None:
    page = FakePage(_scenario_events())
    config = RunConfig("file:///tmp/tests.html", timeout=2000)

    report = asyncio.run(run_qunit(config, page_factory=_factory(page)))

    assert page.navigated == ["file:///tmp/tests.html"]
    assert page.released is True
    assert report.stats is not None and report.stats.failed == 1
    assert report.total_tests == 4
    assert len(report.modules["M"].tests) == 2
    assert len(report.modules["M"].tests[1].log or []) == 1


def test_run_installs_bindings_and_bridge_script() -> None:
    page = FakePage(_scenario_events())
    asyncio.run(run_qunit(RunConfig("http://localhost/t.html", timeout=1234), page_factory=_factory(page)))

    assert len(page.bindings) == 7
    assert len(page.init_scripts) == 1
    script = page.init_scripts[0]
    assert '"testTimeout": 1234' in script
    for name in page.bindings:
        assert name in script


def test_run_times_out_when_page_is_silent() -> None:
    page = FakePage([])
    config = RunConfig("file:///tmp/empty.html", timeout=150)

    started = time.monotonic()
    with pytest.raises(RunTimeoutError, match="150ms"):
        asyncio.run(run_qunit(config, page_factory=_factory(page)))
    elapsed = time.monotonic() - started

    assert 0.15 <= elapsed < 0.15 + 0.25
    assert page.released is True


def test_protocol_error_fails_run_and_releases_page() -> None:
    events = [
        ("begin", {"totalTests": 1}),
        ("testStart", {"name": "A", "module": "never-started"}),
        ("done", {"total": 0, "passed": 0, "failed": 0, "runtime": 1}),
    ]
    page = FakePage(events)

    with pytest.raises(ProtocolError, match="never-started"):
        asyncio.run(run_qunit(RunConfig("file:///x.html", timeout=2000), page_factory=_factory(page)))
    assert page.released is True


def test_navigation_error_fails_run_immediately() -> None:
    page = FakePage(nav_error=NavigationError("file:///missing.html", "net::ERR_FILE_NOT_FOUND"))

    started = time.monotonic()
    with pytest.raises(NavigationError, match="ERR_FILE_NOT_FOUND"):
        asyncio.run(run_qunit(RunConfig("file:///missing.html", timeout=5000), page_factory=_factory(page)))
    assert time.monotonic() - started < 1.0
    assert page.released is True


def test_console_is_forwarded_only_when_requested(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="qunit_cdp.console")

    quiet = FakePage(_scenario_events(), console=[("log", "hello from page")])
    asyncio.run(run_qunit(RunConfig("file:///a.html", timeout=2000), page_factory=_factory(quiet)))
    assert quiet.console_handlers == []
    assert "hello from page" not in caplog.text

    loud = FakePage(_scenario_events(), console=[("log", "hello from page"), ("error", "boom")])
    config = RunConfig("file:///a.html", timeout=2000, redirect_console=True)
    asyncio.run(run_qunit(config, page_factory=_factory(loud)))
    assert "[log] hello from page" in caplog.text
    assert any(r.levelno == logging.WARNING and "[error] boom" in r.getMessage() for r in caplog.records)


def test_default_timeout_applies_to_non_positive_values() -> None:
    assert RunConfig("file:///a.html", timeout=0).timeout == 30000
    assert RunConfig("file:///a.html", timeout=-5).timeout == 30000
    assert RunConfig("file:///a.html").timeout_seconds == 30.0


def test_browser_disconnect_fails_run_with_its_cause() -> None:
    events = [("begin", {"totalTests": 1}), ("moduleStart", {"name": "M"})]
    page = FakePage(events, disconnect=CdpError("CDP connection closed by the browser"))

    started = time.monotonic()
    with pytest.raises(CdpError, match="closed by the browser"):
        asyncio.run(run_qunit(RunConfig("file:///crash.html", timeout=5000), page_factory=_factory(page)))
    assert time.monotonic() - started < 1.0
    assert page.released is True
