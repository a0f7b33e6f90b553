"""Run QUnit test pages in headless Chromium over the DevTools protocol.

Stable import surface (re-exports).
"""

from __future__ import annotations

from .config import DEFAULT_TIMEOUT_MS, BrowserConfig, RunConfig
from .errors import CdpError, NavigationError, ProtocolError, RunnerError, RunTimeoutError
from .models import LogEntry, Module, Report, RunStats, Test
from .runner import run_qunit, run_qunit_sync

__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "BrowserConfig",
    "CdpError",
    "LogEntry",
    "Module",
    "NavigationError",
    "ProtocolError",
    "Report",
    "RunConfig",
    "RunStats",
    "RunTimeoutError",
    "RunnerError",
    "Test",
    "run_qunit",
    "run_qunit_sync",
]
