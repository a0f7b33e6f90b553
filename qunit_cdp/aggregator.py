"""Fold QUnit lifecycle events into a Report.

Events are applied in arrival order; QUnit guarantees begin before any module
event, moduleStart before the module's tests, testStart before a test's log
entries and testDone, and done last. Nothing is buffered or reordered: an
event whose parent is missing is a ProtocolError.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from typing import Any

from .errors import ProtocolError
from .models import LogEntry, Module, Report, RunStats, Test

# Fields each terminal event is known to carry; nothing else is overwritten.
TEST_DONE_FIELDS = ("passed", "failed", "total", "runtime", "skipped", "todo")
MODULE_DONE_FIELDS = ("passed", "failed", "total", "runtime")
# testStart fields beyond name/module/testId, as (payload key, Test attribute).
TEST_START_FIELDS = (("previousFailure", "previous_failure"),)


def _ingest(event: str, payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ProtocolError(f"{event}: expected an object payload, got {type(payload).__name__}")
    return copy.deepcopy(payload)


def _require_str(event: str, payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"{event}: payload has no '{key}'")
    return value


class ResultAggregator:
    def __init__(self) -> None:
        self._report = Report()
        self._lock = threading.Lock()
        self._tests_by_id: dict[tuple[str, str], Test] = {}
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def snapshot(self) -> Report:
        """Deep copy of the tree as it stands (stats may still be missing)."""
        with self._lock:
            return copy.deepcopy(self._report)

    def report(self) -> Report:
        if not self._finished:
            raise ProtocolError("done event has not been received")
        return self.snapshot()

    def handlers(self) -> dict[str, Callable[[Any], Any]]:
        """Merge function per QUnit lifecycle name."""
        return {
            "begin": self.begin,
            "moduleStart": self.module_start,
            "testStart": self.test_start,
            "log": self.log,
            "testDone": self.test_done,
            "moduleDone": self.module_done,
            "done": self.done,
        }

    def apply(self, event: str, payload: Any) -> Any:
        handler = self.handlers().get(event)
        if handler is None:
            raise ProtocolError(f"Unknown lifecycle event: {event}")
        return handler(payload)

    # ─────────────────────────────────────────────────────────────────────────
    # Run-level events
    # ─────────────────────────────────────────────────────────────────────────

    def begin(self, payload: Any) -> None:
        data = _ingest("begin", payload)
        with self._lock:
            self._report.total_tests = data.get("totalTests")

    def done(self, payload: Any) -> Report:
        data = _ingest("done", payload)
        with self._lock:
            self._report.stats = RunStats.from_event(data)
            self._finished = True
            return copy.deepcopy(self._report)

    # ─────────────────────────────────────────────────────────────────────────
    # Module events
    # ─────────────────────────────────────────────────────────────────────────

    def module_start(self, payload: Any) -> None:
        data = _ingest("moduleStart", payload)
        name = _require_str("moduleStart", data, "name")
        with self._lock:
            # Re-delivery replaces the module with a fresh empty one.
            self._tests_by_id = {key: test for key, test in self._tests_by_id.items() if key[0] != name}
            self._report.modules[name] = Module(name=name)

    def module_done(self, payload: Any) -> None:
        data = _ingest("moduleDone", payload)
        name = _require_str("moduleDone", data, "name")
        with self._lock:
            module = self._module("moduleDone", name)
            for key in MODULE_DONE_FIELDS:
                if key in data:
                    setattr(module, key, data[key])

    # ─────────────────────────────────────────────────────────────────────────
    # Test events
    # ─────────────────────────────────────────────────────────────────────────

    def test_start(self, payload: Any) -> None:
        data = _ingest("testStart", payload)
        name = _require_str("testStart", data, "name")
        module_name = _require_str("testStart", data, "module")
        test_id = data.get("testId")
        with self._lock:
            module = self._module("testStart", module_name)
            if test_id is not None and (module_name, str(test_id)) in self._tests_by_id:
                return
            test = Test(name=name, module=module_name)
            for key, attr in TEST_START_FIELDS:
                if key in data:
                    setattr(test, attr, data[key])
            module.tests.append(test)
            if test_id is not None:
                test.test_id = str(test_id)
                self._tests_by_id[(module_name, test.test_id)] = test

    def log(self, payload: Any) -> None:
        data = _ingest("log", payload)
        with self._lock:
            test = self._test("log", data)
            if test.log is None:
                test.log = []
            test.log.append(LogEntry.from_event(data))

    def test_done(self, payload: Any) -> None:
        data = _ingest("testDone", payload)
        with self._lock:
            test = self._test("testDone", data)
            for key in TEST_DONE_FIELDS:
                if key in data:
                    setattr(test, key, data[key])

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups (caller holds the lock)
    # ─────────────────────────────────────────────────────────────────────────

    def _module(self, event: str, name: str) -> Module:
        module = self._report.modules.get(name)
        if module is None:
            raise ProtocolError(f"{event}: module '{name}' was never started")
        return module

    def _test(self, event: str, data: dict[str, Any]) -> Test:
        name = _require_str(event, data, "name")
        module_name = _require_str(event, data, "module")
        module = self._module(event, module_name)

        test_id = data.get("testId")
        if test_id is not None:
            test = self._tests_by_id.get((module_name, str(test_id)))
            if test is not None:
                return test

        # No id: the most recently started test of that name. Duplicate names
        # without ids cannot be told apart.
        for test in reversed(module.tests):
            if test.name == name:
                return test
        raise ProtocolError(f"{event}: test '{name}' was never started in module '{module_name}'")
