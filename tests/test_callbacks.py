from __future__ import annotations

import asyncio
import json

import pytest

from qunit_cdp.aggregator import ResultAggregator
from qunit_cdp.bridge import LIFECYCLE_EVENTS, callback_name
from qunit_cdp.callbacks import HostCallbacks
from qunit_cdp.errors import ProtocolError
from qunit_cdp.models import Report


def _make() -> tuple[HostCallbacks, asyncio.Future, asyncio.AbstractEventLoop]:
    loop = asyncio.new_event_loop()
    completion = loop.create_future()
    return HostCallbacks(ResultAggregator(), completion), completion, loop


def test_handlers_cover_all_lifecycle_bindings() -> None:
    callbacks, _completion, loop = _make()
    try:
        handlers = callbacks.handlers()
        assert set(handlers) == {callback_name(e) for e in LIFECYCLE_EVENTS}
        assert len(handlers) == 7
    finally:
        loop.close()


def test_done_resolves_with_report() -> None:
    callbacks, completion, loop = _make()
    try:
        h = callbacks.handlers()
        h[callback_name("begin")](json.dumps({"totalTests": 1}))
        h[callback_name("moduleStart")](json.dumps({"name": "M"}))
        h[callback_name("testStart")](json.dumps({"name": "A", "module": "M"}))
        h[callback_name("testDone")](json.dumps({"name": "A", "module": "M", "passed": 1, "failed": 0, "total": 1}))
        # testDone is not the resolving event.
        assert not completion.done()
        h[callback_name("moduleDone")](json.dumps({"name": "M", "passed": 1, "failed": 0, "total": 1}))
        h[callback_name("done")](json.dumps({"total": 1, "passed": 1, "failed": 0, "runtime": 4}))

        assert completion.done()
        report = completion.result()
        assert isinstance(report, Report)
        assert report.stats is not None and report.stats.runtime == 4
        assert report.modules["M"].tests[0].passed == 1
    finally:
        loop.close()


def test_missing_module_rejects_completion() -> None:
    callbacks, completion, loop = _make()
    try:
        callbacks.handle("testStart", json.dumps({"name": "A", "module": "nope"}))
        assert completion.done()
        with pytest.raises(ProtocolError):
            completion.result()
    finally:
        loop.close()


def test_invalid_json_rejects_completion() -> None:
    callbacks, completion, loop = _make()
    try:
        callbacks.handle("begin", "{not json")
        with pytest.raises(ProtocolError, match="not valid JSON"):
            completion.result()
    finally:
        loop.close()


def test_events_after_settlement_are_ignored() -> None:
    callbacks, completion, loop = _make()
    try:
        callbacks.handle("log", json.dumps({"result": True, "name": "A", "module": "nope"}))
        first_error = completion.exception()
        assert isinstance(first_error, ProtocolError)

        # Neither a later error nor a later done replaces the first outcome.
        callbacks.handle("moduleDone", json.dumps({"name": "other"}))
        callbacks.handle("done", json.dumps({"total": 0, "passed": 0, "failed": 0, "runtime": 0}))
        assert completion.exception() is first_error
        assert callbacks.aggregator.finished is False
    finally:
        loop.close()


def test_fail_and_resolve_settle_once() -> None:
    callbacks, completion, loop = _make()
    try:
        callbacks.resolve(Report())
        callbacks.fail(RuntimeError("late"))
        assert completion.result() == Report()
    finally:
        loop.close()
