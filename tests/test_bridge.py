from __future__ import annotations

import json
import re

from qunit_cdp.bridge import (
    CALLBACKS_PREFIX,
    LIFECYCLE_EVENTS,
    build_bridge_script,
    callback_name,
    callback_names,
)


def _embedded_config(script: str) -> dict:
    match = re.search(r"const cfg = (\{.*?\});\n", script)
    assert match is not None
    return json.loads(match.group(1))


def test_lifecycle_vocabulary_is_fixed() -> None:
    assert set(LIFECYCLE_EVENTS) == {"begin", "done", "moduleStart", "moduleDone", "testStart", "testDone", "log"}
    assert callback_name("testDone") == f"{CALLBACKS_PREFIX}_testDone"
    names = callback_names()
    assert list(names) == list(LIFECYCLE_EVENTS)
    assert len(set(names.values())) == 7


def test_script_embeds_timeout_and_bindings() -> None:
    script = build_bridge_script(4500)
    cfg = _embedded_config(script)
    assert cfg["testTimeout"] == 4500
    assert cfg["callbacks"] == callback_names()
    assert "__QUNIT_CDP_CONFIG__" not in script


def test_script_intercepts_global_with_accessor() -> None:
    script = build_bridge_script(1000)
    assert 'Object.defineProperty(g, "QUnit"' in script
    assert "set: (value)" in script
    assert "get: () => current" in script


def test_script_wires_once_and_reports_errors_to_console() -> None:
    script = build_bridge_script(1000)
    assert "if (QUnit[WIRED]) return;" in script
    assert "console.error" in script
    # Wiring failures are caught inside the page, never rethrown.
    assert "throw" not in script


def test_custom_callback_names_are_used() -> None:
    custom = {"begin": "b", "done": "d"}
    cfg = _embedded_config(build_bridge_script(10, custom))
    assert cfg["callbacks"] == custom
