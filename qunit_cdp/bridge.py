from __future__ import annotations

import json

CALLBACKS_PREFIX = "qunit_cdp_runner"

# QUnit lifecycle registration points, in the order a run emits them first.
LIFECYCLE_EVENTS: tuple[str, ...] = (
    "begin",
    "moduleStart",
    "testStart",
    "log",
    "testDone",
    "moduleDone",
    "done",
)

_CONFIG_PLACEHOLDER = "__QUNIT_CDP_CONFIG__"


def callback_name(event: str) -> str:
    return f"{CALLBACKS_PREFIX}_{event}"


def callback_names() -> dict[str, str]:
    """Map each lifecycle event to the host binding that receives it."""
    return {event: callback_name(event) for event in LIFECYCLE_EVENTS}


# NOTE: This script runs in the page before any page script and cannot see
# anything on the host side except the binding names it is configured with.
# It intercepts the `QUnit` global with an accessor so the framework is wired
# whenever (and however often) the page assigns it:
# - sets QUnit.config.testTimeout
# - registers one trampoline per lifecycle callback, forwarding the details
#   object as a JSON string to `window[<binding>]`
# Wiring errors are reported through console.error and never thrown.
BRIDGE_SCRIPT_TEMPLATE = r"""
(() => {
  const cfg = __QUNIT_CDP_CONFIG__;
  const g = window;
  const WIRED = "__qunitCdpWired";

  function safeStringify(details) {
    try {
      return JSON.stringify(details === undefined ? null : details);
    } catch (err) {
      const seen = new WeakSet();
      return JSON.stringify(details, (key, value) => {
        if (typeof value === "object" && value !== null) {
          if (seen.has(value)) return "[Circular]";
          seen.add(value);
        }
        if (typeof value === "function") return String(value);
        return value;
      });
    }
  }

  function wire(QUnit) {
    if (!QUnit || (typeof QUnit !== "object" && typeof QUnit !== "function")) return;
    try {
      if (QUnit[WIRED]) return;
      Object.defineProperty(QUnit, WIRED, { value: true, enumerable: false });

      if (QUnit.config) {
        QUnit.config.testTimeout = cfg.testTimeout;
      }

      Object.keys(cfg.callbacks).forEach((event) => {
        const binding = cfg.callbacks[event];
        QUnit[event]((details) => {
          g[binding](safeStringify(details));
        });
      });
    } catch (ex) {
      console.error(`Error while executing the in-page script: ${ex}`);
    }
  }

  let current = g.QUnit;
  try {
    Object.defineProperty(g, "QUnit", {
      configurable: true,
      enumerable: true,
      get: () => current,
      set: (value) => {
        current = value;
        wire(value);
      },
    });
  } catch (ex) {
    console.error(`Error while executing the in-page script: ${ex}`);
  }
  if (current) wire(current);
})();
"""


def build_bridge_script(test_timeout_ms: int, callbacks: dict[str, str] | None = None) -> str:
    """Render the pre-navigation script for the given timeout and binding names."""
    config = {
        "testTimeout": int(test_timeout_ms),
        "callbacks": dict(callbacks if callbacks is not None else callback_names()),
    }
    return BRIDGE_SCRIPT_TEMPLATE.replace(_CONFIG_PLACEHOLDER, json.dumps(config))
