from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_TIMEOUT_MS = 30000

DEFAULT_BINARY_CANDIDATES: list[str] = [
    # Prefer Chromium builds; snap packages ignore --user-data-dir in some setups.
    "/usr/bin/chromium",
    "/usr/bin/chromium-browser",
    "/usr/local/bin/chromium",
    "/opt/chromium/chromium",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "C:\\Program Files\\Chromium\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Chromium\\Application\\chrome.exe",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/opt/google/chrome/chrome",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    "/snap/bin/chromium",
]


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass
class RunConfig:
    """Configuration of a single QUnit run."""

    target_url: str
    timeout: int = DEFAULT_TIMEOUT_MS
    redirect_console: bool = False

    def __post_init__(self) -> None:
        if not self.timeout or self.timeout <= 0:
            self.timeout = DEFAULT_TIMEOUT_MS

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0


@dataclass
class BrowserConfig:
    binary_path: str
    headless: bool = True
    no_sandbox: bool = False
    extra_flags: list[str] = field(default_factory=list)
    launch_timeout: float = 10.0
    command_timeout: float = 10.0

    @classmethod
    def detect_binary(cls) -> str:
        env_path = os.environ.get("QUNIT_CDP_BINARY")
        if env_path:
            return expand_path(env_path)
        for candidate in DEFAULT_BINARY_CANDIDATES:
            path = Path(candidate)
            if path.exists() and os.access(str(path), os.X_OK):
                return str(path)
        # Last resort: rely on PATH lookup
        return "google-chrome"

    @staticmethod
    def _running_as_root() -> bool:
        geteuid = getattr(os, "geteuid", None)
        return geteuid is not None and geteuid() == 0

    @classmethod
    def from_env(cls) -> BrowserConfig:
        flags_raw = os.environ.get("QUNIT_CDP_FLAGS", "")
        extra_flags = [flag.strip() for flag in flags_raw.split(",") if flag.strip()]
        no_sandbox = os.environ.get("QUNIT_CDP_NO_SANDBOX", "0") == "1" or cls._running_as_root()
        return cls(
            binary_path=cls.detect_binary(),
            headless=os.environ.get("QUNIT_CDP_HEADLESS", "1") != "0",
            no_sandbox=no_sandbox,
            extra_flags=extra_flags,
            launch_timeout=_env_float("QUNIT_CDP_LAUNCH_TIMEOUT", 10.0),
            command_timeout=_env_float("QUNIT_CDP_COMMAND_TIMEOUT", 10.0),
        )
