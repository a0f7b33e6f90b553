from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import shutil
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen

from .cdp import CdpConnection
from .config import BrowserConfig
from .errors import CdpError

logger = logging.getLogger("qunit_cdp.launcher")


def _http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from URL."""
    try:
        req = Request(url, headers={"User-Agent": "qunit-cdp"})
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (OSError, URLError, ValueError) as exc:
        raise CdpError(str(exc)) from exc


def _tail_text(path: Path, max_chars: int = 4000) -> str | None:
    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return raw[-max_chars:] if raw else None


class ChromeLauncher:
    """Owns one headless Chromium process with a throw-away profile."""

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig.from_env()
        self.process: subprocess.Popen | None = None
        self.port: int | None = None
        self.profile_dir: Path | None = None

    @staticmethod
    def find_free_port() -> int:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def build_launch_command(self) -> list[str]:
        flags = [
            f"--remote-debugging-port={self.port}",
            f"--user-data-dir={self.profile_dir}",
            "--remote-allow-origins=*",
            "--allow-file-access-from-files",
            "--no-first-run",
            "--no-default-browser-check",
            "--disable-gpu",
            "--disable-dev-shm-usage",
        ]
        if self.config.headless:
            flags.append("--headless=new")
        if self.config.no_sandbox:
            flags.append("--no-sandbox")
        flags.extend(self.config.extra_flags)
        return [self.config.binary_path, *flags, "about:blank"]

    def _cdp_ready(self, timeout: float = 0.4) -> bool:
        try:
            with urlopen(f"{self.endpoint}/json/version", timeout=timeout) as resp:
                return resp.status == 200
        except (OSError, TimeoutError, URLError):
            return False

    async def start(self) -> None:
        """Spawn the browser and wait until its DevTools endpoint answers."""
        self.port = self.find_free_port()
        self.profile_dir = Path(tempfile.mkdtemp(prefix="qunit-cdp-profile-"))
        log_path = self.profile_dir / "chrome.log"
        cmd = self.build_launch_command()
        logger.debug("launching %s", cmd)

        try:
            with open(log_path, "ab", buffering=0) as log_fh:
                self.process = subprocess.Popen(cmd, stdout=log_fh, stderr=log_fh, stdin=subprocess.DEVNULL)
        except OSError as exc:
            await asyncio.to_thread(self.stop)
            raise CdpError(f"Cannot launch browser {self.config.binary_path}: {exc}") from exc

        deadline = time.monotonic() + self.config.launch_timeout
        while time.monotonic() < deadline:
            if await asyncio.to_thread(self._cdp_ready):
                logger.debug("browser ready on port %s", self.port)
                return
            if self.process.poll() is not None:
                break
            await asyncio.sleep(0.1)

        tail = _tail_text(log_path)
        await asyncio.to_thread(self.stop)
        message = f"Browser did not expose DevTools on port {self.port}"
        if tail:
            message = f"{message}:\n{tail}"
        raise CdpError(message)

    async def new_page(self) -> str:
        """Create a blank tab and return its websocket debugger URL."""
        version = await asyncio.to_thread(_http_get_json, f"{self.endpoint}/json/version")
        browser_ws = version.get("webSocketDebuggerUrl") if isinstance(version, dict) else None
        if not browser_ws:
            raise CdpError("CDP browser WebSocket URL not found")

        conn = await CdpConnection.connect(browser_ws, timeout=self.config.command_timeout)
        try:
            result = await conn.send("Target.createTarget", {"url": "about:blank"})
        finally:
            await conn.close()
        target_id = result.get("targetId")
        if not target_id:
            raise CdpError("Failed to create browser tab")

        targets = await asyncio.to_thread(_http_get_json, f"{self.endpoint}/json/list")
        for target in targets or []:
            if target.get("id") == target_id and target.get("webSocketDebuggerUrl"):
                return target["webSocketDebuggerUrl"]
        return f"ws://127.0.0.1:{self.port}/devtools/page/{target_id}"

    def stop(self, *, timeout: float = 2.0) -> None:
        """Terminate the browser (kill if needed) and remove its profile."""
        proc = self.process
        self.process = None
        if proc is not None and proc.poll() is None:
            with contextlib.suppress(Exception):
                proc.terminate()
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                with contextlib.suppress(Exception):
                    proc.kill()
                with contextlib.suppress(Exception):
                    proc.wait(timeout=timeout)
        if self.profile_dir is not None:
            shutil.rmtree(self.profile_dir, ignore_errors=True)
            self.profile_dir = None
