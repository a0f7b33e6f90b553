from __future__ import annotations


class RunnerError(Exception):
    pass


class CdpError(RunnerError):
    """The browser could not be launched or a DevTools command failed."""


class RunTimeoutError(RunnerError):
    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"Test run could not finish in {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ProtocolError(RunnerError):
    """A lifecycle event does not fit the result tree built so far."""


class NavigationError(RunnerError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to load {url}: {reason}")
        self.url = url
        self.reason = reason
