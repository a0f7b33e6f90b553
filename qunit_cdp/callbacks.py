from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from .aggregator import ResultAggregator
from .bridge import callback_names
from .errors import ProtocolError
from .models import Report

logger = logging.getLogger("qunit_cdp.callbacks")

# The run resolves on `done`, never on `testDone`, so the returned report always carries stats.
RESOLVING_EVENT = "done"


class HostCallbacks:
    """Host side of the bridge: one handler per lifecycle binding.

    Handlers receive the JSON string the page passed to the binding, merge it
    into the aggregator and settle ``completion`` exactly once: with the
    report on ``done``, or with the first error any handler raises.
    """

    def __init__(self, aggregator: ResultAggregator, completion: asyncio.Future) -> None:
        self.aggregator = aggregator
        self.completion = completion

    def handlers(self) -> dict[str, Callable[[str], None]]:
        """Binding name -> handler, for all seven lifecycle events."""
        return {binding: self._make_handler(event) for event, binding in callback_names().items()}

    def handle(self, event: str, raw: str) -> None:
        if self.completion.done():
            logger.debug("ignoring %s after the run settled", event)
            return
        try:
            payload = self._decode(event, raw)
            result = self.aggregator.apply(event, payload)
        except Exception as exc:
            logger.debug("lifecycle event %s failed: %s", event, exc)
            self.fail(exc)
            return
        if event == RESOLVING_EVENT:
            self.resolve(result)

    def resolve(self, report: Report) -> None:
        if not self.completion.done():
            self.completion.set_result(report)

    def fail(self, exc: BaseException) -> None:
        if not self.completion.done():
            self.completion.set_exception(exc)

    def _make_handler(self, event: str) -> Callable[[str], None]:
        def handler(raw: str) -> None:
            self.handle(event, raw)

        handler.__name__ = f"on_{event}"
        return handler

    @staticmethod
    def _decode(event: str, raw: Any) -> Any:
        if not isinstance(raw, str):
            return raw
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"{event}: payload is not valid JSON: {exc}") from exc
