"""Human-readable rendering of a Report.

Pure functions: they read the report and return lines; the print_* helpers
write those lines to a stream.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Any, TextIO

from colorama import Fore, Style, just_fix_windows_console

from .models import LogEntry, Module, Report, Test

just_fix_windows_console()

INDENT = "  "


class TerminalColors:
    """Semantic colours; disabled when NO_COLOR is set."""

    ERROR = Fore.RED
    SUCCESS = Fore.GREEN
    INFO = Fore.CYAN
    DIM = Style.DIM
    BOLD = Style.BRIGHT
    RESET = Style.RESET_ALL

    @classmethod
    def enabled(cls) -> bool:
        return os.environ.get("NO_COLOR") is None

    @classmethod
    def paint(cls, text: str, *styles: str) -> str:
        if not cls.enabled():
            return text
        return f"{''.join(styles)}{text}{cls.RESET}"

    @classmethod
    def error(cls, text: str) -> str:
        return cls.paint(text, cls.ERROR)

    @classmethod
    def success(cls, text: str) -> str:
        return cls.paint(text, cls.SUCCESS)

    @classmethod
    def info(cls, text: str) -> str:
        return cls.paint(text, cls.INFO)

    @classmethod
    def header(cls, text: str) -> str:
        return cls.paint(text, cls.BOLD)


def _value(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)


def _runtime(value: float | None) -> str:
    return f"{value:g} ms" if isinstance(value, (int, float)) else "? ms"


def _assertion_lines(entry: LogEntry, depth: int) -> list[str]:
    pad = INDENT * depth
    lines = [pad + TerminalColors.error(f"Failed assertion: {entry.message or '(no message)'}")]
    lines.append(f"{pad}{INDENT}Expected: {_value(entry.expected)}")
    lines.append(f"{pad}{INDENT}Actual:   {_value(entry.actual)}")
    if entry.source:
        for source_line in entry.source.strip().splitlines():
            lines.append(pad + INDENT + TerminalColors.paint(source_line.strip(), TerminalColors.DIM))
    return lines


def _test_line(test: Test) -> str:
    counts = f"[{test.passed or 0}/{test.total or 0}]"
    text = f"{counts} {test.name} ({_runtime(test.runtime)})"
    if test.skipped:
        return TerminalColors.info(f"{text} skipped")
    if (test.failed or 0) > 0:
        return TerminalColors.error(text)
    return TerminalColors.success(text)


def _module_line(module: Module) -> str:
    counts = f"[{module.passed or 0}/{module.total or 0}]"
    text = f"Module: {module.name} {counts} ({_runtime(module.runtime)})"
    return TerminalColors.header(text)


def format_output(report: Report) -> list[str]:
    """Every module with its tests, and the failed assertions of failing tests."""
    lines: list[str] = []
    for module in report.modules.values():
        lines.append(_module_line(module))
        for test in module.tests:
            lines.append(INDENT + _test_line(test))
            if (test.failed or 0) > 0:
                for entry in test.failed_assertions():
                    lines.extend(_assertion_lines(entry, depth=2))
    return lines


def format_summary(report: Report) -> list[str]:
    stats = report.stats
    if stats is None:
        return [TerminalColors.error("Test run result: unknown (no stats)")]
    outcome = TerminalColors.success("pass") if stats.failed == 0 else TerminalColors.error("fail")
    return [
        f"Test run result: {outcome}",
        f"Total tests: {report.total_tests if report.total_tests is not None else len(report.tests())}",
        f"{INDENT}Assertions: {stats.total}",
        f"{INDENT}Passed assertions: {stats.passed}",
        f"{INDENT}Failed assertions: {stats.failed}",
        f"{INDENT}Runtime: {_runtime(stats.runtime)}",
    ]


def format_failed_tests(report: Report) -> list[str]:
    lines: list[str] = []
    for test in report.failed_tests():
        lines.append(TerminalColors.error(f"{test.module} > {test.name}"))
        for entry in test.failed_assertions():
            lines.extend(_assertion_lines(entry, depth=1))
    return lines


def _write(lines: list[str], stream: TextIO | None) -> None:
    out = stream if stream is not None else sys.stdout
    for line in lines:
        out.write(line + "\n")


def print_output(report: Report, stream: TextIO | None = None) -> None:
    _write(format_output(report), stream)


def print_result_summary(report: Report, stream: TextIO | None = None) -> None:
    _write(format_summary(report), stream)


def print_failed_tests(report: Report, stream: TextIO | None = None) -> None:
    _write(format_failed_tests(report), stream)
