"""
Command-line entry point: run a QUnit page in headless Chromium and print the results.

Exit code is 0 when no assertion failed, 1 on failures or any error.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from .config import DEFAULT_TIMEOUT_MS, BrowserConfig, RunConfig
from .errors import RunnerError
from .reporting import TerminalColors, print_failed_tests, print_output, print_result_summary
from .runner import run_qunit_sync

logger = logging.getLogger("qunit_cdp")

__all__ = ["build_parser", "main", "normalize_target"]


def normalize_target(raw: str, cwd: str | None = None) -> str:
    """Turn a URL or filesystem path into a URL the browser can open."""
    target = raw.strip()
    if target.startswith(("http://", "https://", "file://")):
        return target
    path = Path(target).expanduser()
    if not path.is_absolute():
        path = Path(cwd or os.getcwd()) / path
    return path.resolve().as_uri()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qunit-cdp",
        description="Run QUnit tests in headless Chromium and report the results.",
    )
    parser.add_argument("target", help="URL or path to the HTML file with QUnit tests")
    parser.add_argument(
        "timeout",
        nargs="?",
        type=int,
        default=DEFAULT_TIMEOUT_MS,
        help=f"maximum run time in milliseconds (default {DEFAULT_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--redirect-console",
        action="store_true",
        help="print the page console output",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    if args.redirect_console:
        logging.getLogger("qunit_cdp.console").setLevel(logging.INFO)

    config = RunConfig(
        target_url=normalize_target(args.target),
        timeout=args.timeout,
        redirect_console=args.redirect_console,
    )
    print(f"Target URL is {config.target_url}, timeout is {config.timeout}")

    try:
        report = run_qunit_sync(config, browser_config=BrowserConfig.from_env())
    except RunnerError as exc:
        print(TerminalColors.error(str(exc)), file=sys.stderr)
        return 1
    except Exception as exc:
        logger.exception("run_failed")
        print(TerminalColors.error(f"Unexpected error: {exc}"), file=sys.stderr)
        return 1

    print_output(report)
    print()
    print_result_summary(report)
    if report.stats is not None and report.stats.failed > 0:
        print()
        print_failed_tests(report)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
