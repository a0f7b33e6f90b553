"""Result tree of a QUnit run.

`to_dict()` produces the JSON report handed to callers (camelCase keys, absent
values omitted except an assertion's expected/actual, which may be null);
`from_dict()` reads it back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class LogEntry:
    result: bool
    expected: Any = None
    actual: Any = None
    message: str | None = None
    module: str | None = None
    name: str | None = None
    source: str | None = None
    runtime: float | None = None
    test_id: str | None = None

    @classmethod
    def from_event(cls, payload: dict[str, Any]) -> LogEntry:
        return cls(
            result=bool(payload.get("result")),
            expected=payload.get("expected"),
            actual=payload.get("actual"),
            message=payload.get("message"),
            module=payload.get("module"),
            name=payload.get("name"),
            source=payload.get("source"),
            runtime=payload.get("runtime"),
            test_id=payload.get("testId"),
        )

    def to_dict(self) -> dict[str, Any]:
        # expected/actual may legitimately be null, so they are always written.
        data: dict[str, Any] = {"result": self.result, "expected": self.expected, "actual": self.actual}
        data.update(
            _compact(
                {
                    "message": self.message,
                    "module": self.module,
                    "name": self.name,
                    "source": self.source,
                    "runtime": self.runtime,
                    "testId": self.test_id,
                }
            )
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        return cls.from_event(data)


@dataclass
class Test:
    name: str
    module: str
    test_id: str | None = None
    passed: int | None = None
    failed: int | None = None
    total: int | None = None
    runtime: float | None = None
    skipped: bool | None = None
    todo: bool | None = None
    previous_failure: bool | None = None
    log: list[LogEntry] | None = None

    # Keep pytest from collecting this class when imported into test modules.
    __test__ = False

    def failed_assertions(self) -> list[LogEntry]:
        return [entry for entry in self.log or [] if not entry.result]

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "module": self.module,
                "testId": self.test_id,
                "passed": self.passed,
                "failed": self.failed,
                "total": self.total,
                "runtime": self.runtime,
                "skipped": self.skipped,
                "todo": self.todo,
                "previousFailure": self.previous_failure,
                "log": [entry.to_dict() for entry in self.log] if self.log is not None else None,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Test:
        log = data.get("log")
        return cls(
            name=data["name"],
            module=data["module"],
            test_id=data.get("testId"),
            passed=data.get("passed"),
            failed=data.get("failed"),
            total=data.get("total"),
            runtime=data.get("runtime"),
            skipped=data.get("skipped"),
            todo=data.get("todo"),
            previous_failure=data.get("previousFailure"),
            log=[LogEntry.from_dict(entry) for entry in log] if log is not None else None,
        )


@dataclass
class Module:
    name: str
    tests: list[Test] = field(default_factory=list)
    failed: int | None = None
    passed: int | None = None
    runtime: float | None = None
    total: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "name": self.name,
                "tests": [test.to_dict() for test in self.tests],
                "failed": self.failed,
                "passed": self.passed,
                "runtime": self.runtime,
                "total": self.total,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Module:
        return cls(
            name=data["name"],
            tests=[Test.from_dict(test) for test in data.get("tests") or []],
            failed=data.get("failed"),
            passed=data.get("passed"),
            runtime=data.get("runtime"),
            total=data.get("total"),
        )


@dataclass
class RunStats:
    total: int = 0
    passed: int = 0
    failed: int = 0
    runtime: float = 0

    @classmethod
    def from_event(cls, payload: dict[str, Any]) -> RunStats:
        return cls(
            total=int(payload.get("total") or 0),
            passed=int(payload.get("passed") or 0),
            failed=int(payload.get("failed") or 0),
            runtime=payload.get("runtime") or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "passed": self.passed, "failed": self.failed, "runtime": self.runtime}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunStats:
        return cls.from_event(data)


@dataclass
class Report:
    total_tests: int | None = None
    stats: RunStats | None = None
    modules: dict[str, Module] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.stats is not None and self.stats.failed == 0

    def tests(self) -> list[Test]:
        return [test for module in self.modules.values() for test in module.tests]

    def failed_tests(self) -> list[Test]:
        return [test for test in self.tests() if (test.failed or 0) > 0]

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "totalTests": self.total_tests,
                "stats": self.stats.to_dict() if self.stats is not None else None,
                "modules": {name: module.to_dict() for name, module in self.modules.items()},
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Report:
        stats = data.get("stats")
        return cls(
            total_tests=data.get("totalTests"),
            stats=RunStats.from_dict(stats) if stats is not None else None,
            modules={name: Module.from_dict(module) for name, module in (data.get("modules") or {}).items()},
        )
