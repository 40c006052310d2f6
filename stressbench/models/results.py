"""
Run Result Models

Tallies, verification assertions and the final run report.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from stressbench.core.errors import ConsistencyViolation


@dataclass
class WorkerOutcome:
    """Terminal result of one worker: per-category successes and failures."""

    role: str
    replica: int = 0
    executed: int = 0
    successes: Counter = field(default_factory=Counter)
    failures: Counter = field(default_factory=Counter)

    def record(self, category: str, ok: bool) -> None:
        if ok:
            self.successes[category] += 1
        else:
            self.failures[category] += 1


@dataclass
class CategoryCount:
    successes: int = 0
    failures: int = 0


class ResultTally:
    """Category -> success/failure counts.

    Only the driver folds outcomes into a tally, after the corresponding
    workers have been joined; it is never touched concurrently.
    """

    def __init__(self) -> None:
        self._counts: dict[str, CategoryCount] = {}

    def _entry(self, category: str) -> CategoryCount:
        entry = self._counts.get(category)
        if entry is None:
            entry = CategoryCount()
            self._counts[category] = entry
        return entry

    def fold(self, outcome: WorkerOutcome) -> None:
        for category, n in outcome.successes.items():
            self._entry(category).successes += int(n)
        for category, n in outcome.failures.items():
            self._entry(category).failures += int(n)

    def add(self, category: str, *, successes: int = 0, failures: int = 0) -> None:
        entry = self._entry(category)
        entry.successes += int(successes)
        entry.failures += int(failures)

    def successes(self, category: str) -> int:
        entry = self._counts.get(category)
        return entry.successes if entry else 0

    def failures(self, category: str) -> int:
        entry = self._counts.get(category)
        return entry.failures if entry else 0

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            name: {"successes": c.successes, "failures": c.failures}
            for name, c in sorted(self._counts.items())
        }


@dataclass
class VerificationAssertion:
    """Outcome of a single comparison made during verification."""

    name: str
    passed: bool
    expected: Any = None
    observed: Any = None
    message: str = ""
    informational: bool = False

    def describe(self) -> str:
        if self.informational:
            status = "INFO"
        else:
            status = "PASS" if self.passed else "FAIL"
        text = f"[{status}] {self.name}: expected={self.expected!r} observed={self.observed!r}"
        if self.message:
            text += f" ({self.message})"
        return text


@dataclass
class VerificationReport:
    assertions: list[VerificationAssertion] = field(default_factory=list)

    def add(self, assertion: VerificationAssertion) -> VerificationAssertion:
        self.assertions.append(assertion)
        return assertion

    def extend(self, assertions: list[VerificationAssertion]) -> None:
        self.assertions.extend(assertions)

    @property
    def failures(self) -> list[VerificationAssertion]:
        return [a for a in self.assertions if not a.informational and not a.passed]

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_if_failed(self) -> None:
        failures = self.failures
        if failures:
            raise ConsistencyViolation(
                f"{len(failures)} verification assertion(s) failed", failures
            )


@dataclass
class RunReport:
    """Everything a run produced, handed back to the caller."""

    scenario: str
    tally: ResultTally
    verification: VerificationReport
    diagnostics: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.verification.ok
