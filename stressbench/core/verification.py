"""Verification engine.

Runs a scenario's battery of read-only checks once every mutating worker has
been joined and the drain step has completed. Every check runs even when an
earlier one failed; a check whose query errors is itself recorded as a failed
assertion carrying the store's message.

Client-side tallies are compared against server-side counts only
informationally (or as an upper bound): a statement the client saw fail may
still have committed, so the two can legitimately disagree.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from stressbench.connectors.base import Connection
from stressbench.core.errors import StatementError
from stressbench.models.results import (
    ResultTally,
    VerificationAssertion,
    VerificationReport,
)

logger = logging.getLogger(__name__)


def _as_int(value: Any) -> int:
    # sum() over an empty table is NULL
    if value is None:
        return 0
    return int(value)


class Check(ABC):
    name: str

    @abstractmethod
    async def evaluate(
        self, conn: Connection, tally: ResultTally
    ) -> list[VerificationAssertion]:
        """Run the check's queries and return its assertions."""


@dataclass
class CrossTargetEquality(Check):
    """Every target table matches the baseline in row count and column sum."""

    baseline: str
    targets: Sequence[str]
    value_column: str | None = "b"  # None compares row counts only
    name: str = "cross-target equality"

    async def _stats(self, conn: Connection, table: str) -> tuple[int, int]:
        if self.value_column is None:
            return _as_int(await conn.query_scalar(f"select count(*) from {table}")), 0
        row = await conn.query_row(
            f"select count(*), sum({self.value_column}) from {table}"
        )
        if row is None:
            return 0, 0
        return _as_int(row[0]), _as_int(row[1])

    async def evaluate(self, conn, tally):
        count, total = await self._stats(conn, self.baseline)
        logger.info("%s: row count %d, sum of `%s` %d", self.baseline, count, self.value_column, total)
        out = [
            VerificationAssertion(
                name=f"{self.baseline} baseline",
                passed=True,
                observed=(count, total),
                informational=True,
            )
        ]
        for target in self.targets:
            try:
                c, s = await self._stats(conn, target)
            except StatementError as e:
                out.append(
                    VerificationAssertion(
                        name=f"{target} matches {self.baseline}",
                        passed=False,
                        expected=(count, total),
                        message=f"query failed: {e}",
                    )
                )
                continue
            logger.info("%s: row count %d, sum %d", target, c, s)
            out.append(
                VerificationAssertion(
                    name=f"{target} matches {self.baseline}",
                    passed=(c == count and s == total),
                    expected=(count, total),
                    observed=(c, s),
                    message="" if (c == count and s == total) else "diverse result",
                )
            )
        return out


@dataclass
class ScalarEquals(Check):
    """A single-value query returns the expected value."""

    name: str
    sql: str
    expected: Any = 0

    async def evaluate(self, conn, tally):
        observed = await conn.query_scalar(self.sql)
        if isinstance(self.expected, int) and observed is not None:
            observed = int(observed)
        return [
            VerificationAssertion(
                name=self.name,
                passed=observed == self.expected,
                expected=self.expected,
                observed=observed,
            )
        ]


def zero_count(name: str, sql: str) -> ScalarEquals:
    return ScalarEquals(name=name, sql=sql, expected=0)


@dataclass
class MultipleOf(Check):
    """A count query returns a multiple of ``divisor``."""

    name: str
    sql: str
    divisor: int

    async def evaluate(self, conn, tally):
        observed = _as_int(await conn.query_scalar(self.sql))
        remainder = observed % self.divisor if self.divisor else observed
        return [
            VerificationAssertion(
                name=self.name,
                passed=remainder == 0,
                expected=f"multiple of {self.divisor}",
                observed=observed,
                message="" if remainder == 0 else f"remainder {remainder}",
            )
        ]


@dataclass
class FullScan(Check):
    """Reading every row succeeds (corruption probe)."""

    name: str
    sql: str

    async def evaluate(self, conn, tally):
        try:
            rows = await conn.scan(self.sql)
        except StatementError as e:
            return [
                VerificationAssertion(
                    name=self.name,
                    passed=False,
                    expected="scan completes",
                    observed="error",
                    message=f"full table scan failed: {e}",
                )
            ]
        return [
            VerificationAssertion(
                name=self.name,
                passed=True,
                expected="scan completes",
                observed=f"{rows} row(s)",
            )
        ]


class TallyMode(str, Enum):
    INFORMATIONAL = "informational"  # report only
    AT_MOST = "at_most"  # server value <= client attempts * factor


@dataclass
class TallyComparison(Check):
    """Compare a server-side value against a client-side tally category."""

    name: str
    sql: str
    category: str
    per_success: int = 1
    mode: TallyMode = TallyMode.INFORMATIONAL

    async def evaluate(self, conn, tally):
        observed = _as_int(await conn.query_scalar(self.sql))
        successes = tally.successes(self.category)
        if self.mode is TallyMode.AT_MOST:
            ceiling = (successes + tally.failures(self.category)) * self.per_success
            return [
                VerificationAssertion(
                    name=self.name,
                    passed=observed <= ceiling,
                    expected=f"<= {ceiling}",
                    observed=observed,
                    message=f"client successes {successes}",
                )
            ]
        expected = successes * self.per_success
        logger.info("CHECK: %s: client %d, server %d", self.name, expected, observed)
        return [
            VerificationAssertion(
                name=self.name,
                passed=observed == expected,
                expected=expected,
                observed=observed,
                message="client/server may disagree under communication failure",
                informational=True,
            )
        ]


@dataclass
class DiagnosticQuery:
    """Store-reported operational data surfaced after verification."""

    title: str
    sql: str
    columns: Sequence[str] = field(default_factory=tuple)


class VerificationEngine:
    """Runs checks against a single read-only session."""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def verify(
        self, checks: Sequence[Check], tally: ResultTally
    ) -> VerificationReport:
        logger.info("==========================")
        logger.info("======verify result=======")
        logger.info("==========================")
        report = VerificationReport()
        for check in checks:
            logger.info("CHECK: %s", check.name)
            try:
                assertions = await check.evaluate(self.conn, tally)
            except StatementError as e:
                assertions = [
                    VerificationAssertion(
                        name=check.name,
                        passed=False,
                        message=f"query failed: {e}",
                    )
                ]
            for assertion in assertions:
                report.add(assertion)
                if assertion.informational or assertion.passed:
                    logger.info(assertion.describe())
                else:
                    logger.error(assertion.describe())
        return report

    async def collect_diagnostics(self, queries: Sequence[DiagnosticQuery]) -> list[str]:
        """Run diagnostic queries; failures are logged and skipped."""
        lines: list[str] = []
        for query in queries:
            logger.info("========%s========", query.title)
            try:
                rows = await self.conn.query_all(query.sql)
            except StatementError as e:
                logger.warning("diagnostic %r unavailable: %s", query.title, e)
                continue
            for row in rows:
                if query.columns and len(query.columns) == len(row):
                    line = ", ".join(f"{c}: {v}" for c, v in zip(query.columns, row))
                else:
                    line = " : ".join(str(v) for v in row)
                lines.append(f"{query.title}: {line}")
                logger.info("%s", line)
        return lines


def log_verdict(report: VerificationReport) -> None:
    logger.info("===========================")
    if report.ok:
        logger.info("======     PASSED      ====")
        logger.info("===========================")
        return
    logger.info("======     FAILED      ====")
    logger.info("===========================")
    for assertion in report.failures:
        logger.error(assertion.describe())
