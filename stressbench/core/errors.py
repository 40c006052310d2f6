"""
Exception hierarchy for the stress harness.

Statement-level failures inside worker loops are expected under contention and
are only counted. Everything else either aborts the run (setup, drain,
connection establishment, harness defects) or is reported as a consistency
violation once verification completes.
"""

from __future__ import annotations


class StressBenchError(Exception):
    """Base class for all harness errors."""


class StatementError(StressBenchError):
    """A statement was rejected or failed on the store side."""

    def __init__(self, message: str, *, sql: str | None = None):
        super().__init__(message)
        self.sql = sql


class ConnectionSetupError(StressBenchError):
    """A connection to the store could not be established."""


class SetupError(StressBenchError):
    """Setup, seed, or staging SQL failed; the run cannot proceed."""


class DrainError(StressBenchError):
    """The post-shutdown drain step failed."""


class HarnessError(StressBenchError):
    """The orchestration logic itself is broken (not the store under test)."""


class ConsistencyViolation(StressBenchError):
    """One or more verification assertions failed."""

    def __init__(self, message: str, failures: list | None = None):
        super().__init__(message)
        self.failures = list(failures or [])
