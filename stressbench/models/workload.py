"""
Workload Role Models

A scenario describes its workers as data: which statements a role issues on
each iteration, whether it loops until shutdown or runs a fixed number of
iterations, and how many replicas of it run concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence


class RoleKind(str, Enum):
    """How a worker decides when to stop."""

    BOUNDED = "bounded"  # fixed iteration count, terminates on its own
    UNBOUNDED = "unbounded"  # loops until the shutdown signal is observed


@dataclass(frozen=True)
class Statement:
    """One SQL statement and the tally category its outcome is counted under."""

    sql: str
    category: str


# (replica, iteration) -> statements to run for that iteration, in order.
PlanFn = Callable[[int, int], Sequence[Statement]]


def fixed_plan(*statements: Statement) -> PlanFn:
    """Plan that issues the same statements on every iteration."""
    frozen = tuple(statements)

    def plan(replica: int, iteration: int) -> Sequence[Statement]:
        return frozen

    return plan


@dataclass(frozen=True)
class WorkerRole:
    """
    A kind of worker within a scenario.

    Attributes:
        name: Role name used in log lines
        kind: Bounded or unbounded
        plan: Statements per iteration
        iterations: Iterations per replica (bounded roles only)
        replicas: Number of concurrent copies of this role
        connection_per_iteration: Open a fresh session for each iteration
            instead of holding one for the worker's lifetime
        all_or_nothing: Treat an iteration's statements as one unit: stop at
            the first failure and count the iteration once under the role name
        verbose_errors: Log every failed statement. Unbounded roles always
            log failures; bounded roles only when this is set.
        progress_every: Unbounded roles log a progress line every N iterations
            (0 disables it). Bounded roles log every 1% of planned iterations.
    """

    name: str
    kind: RoleKind
    plan: PlanFn
    iterations: int = 0
    replicas: int = 1
    connection_per_iteration: bool = False
    all_or_nothing: bool = False
    verbose_errors: bool = False
    progress_every: int = 0

    def __post_init__(self) -> None:
        if self.iterations < 0:
            raise ValueError(f"role {self.name!r}: iterations must be >= 0")
        if self.replicas < 0:
            raise ValueError(f"role {self.name!r}: replicas must be >= 0")

    @property
    def planned_iterations(self) -> int:
        """Total iterations across replicas (0 for unbounded roles)."""
        if self.kind is RoleKind.UNBOUNDED:
            return 0
        return self.iterations * self.replicas


def looping(
    name: str,
    *statements: Statement,
    replicas: int = 1,
    progress_every: int = 0,
    connection_per_iteration: bool = False,
) -> WorkerRole:
    """Unbounded role issuing the same statements until shutdown."""
    return WorkerRole(
        name=name,
        kind=RoleKind.UNBOUNDED,
        plan=fixed_plan(*statements),
        replicas=replicas,
        progress_every=progress_every,
        connection_per_iteration=connection_per_iteration,
    )


def statements_of(plan: PlanFn, replica: int = 0, iteration: int = 0) -> list[str]:
    """SQL text a plan produces for one iteration (useful for logging/tests)."""
    return [s.sql for s in plan(replica, iteration)]


__all__ = [
    "PlanFn",
    "RoleKind",
    "Statement",
    "WorkerRole",
    "fixed_plan",
    "looping",
    "statements_of",
]