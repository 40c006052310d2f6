"""Worker loops.

Two shapes of worker share one iteration routine:

- unbounded: repeat the role's plan until the shutdown token is observed
- bounded: repeat the role's plan a fixed number of times

A ``StatementError`` is the expected outcome of racing against compaction,
reclustering or a peer writer; it is logged and counted and the loop carries
on. Roles that open a connection per iteration treat a failed connect the
same way: the iteration's statements are counted as failed. Any other
exception is a harness defect and propagates out of the task.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from stressbench.connectors.base import Connection
from stressbench.core.errors import ConnectionSetupError, StatementError
from stressbench.core.shutdown import ShutdownToken
from stressbench.models.results import WorkerOutcome
from stressbench.models.workload import RoleKind, WorkerRole

logger = logging.getLogger(__name__)


class SessionFactory(Protocol):
    async def connect(self) -> Connection: ...


class ScopedSessionFactory(SessionFactory, Protocol):
    """A factory that can derive one with a different session prologue."""

    def with_session(self, session_statements: Sequence[str]) -> "ScopedSessionFactory": ...


def progress_step(iterations: int) -> int:
    """Log cadence for bounded workers: every 1% of planned iterations, at least 1."""
    return max(int(iterations) // 100, 1)


async def _run_iteration(
    conn: Connection,
    role: WorkerRole,
    replica: int,
    iteration: int,
    outcome: WorkerOutcome,
    *,
    log_failures: bool,
) -> None:
    statements = role.plan(replica, iteration)
    if role.all_or_nothing:
        for stmt in statements:
            try:
                await conn.exec(stmt.sql)
            except StatementError as e:
                if log_failures:
                    logger.info(
                        "[%s#%d] iter %d: `%s` failed: %s",
                        role.name, replica, iteration, stmt.sql, e,
                    )
                outcome.record(role.name, False)
                return
        outcome.record(role.name, True)
        return

    for stmt in statements:
        try:
            await conn.exec(stmt.sql)
        except StatementError as e:
            outcome.record(stmt.category, False)
            if log_failures:
                logger.info(
                    "[%s#%d] iter %d: %s err: %s",
                    role.name, replica, iteration, stmt.category, e,
                )
        else:
            outcome.record(stmt.category, True)


async def _iterate(
    factory: SessionFactory,
    conn: Connection | None,
    role: WorkerRole,
    replica: int,
    iteration: int,
    outcome: WorkerOutcome,
    *,
    log_failures: bool,
) -> None:
    if conn is not None:
        await _run_iteration(
            conn, role, replica, iteration, outcome, log_failures=log_failures
        )
        return
    try:
        fresh = await factory.connect()
    except ConnectionSetupError as e:
        # Only this iteration is lost; the worker keeps its slot in the run.
        logger.warning(
            "[%s#%d] iter %d: connect failed: %s", role.name, replica, iteration, e
        )
        if role.all_or_nothing:
            outcome.record(role.name, False)
        else:
            for stmt in role.plan(replica, iteration):
                outcome.record(stmt.category, False)
        return
    async with fresh:
        await _run_iteration(
            fresh, role, replica, iteration, outcome, log_failures=log_failures
        )


async def run_unbounded(
    role: WorkerRole,
    replica: int,
    factory: SessionFactory,
    token: ShutdownToken,
) -> WorkerOutcome:
    """Loop the role's plan until ``token`` reads set.

    The token is checked once per iteration, never mid-statement.
    """
    if role.kind is not RoleKind.UNBOUNDED:
        raise ValueError(f"role {role.name!r} is not unbounded")

    outcome = WorkerOutcome(role=role.name, replica=replica)
    conn = None if role.connection_per_iteration else await factory.connect()
    try:
        while not token.is_set:
            await _iterate(
                factory, conn, role, replica, outcome.executed, outcome,
                log_failures=True,
            )
            outcome.executed += 1
            if role.progress_every and outcome.executed % role.progress_every == 0:
                logger.info(
                    "%s batch : %d, executed %d, succeed %d",
                    role.name, replica, outcome.executed,
                    sum(outcome.successes.values()),
                )
    finally:
        if conn is not None:
            await conn.close()

    logger.info(
        "%s batch : %d stopped, executed %d, succeed %d",
        role.name, replica, outcome.executed, sum(outcome.successes.values()),
    )
    return outcome


async def run_bounded(
    role: WorkerRole,
    replica: int,
    factory: SessionFactory,
) -> WorkerOutcome:
    """Run the role's plan ``role.iterations`` times and count the outcomes."""
    if role.kind is not RoleKind.BOUNDED:
        raise ValueError(f"role {role.name!r} is not bounded")

    outcome = WorkerOutcome(role=role.name, replica=replica)
    iterations = int(role.iterations)
    if iterations == 0:
        return outcome

    step = progress_step(iterations)
    conn = None if role.connection_per_iteration else await factory.connect()
    try:
        for i in range(iterations):
            await _iterate(
                factory, conn, role, replica, i, outcome,
                log_failures=role.verbose_errors,
            )
            outcome.executed += 1
            if (i + 1) % step == 0:
                logger.info(
                    "exec: batch %d, %s, iter %d, progress %.2f%%",
                    replica, role.name, i, (i + 1) * 100.0 / iterations,
                )
    finally:
        if conn is not None:
            await conn.close()
    return outcome
