"""Scenario driver.

Runs any ``Scenario`` through one fixed phase sequence:

    setup -> seed -> spawn unbounded -> staging -> spawn bounded / script
    -> join bounded -> trigger shutdown -> join unbounded -> drain
    -> verification -> diagnostics

Verification never overlaps mutation: it starts only after every worker has
been joined and the drain step has run.
"""

from __future__ import annotations

import logging
from typing import Sequence

from stressbench.core.errors import DrainError, SetupError, StatementError
from stressbench.core.shutdown import ShutdownSignal
from stressbench.core.verification import VerificationEngine, log_verdict
from stressbench.core.worker_pool import WorkerPool
from stressbench.core.workers import ScopedSessionFactory, SessionFactory
from stressbench.models.results import (
    ResultTally,
    RunReport,
    VerificationAssertion,
    VerificationReport,
)
from stressbench.models.workload import RoleKind, WorkerRole
from stressbench.scenarios.base import Scenario

logger = logging.getLogger(__name__)


class ScenarioDriver:
    """Runs scenarios against one store.

    Args:
        factory: Connection factory for the store. Setup runs on its bare
            sessions; everything else uses the scenario's session prologue.
    """

    def __init__(self, factory: ScopedSessionFactory) -> None:
        self.factory = factory

    async def _execute_sequentially(
        self,
        phase: str,
        statements: Sequence[str],
        factory: SessionFactory,
        error_cls: type[Exception],
    ) -> None:
        if not statements:
            return
        logger.info("=====running %s====", phase)
        conn = await factory.connect()
        try:
            for sql in statements:
                sql = sql.strip()
                if not sql:
                    continue
                logger.info("executing sql: %s", sql)
                try:
                    await conn.exec(sql)
                except StatementError as e:
                    raise error_cls(f"{phase} statement failed: {sql!r}: {e}") from e
        finally:
            await conn.close()
        logger.info("====%s done====", phase)

    @staticmethod
    def _log_role_tallies(roles: Sequence[WorkerRole], tally: ResultTally) -> None:
        categories: set[str] = set()
        for role in roles:
            if role.all_or_nothing:
                categories.add(role.name)
            else:
                categories.update(s.category for s in role.plan(0, 0))
        for category in sorted(categories):
            logger.info(
                "success %s: %d (failed %d)",
                category, tally.successes(category), tally.failures(category),
            )

    async def setup(self, scenario: Scenario) -> None:
        """Idempotent setup (drop/recreate); any failure aborts the run."""
        await self._execute_sequentially("setup", scenario.setup, self.factory, SetupError)

    async def run(self, scenario: Scenario) -> RunReport:
        logger.info("###options###: %s", scenario.options)
        await self.setup(scenario)

        sessions = self.factory.with_session(scenario.session)
        await self._execute_sequentially("seed", scenario.seed, sessions, SetupError)

        tally = ResultTally()
        observations: list[VerificationAssertion] = []
        signal = ShutdownSignal()
        pool = WorkerPool(factory=sessions)

        try:
            pool.spawn_all(scenario.unbounded, token=signal.token)
            await self._execute_sequentially(
                "staging", scenario.staging, sessions, SetupError
            )
            pool.spawn_all(scenario.bounded)
            if scenario.script is not None:
                observations = list(await scenario.script(sessions))
            for outcome in await pool.join(RoleKind.BOUNDED):
                tally.fold(outcome)
        except BaseException:
            await pool.abort(signal)
            raise

        logger.info("###options(recall)###: %s", scenario.options)
        logger.info("==========================")
        logger.info(
            "bounded iterations planned %d", scenario.planned_bounded_iterations
        )
        self._log_role_tallies(scenario.bounded, tally)
        logger.info("tally: %s", tally.to_dict())
        logger.info("==========================")

        # Unbounded mutators may still land a few statements between the last
        # bounded join and observing the signal; the drain step absorbs them.
        signal.trigger()
        for outcome in await pool.join(RoleKind.UNBOUNDED):
            tally.fold(outcome)
        self._log_role_tallies(scenario.unbounded, tally)

        await self._execute_sequentially("drain", scenario.drain, sessions, DrainError)

        conn = await sessions.connect()
        try:
            engine = VerificationEngine(conn)
            report = VerificationReport()
            report.extend(observations)
            checked = await engine.verify(scenario.checks, tally)
            report.extend(checked.assertions)
            log_verdict(report)
            diagnostics = await engine.collect_diagnostics(scenario.diagnostics)
        finally:
            await conn.close()

        return RunReport(
            scenario=scenario.name,
            tally=tally,
            verification=report,
            diagnostics=diagnostics,
        )
