"""
Explicit Transaction Matrix

A scripted sequence over two long-lived sessions (``c1``, ``c2``) plus a few
auxiliary ones. Each step records what a session must see at that point, or
whether a commit must succeed or fail:

- concurrent inserts into the same table both commit
- a failing statement inside a transaction discards the transaction's writes
- a stream read inside a transaction is stable while peers commit
- a transaction consuming a stream is retried and commits when the peer's
  commit does not conflict, and fails when the peer modified the same
  segments or consumed the same stream
- a rolled back consumption leaves the stream where it was

Statements the matrix expects to succeed are not wrapped: if one fails the
matrix cannot continue and the error propagates.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence

from stressbench.connectors.base import Connection
from stressbench.core.errors import StatementError
from stressbench.models.results import VerificationAssertion
from stressbench.models.scenario_config import ExplicitTxnConfig
from stressbench.scenarios.base import Scenario

logger = logging.getLogger(__name__)

SELECT_T = "SELECT * FROM t ORDER BY c"
SELECT_T1 = "SELECT * FROM t1 ORDER BY c"


def _coerce(value: Any) -> Any:
    # drivers may hand back integers as str or Decimal
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def _normalize(rows: Sequence[Sequence[Any]]) -> list[tuple]:
    return [tuple(_coerce(v) for v in row) for row in rows]


def rows_of(*values: int) -> list[tuple[int]]:
    return [(v,) for v in values]


class TxnRecorder:
    """Collects one assertion per scripted expectation."""

    def __init__(self):
        self.assertions: list[VerificationAssertion] = []

    def _record(self, assertion: VerificationAssertion) -> None:
        self.assertions.append(assertion)
        if assertion.passed:
            logger.info(assertion.describe())
        else:
            logger.error(assertion.describe())

    async def rows(
        self, label: str, conn: Connection, sql: str, expected: list[tuple]
    ) -> None:
        observed = _normalize(await conn.query_all(sql))
        self._record(
            VerificationAssertion(
                name=label,
                passed=observed == expected,
                expected=expected,
                observed=observed,
                message="" if observed == expected else f"query: {sql}",
            )
        )

    async def commit_ok(self, label: str, conn: Connection) -> None:
        try:
            await conn.commit()
        except StatementError as e:
            self._record(
                VerificationAssertion(
                    name=label,
                    passed=False,
                    expected="commit succeeds",
                    observed="commit failed",
                    message=str(e),
                )
            )
            return
        self._record(
            VerificationAssertion(
                name=label, passed=True, expected="commit succeeds", observed="committed"
            )
        )

    async def commit_fails(self, label: str, conn: Connection) -> None:
        try:
            await conn.commit()
        except StatementError as e:
            self._record(
                VerificationAssertion(
                    name=label,
                    passed=True,
                    expected="commit fails",
                    observed="commit failed",
                    message=str(e),
                )
            )
            return
        self._record(
            VerificationAssertion(
                name=label, passed=False, expected="commit fails", observed="committed"
            )
        )

    async def statement_fails(self, label: str, conn: Connection, sql: str) -> None:
        try:
            await conn.exec(sql)
        except StatementError:
            self._record(
                VerificationAssertion(
                    name=label, passed=True, expected="statement fails", observed="error"
                )
            )
            return
        self._record(
            VerificationAssertion(
                name=label,
                passed=False,
                expected="statement fails",
                observed="succeeded",
                message=f"statement: {sql}",
            )
        )


CaseFn = Callable[[TxnRecorder, Connection, Connection, Any], Awaitable[None]]


async def concurrent_inserts_commit(rec, c1, c2, sessions):
    await c1.exec("CREATE OR REPLACE TABLE t(c int)")

    await c1.begin()
    await c1.exec("INSERT INTO t VALUES(1)")
    await rec.rows("c1 sees own insert", c1, SELECT_T, rows_of(1))
    await rec.rows("c2 does not see c1's uncommitted insert", c2, SELECT_T, [])

    await c2.begin()
    await c2.exec("INSERT INTO t VALUES(2)")
    await rec.rows("c1 isolated from c2", c1, SELECT_T, rows_of(1))
    await rec.rows("c2 isolated from c1", c2, SELECT_T, rows_of(2))

    await c2.commit()
    await rec.rows("c1 does not see c2's commit", c1, SELECT_T, rows_of(1))
    await rec.rows("c2 sees own commit", c2, SELECT_T, rows_of(2))

    await rec.commit_ok("c1 commit resolves against c2's append", c1)
    await rec.rows("c1 sees both inserts", c1, SELECT_T, rows_of(1, 2))
    await rec.rows("c2 sees both inserts", c2, SELECT_T, rows_of(1, 2))


async def failed_statement_discards_writes(rec, c1, c2, sessions):
    await c1.begin()
    await c1.exec("INSERT INTO t VALUES(1)")
    await rec.statement_fails("invalid statement inside txn", c1, "qwerty")
    await c1.commit()
    await rec.rows("c1: txn with invalid statement rolled back", c1, SELECT_T, rows_of(1, 2))
    await rec.rows("c2: txn with invalid statement rolled back", c2, SELECT_T, rows_of(1, 2))


async def missing_table_discards_writes(rec, c1, c2, sessions):
    await c1.exec("drop table if exists t1")
    await c1.begin()
    await c1.exec("INSERT INTO t VALUES(1)")
    await rec.statement_fails("read of missing table inside txn", c1, "select * from t1")
    await c1.commit()
    await rec.rows("c1: txn reading missing table rolled back", c1, SELECT_T, rows_of(1, 2))
    await rec.rows("c2: txn reading missing table rolled back", c2, SELECT_T, rows_of(1, 2))


async def stream_snapshot_is_stable(rec, c1, c2, sessions):
    await c1.exec("create or replace table base(c int)")
    await c1.exec("CREATE or replace STREAM s ON TABLE base APPEND_ONLY=true")

    await c1.begin()
    await c1.exec("INSERT INTO base VALUES(1)")
    await rec.rows("stream read #1 inside txn", c1, "SELECT c FROM s", rows_of(1))

    await c2.begin()
    await c2.exec("INSERT INTO base VALUES(2)")
    await c2.commit()
    await rec.rows("stream read #2 ignores peer commit", c1, "SELECT c FROM s", rows_of(1))

    await c1.exec("Insert into base values(3)")
    await rec.rows("stream read #3 is stable after own write", c1, "SELECT c FROM s", rows_of(1))
    await rec.commit_ok("c1 commit after stable stream reads", c1)


async def non_conflicting_tables_commit(rec, c1, c2, sessions):
    await rec.rows("c1: t unchanged", c1, SELECT_T, rows_of(1, 2))
    await rec.rows("c2: t unchanged", c2, SELECT_T, rows_of(1, 2))
    await c1.exec("CREATE OR REPLACE TABLE t1(c int)")

    await c1.begin()
    await c1.exec("INSERT INTO t VALUES(1)")
    await rec.rows("c1 sees own insert into t", c1, SELECT_T, rows_of(1, 1, 2))
    await rec.rows("c2 does not see c1's insert into t", c2, SELECT_T, rows_of(1, 2))

    await c2.begin()
    await c2.exec("INSERT INTO t1 VALUES(3)")
    await rec.rows("c1 does not see c2's insert into t1", c1, SELECT_T1, [])
    await rec.rows("c2 sees own insert into t1", c2, SELECT_T1, rows_of(3))

    await c2.commit()
    await c1.commit()
    await rec.rows("c1: t after both commits", c1, SELECT_T, rows_of(1, 1, 2))
    await rec.rows("c2: t after both commits", c2, SELECT_T, rows_of(1, 1, 2))
    await rec.rows("c1: t1 after both commits", c1, SELECT_T1, rows_of(3))
    await rec.rows("c2: t1 after both commits", c2, SELECT_T1, rows_of(3))


async def _fresh_stream(c1: Connection) -> None:
    await c1.exec("create or replace table base(c int)")
    await c1.exec("create or replace table target(c int)")
    await c1.exec("CREATE or replace STREAM s ON TABLE base APPEND_ONLY=true")


async def consume_stream_retry_succeeds(rec, c1, c2, sessions):
    await _fresh_stream(c1)

    await c1.begin()
    await c1.exec("INSERT INTO base VALUES(1)")
    await rec.rows("consumer sees own insert in stream", c1, "SELECT c FROM s", rows_of(1))

    await c2.begin()
    await c2.exec("INSERT INTO base VALUES(2)")
    await c2.exec("INSERT INTO target VALUES(3)")
    await c2.commit()
    await rec.rows("consumer stream view unchanged by peer", c1, "SELECT c FROM s", rows_of(1))

    await c1.exec("Insert into base values(3)")
    await rec.rows("consumer stream view stable after own write", c1, "SELECT c FROM s", rows_of(1))
    await c1.exec("Insert into target select c from s")
    await rec.commit_ok("consuming txn commits after retry", c1)
    await rec.rows("stream advanced past consumed rows", c1, "SELECT c FROM s order by c", rows_of(2, 3))
    await rec.rows("target holds consumed and peer rows", c2, "SELECT c FROM target order by c", rows_of(1, 3))


async def consume_stream_conflicting_segment_fails(rec, c1, c2, sessions):
    await _fresh_stream(c1)
    await c1.exec("INSERT INTO base VALUES(1)")

    await c1.begin()
    await rec.rows("consumer sees pre-existing row", c1, "SELECT c FROM s", rows_of(1))
    await c1.exec("update base set c = 4 where c = 1")

    await c2.begin()
    await c2.exec("INSERT INTO base VALUES(2)")
    await c2.exec("update base set c = 100 where c = 1")
    await c2.commit()
    await rec.rows("consumer stream view unchanged by peer update", c1, "SELECT c FROM s", rows_of(1))

    await c1.exec("Insert into target select c from s")
    await rec.commit_fails("consuming txn fails on conflicting segment update", c1)
    await rec.rows("stream reflects only the peer's changes", c1, "SELECT c FROM s order by c", rows_of(2, 100))
    await rec.rows("target untouched by failed txn", c2, "SELECT count(*) FROM target", rows_of(0))


async def consume_same_stream_fails(rec, c1, c2, sessions):
    await _fresh_stream(c1)
    await c1.exec("INSERT INTO base VALUES(1)")

    await c1.begin()
    await rec.rows("consumer sees pre-existing row", c1, "SELECT c FROM s", rows_of(1))

    await c2.begin()
    await c2.exec("INSERT INTO base VALUES(2)")
    await c2.exec("Insert into target select c from s")
    await c2.commit()
    await rec.rows("peer consumption does not change consumer view", c1, "SELECT c FROM s", rows_of(1))

    await c1.exec("Insert into target select c from s")
    await rec.commit_fails("second consumer of the same stream fails", c1)
    await rec.rows("stream fully consumed by peer", c1, "SELECT count(*) FROM s", rows_of(0))
    await rec.rows("target holds peer's consumption only", c2, "SELECT * FROM target order by c", rows_of(1, 2))


async def consume_with_concurrent_base_commit(rec, c1, c2, sessions):
    await c1.exec("create or replace table base1_new(c int)")
    await c1.exec("create or replace table base2_new(c int)")
    await c1.exec("create or replace table target1_new(c int)")
    await c1.exec("CREATE or replace STREAM s1_new ON TABLE base1_new APPEND_ONLY=true")
    await c1.exec("INSERT INTO base1_new VALUES(10)")

    await c1.begin()
    await rec.rows("consumer sees initial row", c1, "SELECT c FROM s1_new", rows_of(10))
    await c1.exec("INSERT INTO target1_new SELECT c FROM s1_new")

    async with await sessions.connect() as concurrent:
        await concurrent.begin()
        await concurrent.exec("INSERT INTO base1_new VALUES(20)")
        await concurrent.commit()

    await c1.exec("INSERT INTO base2_new VALUES(30)")
    await rec.commit_ok("consumer commits despite peer write to stream's base", c1)

    await rec.rows("stream shows only the peer's row", c1, "SELECT c FROM s1_new", rows_of(20))
    await rec.rows("target holds consumed row", c1, "SELECT * FROM target1_new ORDER BY c", rows_of(10))
    await rec.rows("base holds both rows", c1, "SELECT * FROM base1_new ORDER BY c", rows_of(10, 20))
    await rec.rows("other table holds consumer's write", c1, "SELECT * FROM base2_new ORDER BY c", rows_of(30))


async def consume_with_own_writes_retry(rec, c1, c2, sessions):
    await c1.exec("create or replace table base_s7(c int)")
    await c1.exec("create or replace table target_s7(c int)")
    await c1.exec("CREATE or replace STREAM s_s7 ON TABLE base_s7 APPEND_ONLY=true")
    await c1.exec("INSERT INTO base_s7 VALUES(1)")

    await c1.begin()
    await c1.exec("INSERT INTO base_s7 VALUES(10)")
    await rec.rows("stream includes own write", c1, "SELECT c FROM s_s7 ORDER BY c", rows_of(1, 10))

    async with await sessions.connect() as aux:
        await aux.begin()
        await aux.exec("INSERT INTO base_s7 VALUES(20)")
        await aux.commit()

    await c1.exec("INSERT INTO base_s7 VALUES(30)")
    await rec.rows("stream view stable within txn", c1, "SELECT c FROM s_s7 ORDER BY c", rows_of(1, 10))
    await c1.exec("INSERT INTO target_s7 SELECT c FROM s_s7 WHERE c > 5")
    await rec.commit_ok("consumer with own writes commits after retry", c1)

    await rec.rows("base holds every write", c1, "SELECT * FROM base_s7 ORDER BY c", rows_of(1, 10, 20, 30))
    await rec.rows("target holds consumed row", c1, "SELECT * FROM target_s7 ORDER BY c", rows_of(10))
    await rec.rows("stream holds unconsumed rows", c1, "SELECT c FROM s_s7 ORDER BY c", rows_of(20, 30))


async def rolled_back_consumption_keeps_position(rec, c1, c2, sessions):
    await c1.exec("create or replace table base_rb(c int)")
    await c1.exec("create or replace table target_rb(c int)")
    await c1.exec("CREATE or replace STREAM s_rb ON TABLE base_rb APPEND_ONLY=true")
    await c1.exec("INSERT INTO base_rb VALUES(100)")
    await c1.exec("INSERT INTO base_rb VALUES(200)")
    await rec.rows("stream before consumption", c1, "SELECT c FROM s_rb ORDER BY c", rows_of(100, 200))

    await c1.begin()
    await c1.exec("INSERT INTO target_rb SELECT c FROM s_rb WHERE c = 100")
    await rec.rows("consumer sees own consumption", c1, "SELECT * FROM target_rb", rows_of(100))
    await rec.statement_fails(
        "error inside consuming txn", c1, "SELECT * FROM non_existent_table_to_cause_error"
    )
    await c1.commit()

    await rec.rows("stream not advanced by rolled back txn", c1, "SELECT c FROM s_rb ORDER BY c", rows_of(100, 200))
    await rec.rows("target empty after rollback", c1, "SELECT * FROM target_rb", [])
    await rec.rows("base unchanged after rollback", c1, "SELECT * FROM base_rb ORDER BY c", rows_of(100, 200))

    async with await sessions.connect() as c3:
        await c3.begin()
        await c3.exec("INSERT INTO target_rb SELECT c FROM s_rb WHERE c = 100")
        await rec.commit_ok("next consumer commits", c3)
        await rec.rows("next consumer's row landed", c3, "SELECT * FROM target_rb", rows_of(100))
        await rec.rows("stream consumed by next consumer", c3, "SELECT count(*) FROM s_rb", rows_of(0))


CASES: list[CaseFn] = [
    concurrent_inserts_commit,
    failed_statement_discards_writes,
    missing_table_discards_writes,
    stream_snapshot_is_stable,
    non_conflicting_tables_commit,
    consume_stream_retry_succeeds,
    consume_stream_conflicting_segment_fails,
    consume_same_stream_fails,
    consume_with_concurrent_base_commit,
    consume_with_own_writes_retry,
    rolled_back_consumption_keeps_position,
]


async def run_matrix(sessions, cases: Sequence[CaseFn] = CASES) -> list[VerificationAssertion]:
    """Run every case in order on two shared sessions."""
    rec = TxnRecorder()
    async with await sessions.connect() as c1, await sessions.connect() as c2:
        for case in cases:
            logger.info("=====txn case: %s=====", case.__name__)
            await case(rec, c1, c2, sessions)
    logger.info("txn matrix: %d assertion(s) recorded", len(rec.assertions))
    return rec.assertions


def build(config: ExplicitTxnConfig) -> Scenario:
    return Scenario(
        name="explicit-txn",
        options=config.model_dump(),
        setup=[f"create or replace database {config.database}"],
        session=[f"use {config.database}"],
        script=run_matrix,
    )
