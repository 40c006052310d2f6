"""
Replace-Into Conflict Scenario

A single writer replaces batches of ``batch_size`` random rows into
``test_order`` (keyed on ``id, insert_time``) while a maintenance worker
continuously compacts, purges and reclusters the same table. Every
``conflict_interval`` batches the writer re-replaces rows of earlier batches
into the table itself, which can lead to partial and total block updates
racing with the maintenance.

Whatever the interleaving, every batch must be all-or-nothing: each ``id1``
group holds exactly ``batch_size`` rows, the correlated column is intact, and
the table can be fully scanned.
"""

from __future__ import annotations

from typing import Sequence

from stressbench.core.verification import (
    DiagnosticQuery,
    FullScan,
    MultipleOf,
    TallyComparison,
    zero_count,
)
from stressbench.models.scenario_config import ReplaceIntoConfig
from stressbench.models.workload import RoleKind, Statement, WorkerRole, looping
from stressbench.scenarios.base import Scenario, load_script

DATABASE = "test_replace_into"
TABLE = "test_order"
SETUP_SCRIPT = "replace_into/setup.sql"

REPLACE = "replace_into"
REPLACE_CONFLICT = "replace_conflict"

MAINTENANCE_STATEMENTS = (
    Statement(f"optimize table {TABLE} compact segment", "compact_segment"),
    Statement(f"optimize table {TABLE} compact", "compact"),
    Statement(f"optimize table {TABLE} purge", "purge"),
    Statement(f"alter table {TABLE} recluster", "recluster"),
)

METRICS_SQL = (
    "select metric, value from system.metrics "
    "where metric like '%replace%' or metric like '%conflict%' order by metric"
)


def replace_batch_sql(batch_id: int, *, batch_size: int, correlation_factor: int) -> str:
    correlated = batch_id * correlation_factor
    return f"""
         replace into {TABLE} on(id, insert_time)
          select
                id,
                {batch_id} as id1,
                {correlated} as id2,
                id3, id4, id5, id6, id7,
                s1, s2, s3, s4, s5, s6, s7, s8, s9, s10, s11, s12, s13,
                d1, d2, d3, d4, d5, d6, d7, d8, d9, d10,
                insert_time,
                insert_time1,
                insert_time2,
                insert_time3,
                i
          from random_source limit {batch_size}
    """


def replace_conflict_sql(batch_ids: Sequence[int]) -> str:
    """Replace rows of earlier batches into the table itself."""
    # dict.fromkeys keeps order and drops duplicates (e.g. batch 0 -> 0, 0, 0)
    ids = list(dict.fromkeys(int(b) for b in batch_ids))
    predicate = " or ".join(f"id1 = {b}" for b in ids)
    return f"replace into {TABLE} on(id, insert_time) (select * from {TABLE} where {predicate})"


def conflicting_batches(batch_id: int) -> list[int]:
    return [batch_id, batch_id // 2, batch_id // 3]


def build(config: ReplaceIntoConfig) -> Scenario:
    batch_size = config.batch_size
    interval = config.conflict_interval

    def plan(replica: int, batch_id: int) -> list[Statement]:
        statements = [
            Statement(
                replace_batch_sql(
                    batch_id,
                    batch_size=batch_size,
                    correlation_factor=config.correlation_factor,
                ),
                REPLACE,
            )
        ]
        if interval and (batch_id + 1) % interval == 0:
            statements.append(
                Statement(replace_conflict_sql(conflicting_batches(batch_id)), REPLACE_CONFLICT)
            )
        return statements

    return Scenario(
        name="replace-into",
        options=config.model_dump(),
        setup=[f"create or replace database {DATABASE}", f"use {DATABASE}", *load_script(SETUP_SCRIPT)],
        session=[f"use {DATABASE}"],
        unbounded=[
            looping(
                "table_maintenance",
                *MAINTENANCE_STATEMENTS,
                connection_per_iteration=True,
            )
        ],
        bounded=[
            WorkerRole(
                name=REPLACE,
                kind=RoleKind.BOUNDED,
                plan=plan,
                iterations=config.iterations,
                connection_per_iteration=True,
                verbose_errors=True,
            )
        ],
        checks=[
            MultipleOf(
                name="row count is a multiple of batch size",
                sql=f"select count() from {TABLE}",
                divisor=batch_size,
            ),
            zero_count(
                f"every id1 group holds {batch_size} rows",
                f"select count() from "
                f"(select count() a, id1 from {TABLE} group by id1) where a != {batch_size}",
            ),
            zero_count(
                f"id2 = id1 * {config.correlation_factor} for every row",
                f"select count() from {TABLE} where id2 != id1 * {config.correlation_factor}",
            ),
            FullScan(name="full table scan", sql=f"select * from {TABLE} ignore_result"),
            TallyComparison(
                name="rows vs successfully replaced batches",
                sql=f"select count() from {TABLE}",
                category=REPLACE,
                per_success=batch_size,
            ),
            TallyComparison(
                name="distinct id2 vs successfully replaced batches",
                sql=f"select count(distinct(id2)) from {TABLE}",
                category=REPLACE,
            ),
        ],
        diagnostics=[
            DiagnosticQuery(title="METRICS", sql=METRICS_SQL),
            DiagnosticQuery(
                title="CLUSTERING INFO",
                sql=f"select * from clustering_information('{DATABASE}', '{TABLE}')",
            ),
        ],
    )
