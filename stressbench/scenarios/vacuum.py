"""
Vacuum Under Load Scenario

Concurrent single-row inserters (a fresh session per insert) race against
workers repeatedly calling ``system$fuse_vacuum2`` on the same table with
zero data retention. Vacuum must never remove data a committed snapshot
still references: the table stays fully readable, every row keeps its
``b = a * 2`` shape, and the row count never exceeds the inserts the client
attempted.
"""

from __future__ import annotations

from stressbench.config import settings
from stressbench.core.verification import (
    DiagnosticQuery,
    FullScan,
    TallyComparison,
    TallyMode,
    zero_count,
)
from stressbench.models.scenario_config import VacuumConfig
from stressbench.models.workload import RoleKind, Statement, WorkerRole, looping
from stressbench.scenarios.base import Scenario, load_script

TABLE = "vacuum2.test"
SETUP_SCRIPT = "vacuum/setup.sql"

INSERT = "insert"
VACUUM_SQL = "call system$fuse_vacuum2('vacuum2', 'test')"

METRICS_SQL = "select metric, value from system.metrics order by metric"


def insert_plan(replica: int, iteration: int) -> list[Statement]:
    return [Statement(f"insert into {TABLE} values({replica}, {replica * 2})", INSERT)]


def build(config: VacuumConfig) -> Scenario:
    return Scenario(
        name="vacuum",
        options=config.model_dump(),
        setup=load_script(SETUP_SCRIPT),
        session=["set data_retention_time_in_days = 0"],
        unbounded=[
            looping(
                "vacuum",
                Statement(VACUUM_SQL, "vacuum"),
                replicas=config.vacuum_concurrency,
                progress_every=settings.MAINTENANCE_PROGRESS_EVERY,
                connection_per_iteration=True,
            )
        ],
        bounded=[
            WorkerRole(
                name="insertion",
                kind=RoleKind.BOUNDED,
                plan=insert_plan,
                iterations=config.insertion_iteration,
                replicas=config.insertion_concurrency,
                connection_per_iteration=True,
                verbose_errors=True,
            )
        ],
        checks=[
            FullScan(name="full table scan", sql=f"select * from {TABLE} ignore_result"),
            zero_count("b = a * 2 for every row", f"select count() from {TABLE} where b != a * 2"),
            TallyComparison(
                name="rows vs successful inserts",
                sql=f"select count() from {TABLE}",
                category=INSERT,
            ),
            TallyComparison(
                name="rows do not exceed attempted inserts",
                sql=f"select count() from {TABLE}",
                category=INSERT,
                mode=TallyMode.AT_MOST,
            ),
        ],
        diagnostics=[DiagnosticQuery(title="METRICS", sql=METRICS_SQL)],
    )
