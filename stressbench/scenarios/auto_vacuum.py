"""
Auto-Vacuum Scenario

Concurrent inserters write into a table that keeps only a handful of
snapshots, with auto vacuum enabled on every session, so old snapshots are
purged while new ones are being committed.
"""

from __future__ import annotations

from stressbench.core.verification import FullScan, MultipleOf, TallyComparison, TallyMode
from stressbench.models.scenario_config import AutoVacuumConfig
from stressbench.models.workload import RoleKind, Statement, WorkerRole, fixed_plan
from stressbench.scenarios.base import Scenario

DATABASE = "auto_vacuum"
INSERT = "insert"


def create_table_sql(snapshots_to_keep: int) -> str:
    return f"""CREATE OR REPLACE TABLE test (
                id DECIMAL(38, 0) NOT NULL,
                a VARIANT NULL,
                b VARCHAR NULL,
                c TIMESTAMP NULL DEFAULT CAST(now() AS Timestamp NULL),
                d TIMESTAMP NULL,
                e DECIMAL(38, 0) NULL DEFAULT 0,
                f VARCHAR NULL,
                g VARCHAR NULL,
                h VARCHAR NULL
            ) CLUSTER BY linear(id)
              BLOCK_SIZE_THRESHOLD='419430400'
              CLUSTER_TYPE='linear'
              COMPRESSION='zstd'
              DATA_RETENTION_NUM_SNAPSHOTS_TO_KEEP='{int(snapshots_to_keep)}'"""


def build(config: AutoVacuumConfig) -> Scenario:
    batch = config.insert_batch_size
    return Scenario(
        name="auto-vacuum",
        options=config.model_dump(),
        setup=[
            f"create or replace database {DATABASE}",
            f"use {DATABASE}",
            create_table_sql(config.snapshots_to_keep),
            "CREATE OR REPLACE TABLE r LIKE test ENGINE = random",
        ],
        session=["set enable_auto_vacuum=1", f"use {DATABASE}"],
        bounded=[
            WorkerRole(
                name="insertion",
                kind=RoleKind.BOUNDED,
                plan=fixed_plan(Statement(f"INSERT INTO test SELECT * FROM r LIMIT {batch}", INSERT)),
                iterations=config.inserts_per_iteration,
                replicas=config.concurrency,
                verbose_errors=True,
            )
        ],
        checks=[
            FullScan(name="table health", sql="SELECT * FROM test ignore_result"),
            MultipleOf(
                name="row count is a multiple of insert batch size",
                sql="SELECT count() FROM test",
                divisor=batch,
            ),
            TallyComparison(
                name="rows vs successful inserts",
                sql="SELECT count() FROM test",
                category=INSERT,
                per_success=batch,
            ),
            TallyComparison(
                name="rows do not exceed attempted inserts",
                sql="SELECT count() FROM test",
                category=INSERT,
                per_success=batch,
                mode=TallyMode.AT_MOST,
            ),
        ],
    )
