"""
Multi-Table Insert Scenario

A single writer repeatedly routes ``numbers(rows_per_run)`` into tables
``t0..tN-1`` by ``c % N`` with one ``INSERT FIRST`` statement, while
maintenance workers compact, purge and recluster most of those tables.
An execution lands in every table or in none, so each table ends up with
only its own residue class and the same number of rows.
"""

from __future__ import annotations

from stressbench.core.verification import (
    CrossTargetEquality,
    MultipleOf,
    TallyComparison,
    zero_count,
)
from stressbench.models.scenario_config import MultiTableInsertConfig
from stressbench.models.workload import RoleKind, Statement, WorkerRole, fixed_plan, looping
from stressbench.scenarios.base import Scenario

DATABASE = "test_mti"
MULTI_INSERT = "multi_table_insert"


def table_name(idx: int) -> str:
    return f"t{idx}"


def multi_insert_sql(table_count: int, rows: int) -> str:
    branches = " ".join(
        f"when c % {table_count} = {i} then into {table_name(i)}" for i in range(table_count)
    )
    return f"insert first {branches} select number as c from numbers({int(rows)})"


def maintenance_statements(table: str) -> list[Statement]:
    return [
        Statement(f"optimize table {table} compact segment", "compact_segment"),
        Statement(f"optimize table {table} compact", "compact"),
        Statement(f"optimize table {table} purge", "purge"),
        Statement(f"alter table {table} recluster", "recluster"),
    ]


def build(config: MultiTableInsertConfig) -> Scenario:
    n = config.table_count
    tables = [table_name(i) for i in range(n)]

    checks = []
    for i, table in enumerate(tables):
        checks.append(
            zero_count(
                f"{table} holds only c % {n} = {i}",
                f"select count(*) from {table} where c % {n} <> {i}",
            )
        )
        if config.rows_per_table:
            checks.append(
                MultipleOf(
                    name=f"{table} row count is a multiple of {config.rows_per_table}",
                    sql=f"select count(*) from {table}",
                    divisor=config.rows_per_table,
                )
            )
        checks.append(
            TallyComparison(
                name=f"{table} rows vs successful runs",
                sql=f"select count(*) from {table}",
                category=MULTI_INSERT,
                per_success=config.rows_per_table,
            )
        )
    if n > 1:
        checks.append(
            CrossTargetEquality(
                baseline=tables[0],
                targets=tables[1:],
                value_column=None,
                name="every routed table has the same row count",
            )
        )

    return Scenario(
        name="multi-table-insert",
        options=config.model_dump(),
        setup=[
            f"create or replace database {DATABASE}",
            f"use {DATABASE}",
            *(f"create or replace table {t}(c int) cluster by(c)" for t in tables),
        ],
        session=[f"use {DATABASE}"],
        unbounded=[
            looping(f"maintenance_{t}", *maintenance_statements(t))
            for t in tables[: config.maintained_tables]
        ],
        bounded=[
            WorkerRole(
                name=MULTI_INSERT,
                kind=RoleKind.BOUNDED,
                plan=fixed_plan(Statement(multi_insert_sql(n, config.rows_per_run), MULTI_INSERT)),
                iterations=config.runs,
                connection_per_iteration=True,
                all_or_nothing=True,
                verbose_errors=True,
            )
        ],
        checks=checks,
    )
