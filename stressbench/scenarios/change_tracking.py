"""
Change Tracking Scenario

Streams on a table that is concurrently inserted into, deleted from, updated,
merged into, replaced into, compacted and (optionally) reclustered.

A baseline stream ``base_stream`` is created while mutation is already under
way, and ``num_derived_streams`` streams are created at the baseline's
position. Each derived stream is consumed concurrently into its own sink; the
baseline is only consumed in the drain step. Once mutation stops and every
stream has been drained, every derived sink must equal the baseline sink.
The absolute row count is not checked: it depends on the interleaving.
"""

from __future__ import annotations

from stressbench.core.verification import CrossTargetEquality
from stressbench.models.scenario_config import ChangeTrackingConfig
from stressbench.models.workload import RoleKind, Statement, WorkerRole, fixed_plan, looping
from stressbench.scenarios.base import Scenario, load_script

DATABASE = "test_stream"

SETUP_SCRIPT = "change_tracking/setup.sql"
SETUP_SCRIPT_CLUSTERED = "change_tracking/setup_clustered.sql"

DELETE_SQL = "delete from base where a < -15000 and d < '1970-01-01 00:00:00'"
UPDATE_SQL = "update base set d = now() where d > '2099-01-01 00:00:00' and a > 15000"
REPLACE_SQL = "replace into base on(a) select a, b, uuid() as c, d from rand limit 2"
MERGE_SQL = (
    "merge into base using (select a, b, uuid() as c, d from rand limit 10) as s "
    "on base.a = s.a "
    "when matched and s.d > '2099-01-01 00:00:00' then update set base.b = s.b and base.d = now() "
    "when matched and s.d < '1970-01-01 00:00:00' then delete "
    "when not matched then insert *"
)
COMPACT_SQL = "optimize table base compact"
RECLUSTER_SQL = "alter table base recluster"

CONSUMPTION = "stream_consumption"


def insert_sql(rows: int) -> str:
    return f"insert into base select a, b, uuid() as c, d from rand limit {int(rows)}"


def merge_change_set_sql(stream: str, sink: str) -> str:
    """Apply a standard stream's change set to ``sink``, keyed by column ``c``."""
    return (
        f"merge into {sink} as t using "
        f"(select a, b, c, d, change$action, change$is_update from {stream}) as s "
        "on t.c = s.c "
        "when matched and s.change$action = 'DELETE' and s.change$is_update = false then delete "
        "when matched and s.change$action = 'INSERT' and s.change$is_update = true then update * "
        "when not matched and s.change$action = 'INSERT' then insert values(s.a, s.b, s.c, s.d)"
    )


def append_insert_sql(stream: str, sink: str) -> str:
    return f"insert into {sink} select a, b, c, d from {stream}"


def append_merge_sql(stream: str, sink: str) -> str:
    # never matches, so every change is inserted; exercises the merge path
    return (
        f"merge into {sink} using (select a, b, c, d from {stream}) as s on 1 <> 1 "
        "when matched then update * when not matched then insert *"
    )


def consume_sql(stream_id: int, *, append_only: bool) -> str:
    """Concurrent-phase consumption statement for derived stream ``stream_id``.

    Append-only streams alternate between insert-select (even ids) and an
    always-unmatched merge (odd ids); standard streams use the change-set merge.
    """
    stream, sink = f"base_stream_{stream_id}", f"sink_{stream_id}"
    if not append_only:
        return merge_change_set_sql(stream, sink)
    if stream_id % 2 == 0:
        return append_insert_sql(stream, sink)
    return append_merge_sql(stream, sink)


def drain_sql(stream: str, sink: str, *, append_only: bool) -> str:
    if append_only:
        return append_insert_sql(stream, sink)
    return merge_change_set_sql(stream, sink)


def build(config: ChangeTrackingConfig) -> Scenario:
    append_only = config.append_only_stream
    flag = str(bool(append_only)).lower()
    setup_file = SETUP_SCRIPT_CLUSTERED if config.clustered_table else SETUP_SCRIPT

    unbounded = [
        looping("insertion", Statement(insert_sql(config.insert_rows_per_statement), "insertion")),
        looping("compaction", Statement(COMPACT_SQL, "compaction")),
        looping("deletion", Statement(DELETE_SQL, "deletion")),
    ]
    if not append_only:
        unbounded += [
            looping("update", Statement(UPDATE_SQL, "update")),
            looping("merge", Statement(MERGE_SQL, "merge")),
            looping("replace", Statement(REPLACE_SQL, "replace")),
        ]
    if config.clustered_table:
        unbounded.append(looping("recluster", Statement(RECLUSTER_SQL, "recluster")))

    # Streams are created on a table that is already being mutated; nothing
    # downstream assumes the snapshot they start from.
    staging = [f"create stream base_stream on table base append_only = {flag}"]
    for idx in range(config.num_derived_streams):
        staging.append(
            f"create stream base_stream_{idx} on table base "
            f"at (STREAM => base_stream) append_only = {flag}"
        )
        staging.append(f"create table sink_{idx} like base")

    bounded = [
        WorkerRole(
            name=f"stream_{idx}",
            kind=RoleKind.BOUNDED,
            plan=fixed_plan(Statement(consume_sql(idx, append_only=append_only), CONSUMPTION)),
            iterations=config.times_consumption_per_stream,
            replicas=config.stream_consumption_concurrency,
            verbose_errors=config.show_stream_consumption_errors,
        )
        for idx in range(config.num_derived_streams)
    ]

    drain = [
        drain_sql(f"base_stream_{idx}", f"sink_{idx}", append_only=append_only)
        for idx in range(config.num_derived_streams)
    ]
    drain.append(drain_sql("base_stream", "sink", append_only=append_only))

    return Scenario(
        name="change-tracking",
        options=config.model_dump(),
        setup=[f"create or replace database {DATABASE}", f"use {DATABASE}", *load_script(setup_file)],
        session=[f"use {DATABASE}"],
        seed=[insert_sql(config.seed_rows)] if config.seed_rows else [],
        unbounded=unbounded,
        staging=staging,
        bounded=bounded,
        drain=drain,
        checks=[
            CrossTargetEquality(
                baseline="sink",
                targets=[f"sink_{idx}" for idx in range(config.num_derived_streams)],
                value_column="b",
                name="derived sinks match baseline sink",
            )
        ],
    )
