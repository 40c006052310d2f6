"""
Tests for the scenario builders: phase contents, roles and verification batteries.
"""

import pytest

from stressbench.core.verification import (
    CrossTargetEquality,
    FullScan,
    MultipleOf,
    ScalarEquals,
    TallyComparison,
    TallyMode,
)
from stressbench.models import (
    AutoVacuumConfig,
    ChangeTrackingConfig,
    ExplicitTxnConfig,
    MultiTableInsertConfig,
    ReplaceIntoConfig,
    ScenarioConfig,
    VacuumConfig,
)
from stressbench.models.workload import RoleKind, statements_of
from stressbench.scenarios import build_scenario
from stressbench.scenarios import change_tracking, multi_table_insert, replace_into


def _role(scenario, name):
    return next(r for r in [*scenario.unbounded, *scenario.bounded] if r.name == name)


def test_every_config_has_a_builder():
    for config in (
        ChangeTrackingConfig(),
        ReplaceIntoConfig(),
        VacuumConfig(),
        AutoVacuumConfig(),
        MultiTableInsertConfig(),
        ExplicitTxnConfig(),
    ):
        scenario = build_scenario(config)
        assert scenario.options == config.model_dump()


def test_unknown_config_type_is_rejected():
    with pytest.raises(ValueError):
        build_scenario(ScenarioConfig())


def test_append_only_change_tracking():
    config = ChangeTrackingConfig(
        append_only_stream=True,
        num_derived_streams=3,
        stream_consumption_concurrency=2,
        times_consumption_per_stream=4,
    )
    scenario = build_scenario(config)

    assert {r.name for r in scenario.unbounded} == {"insertion", "compaction", "deletion"}
    assert scenario.staging[0] == "create stream base_stream on table base append_only = true"
    assert "create table sink_2 like base" in scenario.staging
    assert [r.replicas for r in scenario.bounded] == [2, 2, 2]
    assert scenario.planned_bounded_iterations == 3 * 2 * 4

    even = statements_of(_role(scenario, "stream_0").plan)[0]
    odd = statements_of(_role(scenario, "stream_1").plan)[0]
    assert even == "insert into sink_0 select a, b, c, d from base_stream_0"
    assert "on 1 <> 1" in odd and "merge into sink_1" in odd

    assert scenario.drain[-1] == "insert into sink select a, b, c, d from base_stream"
    assert len(scenario.drain) == 4

    [check] = scenario.checks
    assert isinstance(check, CrossTargetEquality)
    assert check.baseline == "sink"
    assert check.targets == ["sink_0", "sink_1", "sink_2"]


def test_standard_change_tracking_adds_mutators():
    scenario = build_scenario(ChangeTrackingConfig(num_derived_streams=1))

    assert {r.name for r in scenario.unbounded} == {
        "insertion", "compaction", "deletion", "update", "merge", "replace",
    }
    assert "append_only = false" in scenario.staging[0]
    consume = statements_of(_role(scenario, "stream_0").plan)[0]
    assert "change$action" in consume and "change$is_update" in consume
    assert "change$action" in scenario.drain[-1]


def test_clustered_change_tracking_reclusters():
    scenario = build_scenario(ChangeTrackingConfig(clustered_table=True))
    assert "recluster" in {r.name for r in scenario.unbounded}
    assert any("cluster by (a)" in sql for sql in scenario.setup)


def test_change_tracking_seed():
    assert build_scenario(ChangeTrackingConfig()).seed == [change_tracking.insert_sql(10)]
    assert build_scenario(ChangeTrackingConfig(seed_rows=0)).seed == []


def test_replace_into_conflict_cadence():
    scenario = build_scenario(ReplaceIntoConfig(iterations=14, batch_size=50))
    role = _role(scenario, "replace_into")

    assert role.connection_per_iteration
    assert [len(role.plan(0, b)) for b in range(14)].count(2) == 2
    statements = role.plan(0, 13)
    assert statements[1].category == "replace_conflict"
    assert statements[1].sql.endswith("where id1 = 13 or id1 = 6 or id1 = 4)")
    assert "limit 50" in statements[0].sql
    assert "13 as id1" in statements[0].sql and "91 as id2" in statements[0].sql


def test_replace_into_conflict_disabled():
    role = _role(build_scenario(ReplaceIntoConfig(conflict_interval=0)), "replace_into")
    assert all(len(role.plan(0, b)) == 1 for b in range(50))


def test_conflict_sql_deduplicates_batches():
    assert replace_into.replace_conflict_sql([0, 0, 0]).endswith("where id1 = 0)")


def test_replace_into_battery():
    scenario = build_scenario(ReplaceIntoConfig(batch_size=1000))
    kinds = [type(c) for c in scenario.checks]

    assert kinds.count(MultipleOf) == 1
    assert kinds.count(ScalarEquals) == 2
    assert kinds.count(FullScan) == 1
    tally_checks = [c for c in scenario.checks if isinstance(c, TallyComparison)]
    assert all(c.mode is TallyMode.INFORMATIONAL for c in tally_checks)
    assert [d.title for d in scenario.diagnostics] == ["METRICS", "CLUSTERING INFO"]


def test_vacuum_scenario():
    scenario = build_scenario(
        VacuumConfig(insertion_concurrency=2, insertion_iteration=3, vacuum_concurrency=4)
    )

    vacuum = _role(scenario, "vacuum")
    assert vacuum.kind is RoleKind.UNBOUNDED and vacuum.replicas == 4
    assert vacuum.progress_every == 100
    insertion = _role(scenario, "insertion")
    assert insertion.plan(3, 0)[0].sql == "insert into vacuum2.test values(3, 6)"
    assert scenario.session == ["set data_retention_time_in_days = 0"]
    modes = [c.mode for c in scenario.checks if isinstance(c, TallyComparison)]
    assert modes == [TallyMode.INFORMATIONAL, TallyMode.AT_MOST]


def test_auto_vacuum_scenario():
    scenario = build_scenario(AutoVacuumConfig(insert_batch_size=25, snapshots_to_keep=5))

    assert scenario.unbounded == ()
    assert scenario.session[0] == "set enable_auto_vacuum=1"
    assert any("DATA_RETENTION_NUM_SNAPSHOTS_TO_KEEP='5'" in sql for sql in scenario.setup)
    multiple = next(c for c in scenario.checks if isinstance(c, MultipleOf))
    assert multiple.divisor == 25


def test_multi_table_insert_scenario():
    config = MultiTableInsertConfig(runs=3, table_count=4, maintained_tables=3, rows_per_run=40)
    scenario = build_scenario(config)

    assert [r.name for r in scenario.unbounded] == [
        "maintenance_t0", "maintenance_t1", "maintenance_t2",
    ]
    writer = _role(scenario, "multi_table_insert")
    assert writer.all_or_nothing and writer.iterations == 3
    sql = statements_of(writer.plan)[0]
    assert sql == multi_table_insert.multi_insert_sql(4, 40)
    assert "when c % 4 = 3 then into t3" in sql
    assert sql.endswith("from numbers(40)")
    equality = next(c for c in scenario.checks if isinstance(c, CrossTargetEquality))
    assert equality.value_column is None
    assert equality.targets == ["t1", "t2", "t3"]


def test_explicit_txn_is_scripted():
    scenario = build_scenario(ExplicitTxnConfig())
    assert scenario.script is not None
    assert scenario.bounded == () and scenario.unbounded == ()
    assert scenario.session == ["use test_txn"]
