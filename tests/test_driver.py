import asyncio

import pytest

from stressbench.core.driver import ScenarioDriver
from stressbench.core.errors import DrainError, SetupError
from stressbench.core.verification import zero_count
from stressbench.models.results import VerificationAssertion
from stressbench.models.workload import RoleKind, Statement, WorkerRole, fixed_plan, looping
from stressbench.scenarios.base import Scenario

pytestmark = pytest.mark.asyncio


def _scenario(**overrides) -> Scenario:
    fields = dict(
        name="fake",
        setup=["create or replace database d"],
        session=["use d"],
        seed=["insert seed rows"],
        unbounded=[looping("compaction", Statement("optimize table base compact", "compaction"))],
        staging=["create stream s"],
        bounded=[
            WorkerRole(
                name="consumer",
                kind=RoleKind.BOUNDED,
                plan=fixed_plan(Statement("consume stream s", "consumption")),
                iterations=5,
                replicas=2,
            )
        ],
        drain=["drain stream s"],
        checks=[zero_count("no bad rows", "select count() from sink where bad")],
    )
    fields.update(overrides)
    return Scenario(**fields)


def _first(store, pattern):
    return next(i for i, sql in enumerate(store.executed) if pattern in sql)


def _last(store, pattern):
    return max(i for i, sql in enumerate(store.executed) if pattern in sql)


async def test_phase_order(factory, store):
    store.respond("where bad", [(0,)])

    report = await ScenarioDriver(factory).run(_scenario())

    assert report.passed
    assert _first(store, "create or replace database") < _first(store, "insert seed rows")
    assert _first(store, "insert seed rows") < _first(store, "create stream s")
    assert _first(store, "create stream s") < _first(store, "consume stream s")
    # every mutation happened before the drain
    drain = _first(store, "drain stream s")
    assert _last(store, "consume stream s") < drain
    assert _last(store, "optimize table base compact") < drain
    assert store.queries == ["select count() from sink where bad"]


async def test_setup_runs_on_bare_session_and_workers_on_scenario_session(factory, store):
    store.respond("where bad", [(0,)])

    await ScenarioDriver(factory).run(_scenario())

    setup_conn = store.connections[0]
    assert setup_conn.executed == ["create or replace database d"]
    assert all(c.executed[0] == "use d" for c in store.connections[1:])
    assert all(c.closed for c in store.connections)


async def test_tally_aggregates_bounded_and_unbounded(factory, store):
    store.fail("consume stream s", times=3)
    store.respond("where bad", [(0,)])

    report = await ScenarioDriver(factory).run(_scenario())

    assert report.tally.successes("consumption") == 7
    assert report.tally.failures("consumption") == 3
    assert report.tally.successes("compaction") > 0


async def test_setup_failure_spawns_no_workers(factory, store):
    store.fail("create or replace database")

    with pytest.raises(SetupError):
        await ScenarioDriver(factory).run(_scenario())

    assert store.count("consume stream s") == 0
    assert store.count("optimize table") == 0


async def test_staging_failure_stops_unbounded_workers(factory, store):
    store.fail("create stream s")

    with pytest.raises(SetupError):
        await ScenarioDriver(factory).run(_scenario())

    executed = store.count("optimize table")
    for _ in range(10):
        await asyncio.sleep(0)
    assert store.count("optimize table") == executed
    assert store.count("consume stream s") == 0


async def test_bounded_defect_triggers_shutdown_and_propagates(factory, store):
    store.fail("consume stream s", exc=RuntimeError("harness bug"))

    with pytest.raises(RuntimeError, match="harness bug"):
        await ScenarioDriver(factory).run(_scenario())

    executed = store.count("optimize table")
    for _ in range(10):
        await asyncio.sleep(0)
    assert store.count("optimize table") == executed
    assert store.count("drain stream s") == 0


async def test_drain_failure_is_fatal(factory, store):
    store.fail("drain stream s")

    with pytest.raises(DrainError):
        await ScenarioDriver(factory).run(_scenario())


async def test_consistency_failure_is_reported_not_raised(factory, store):
    store.respond("where bad", [(4,)])

    report = await ScenarioDriver(factory).run(_scenario())

    assert not report.passed
    [failure] = report.verification.failures
    assert failure.observed == 4


async def test_zero_iteration_bounded_role(factory, store):
    store.respond("where bad", [(0,)])
    idle = WorkerRole(
        name="idle",
        kind=RoleKind.BOUNDED,
        plan=fixed_plan(Statement("never", "never")),
        iterations=0,
    )

    report = await ScenarioDriver(factory).run(_scenario(bounded=[idle]))

    assert report.passed
    assert report.tally.successes("never") == 0
    assert store.count("never") == 0


async def test_script_observations_are_part_of_the_verdict(factory, store):
    store.respond("where bad", [(0,)])

    async def script(sessions):
        async with await sessions.connect() as conn:
            await conn.exec("scripted step")
        return [
            VerificationAssertion(name="step ok", passed=True),
            VerificationAssertion(name="step bad", passed=False),
        ]

    report = await ScenarioDriver(factory).run(
        _scenario(unbounded=[], staging=[], bounded=[], drain=[], script=script)
    )

    assert [a.name for a in report.verification.assertions][:2] == ["step ok", "step bad"]
    assert not report.passed
    assert store.count("scripted step") == 1
