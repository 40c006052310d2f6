import asyncio

import pytest

from stressbench.core.errors import HarnessError
from stressbench.core.shutdown import ShutdownSignal
from stressbench.core.worker_pool import WorkerPool
from stressbench.models.workload import RoleKind, Statement, WorkerRole, fixed_plan, looping


def _bounded(name, iterations, replicas=1, sql="insert into t values(1)"):
    return WorkerRole(
        name=name,
        kind=RoleKind.BOUNDED,
        plan=fixed_plan(Statement(sql, name)),
        iterations=iterations,
        replicas=replicas,
    )


@pytest.mark.asyncio
async def test_spawn_every_replica(factory):
    pool = WorkerPool(factory=factory)
    ids = pool.spawn(_bounded("writer", 3, replicas=4))

    assert ids == [0, 1, 2, 3]
    assert [h.label for h in pool.handles(RoleKind.BOUNDED)] == [
        "writer#0", "writer#1", "writer#2", "writer#3",
    ]

    outcomes = await pool.join(RoleKind.BOUNDED)
    assert [o.replica for o in outcomes] == [0, 1, 2, 3]
    assert all(o.executed == 3 for o in outcomes)
    assert pool.handles() == []


@pytest.mark.asyncio
async def test_unbounded_spawn_requires_token(factory):
    pool = WorkerPool(factory=factory)
    with pytest.raises(HarnessError):
        pool.spawn(looping("compaction", Statement("optimize", "compaction")))


@pytest.mark.asyncio
async def test_join_by_kind_keeps_other_kind_running(factory):
    signal = ShutdownSignal()
    pool = WorkerPool(factory=factory)
    pool.spawn(looping("compaction", Statement("optimize", "compaction")), token=signal.token)
    pool.spawn(_bounded("writer", 5))

    bounded = await pool.join(RoleKind.BOUNDED)
    assert len(bounded) == 1
    assert [h.worker_id for h in pool.handles()] == [0]

    signal.trigger()
    unbounded = await pool.join(RoleKind.UNBOUNDED)
    assert unbounded[0].role == "compaction"
    assert unbounded[0].executed > 0


@pytest.mark.asyncio
async def test_join_reraises_first_defect_after_awaiting_all(factory, store):
    store.fail("broken", exc=RuntimeError("defect"))
    pool = WorkerPool(factory=factory)
    pool.spawn(_bounded("ok", 10))
    pool.spawn(_bounded("bad", 1, sql="broken statement"))

    with pytest.raises(RuntimeError, match="defect"):
        await pool.join(RoleKind.BOUNDED)
    # the healthy sibling still ran to completion
    assert store.count("insert into t") == 10
    assert pool.handles() == []


@pytest.mark.asyncio
async def test_cancelled_worker_is_harness_error(factory):
    pool = WorkerPool(factory=factory)
    pool.spawn(_bounded("writer", 1000))
    pool.handles(RoleKind.BOUNDED)[0].task.cancel()

    with pytest.raises(HarnessError):
        await pool.join(RoleKind.BOUNDED)


@pytest.mark.asyncio
async def test_abort_signals_and_cancels(factory):
    signal = ShutdownSignal()
    pool = WorkerPool(factory=factory)
    pool.spawn(looping("compaction", Statement("optimize", "compaction")), token=signal.token)
    pool.spawn(_bounded("writer", 100000))
    await asyncio.sleep(0)

    await pool.abort(signal)

    assert signal.triggered
    assert pool.handles() == []
