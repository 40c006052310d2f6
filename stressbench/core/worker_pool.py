"""Worker pool for bounded and unbounded scenario workers.

Spawns every replica of a role as its own asyncio task with its own session,
keeps the handles, and joins them by kind so the driver can enforce the phase
order: bounded workers finish, then the shutdown signal is triggered, then the
unbounded workers are joined.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from stressbench.core.errors import HarnessError
from stressbench.core.shutdown import ShutdownSignal, ShutdownToken
from stressbench.core.workers import SessionFactory, run_bounded, run_unbounded
from stressbench.models.results import WorkerOutcome
from stressbench.models.workload import RoleKind, WorkerRole

logger = logging.getLogger(__name__)


@dataclass
class WorkerHandle:
    """An in-flight worker and the slot for its terminal result."""

    worker_id: int
    role: WorkerRole
    replica: int
    task: asyncio.Task[WorkerOutcome]

    @property
    def kind(self) -> RoleKind:
        return self.role.kind

    @property
    def label(self) -> str:
        return f"{self.role.name}#{self.replica}"


class WorkerPool:
    """Holds worker tasks from spawn until join.

    Attributes:
        factory: Opens one session per worker (sessions are never shared)
    """

    def __init__(self, *, factory: SessionFactory) -> None:
        self.factory = factory
        self._handles: dict[int, WorkerHandle] = {}
        self._next_worker_id = 0

    def handles(self, kind: RoleKind | None = None) -> list[WorkerHandle]:
        return [
            h for h in self._handles.values() if kind is None or h.kind is kind
        ]

    def spawn(self, role: WorkerRole, *, token: ShutdownToken | None = None) -> list[int]:
        """Spawn every replica of a role.

        Unbounded roles need the shutdown token; bounded roles ignore it.

        Returns:
            Worker IDs of the spawned replicas
        """
        if role.kind is RoleKind.UNBOUNDED and token is None:
            raise HarnessError(f"unbounded role {role.name!r} spawned without a token")

        spawned: list[int] = []
        for replica in range(role.replicas):
            wid = int(self._next_worker_id)
            self._next_worker_id += 1
            if role.kind is RoleKind.UNBOUNDED:
                coro = run_unbounded(role, replica, self.factory, token)
            else:
                coro = run_bounded(role, replica, self.factory)
            task = asyncio.create_task(coro, name=f"{role.name}#{replica}")
            self._handles[wid] = WorkerHandle(wid, role, replica, task)
            spawned.append(wid)
        if spawned:
            logger.info(
                "[WorkerPool] spawned %d %s worker(s) for role %s",
                len(spawned), role.kind.value, role.name,
            )
        return spawned

    def spawn_all(
        self, roles: Iterable[WorkerRole], *, token: ShutdownToken | None = None
    ) -> list[int]:
        out: list[int] = []
        for role in roles:
            out.extend(self.spawn(role, token=token))
        return out

    async def join(self, kind: RoleKind) -> list[WorkerOutcome]:
        """Wait for every worker of ``kind`` and return outcomes in spawn order.

        All workers of the kind are awaited before anything is raised, so a
        single broken worker does not leave its siblings unobserved. The first
        failure (in spawn order) is re-raised; a cancelled worker is a
        ``HarnessError``.
        """
        handles = self.handles(kind)
        if not handles:
            return []

        results = await asyncio.gather(
            *(h.task for h in handles), return_exceptions=True
        )
        for h in handles:
            self._handles.pop(h.worker_id, None)

        outcomes: list[WorkerOutcome] = []
        first_error: BaseException | None = None
        for h, result in zip(handles, results):
            if isinstance(result, asyncio.CancelledError):
                logger.error("[WorkerPool] worker %s was cancelled", h.label)
                if first_error is None:
                    first_error = HarnessError(f"worker {h.label} was cancelled")
            elif isinstance(result, BaseException):
                logger.error(
                    "[WorkerPool] worker %s failed: %s: %s",
                    h.label, type(result).__name__, result,
                )
                if first_error is None:
                    first_error = result
            else:
                outcomes.append(result)

        if first_error is not None:
            raise first_error
        return outcomes

    async def abort(self, signal: ShutdownSignal) -> None:
        """Stop everything after a fatal error.

        Bounded workers are cancelled; unbounded workers are signalled and
        allowed to finish their current statement. Errors raised while winding
        down are logged, not raised, so the original failure stays visible.
        """
        if not signal.triggered:
            signal.trigger()

        for h in self.handles(RoleKind.BOUNDED):
            h.task.cancel()

        tasks = [h.task for h in self._handles.values()]
        if not tasks:
            return
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for h, result in zip(list(self._handles.values()), results):
            if isinstance(result, BaseException) and not isinstance(
                result, asyncio.CancelledError
            ):
                logger.warning(
                    "[WorkerPool] worker %s failed during abort: %s", h.label, result
                )
        self._handles.clear()
