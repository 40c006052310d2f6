"""Cooperative shutdown for unbounded workers.

The driver owns the only ``ShutdownSignal`` and is its single writer. Workers
receive a ``ShutdownToken`` at spawn time and can only observe it; they check
it once per loop iteration, so a worker always finishes the statement it is
running before it notices the signal.
"""

from __future__ import annotations

import asyncio

from stressbench.core.errors import HarnessError


class ShutdownToken:
    """Read-only view of a ``ShutdownSignal``."""

    __slots__ = ("_event",)

    def __init__(self, event: asyncio.Event) -> None:
        self._event = event

    @property
    def is_set(self) -> bool:
        return self._event.is_set()


class ShutdownSignal:
    """Set-once flag: created unset, triggered once, never reset."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._token = ShutdownToken(self._event)

    @property
    def token(self) -> ShutdownToken:
        return self._token

    @property
    def triggered(self) -> bool:
        return self._event.is_set()

    def trigger(self) -> None:
        if self._event.is_set():
            raise HarnessError("shutdown signal triggered twice")
        self._event.set()
