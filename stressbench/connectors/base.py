"""
Connection contract consumed by the harness.

Workers only ever need to run a statement, read rows back, or stream a whole
result to prove it can be read. Backends translate their driver's exceptions
into ``StatementError`` so the harness can tell store-side failures apart from
its own defects.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Connection(ABC):
    """A single, unshared session against the store under test."""

    @abstractmethod
    async def exec(self, sql: str) -> int | None:
        """Execute a statement; return rows affected when the driver reports it."""

    @abstractmethod
    async def query_all(self, sql: str) -> list[tuple[Any, ...]]:
        """Run a query and return every row as a tuple."""

    @abstractmethod
    async def scan(self, sql: str) -> int:
        """Consume a query's full result without keeping rows; return row count."""

    @abstractmethod
    async def close(self) -> None:
        """Release the session."""

    async def query_row(self, sql: str) -> tuple[Any, ...] | None:
        rows = await self.query_all(sql)
        return rows[0] if rows else None

    async def query_scalar(self, sql: str) -> Any:
        row = await self.query_row(sql)
        if row is None or not row:
            return None
        return row[0]

    async def begin(self) -> None:
        await self.exec("BEGIN")

    async def commit(self) -> None:
        await self.exec("COMMIT")

    async def rollback(self) -> None:
        await self.exec("ROLLBACK")

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
