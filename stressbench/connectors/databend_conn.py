"""
Databend Connection

Thin async wrapper around ``databend-driver`` exposing the harness
``Connection`` contract.
"""

from __future__ import annotations

import logging
from typing import Any

from databend_driver import AsyncDatabendClient

from stressbench.connectors.base import Connection
from stressbench.core.errors import ConnectionSetupError, StatementError

logger = logging.getLogger(__name__)


def _row_to_tuple(row: Any) -> tuple[Any, ...]:
    return tuple(row.values())


class DatabendConnection(Connection):
    """One ``databend-driver`` session."""

    def __init__(self, conn: Any):
        self._conn = conn

    @classmethod
    async def open(cls, dsn: str) -> "DatabendConnection":
        try:
            client = AsyncDatabendClient(dsn)
            conn = await client.get_conn()
        except Exception as e:
            raise ConnectionSetupError(
                f"Failed to connect to Databend: {type(e).__name__}: {e}"
            ) from e
        return cls(conn)

    async def exec(self, sql: str) -> int | None:
        try:
            return await self._conn.exec(sql)
        except Exception as e:
            raise StatementError(str(e), sql=sql) from e

    async def query_all(self, sql: str) -> list[tuple[Any, ...]]:
        try:
            rows = await self._conn.query_iter(sql)
            return [_row_to_tuple(row) async for row in rows]
        except Exception as e:
            raise StatementError(str(e), sql=sql) from e

    async def scan(self, sql: str) -> int:
        count = 0
        try:
            rows = await self._conn.query_iter(sql)
            async for _ in rows:
                count += 1
        except Exception as e:
            raise StatementError(str(e), sql=sql) from e
        return count

    async def close(self) -> None:
        # Older driver releases have no explicit close; the session is dropped
        # together with the object.
        close = getattr(self._conn, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.debug("Ignoring error while closing Databend connection: %s", e)
