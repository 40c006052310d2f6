"""
Postgres Connection

Single-session asyncpg wrapper for stores that speak the Postgres wire
protocol. Each worker owns its own session, so there is no pooling here;
connection establishment keeps the retry logic for transient failures.
"""

import asyncio
import logging
import random
import socket
from typing import Any, List, Optional

import asyncpg
from asyncpg.exceptions import CannotConnectNowError, TooManyConnectionsError

from stressbench.connectors.base import Connection
from stressbench.core.errors import ConnectionSetupError, StatementError

logger = logging.getLogger(__name__)

_STATEMENT_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def parse_status_rowcount(status: Optional[str]) -> Optional[int]:
    """
    Parse rowcount from an asyncpg status string (e.g. "INSERT 0 1", "UPDATE 5").

    Returns None for statements that do not report a count ("BEGIN", "COMMIT").
    """
    if not status:
        return None
    parts = str(status).split()
    if len(parts) < 2:
        return None
    try:
        # Last number is typically the row count
        return int(parts[-1])
    except ValueError:
        return None


class PostgresConnection(Connection):
    """One asyncpg session."""

    def __init__(self, conn: Any):
        self._conn = conn

    @classmethod
    async def open(
        cls,
        dsn: str,
        *,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> "PostgresConnection":
        """
        Open a session.

        Args:
            dsn: postgres:// or postgresql:// connection string
            max_retries: Max attempts for transient connect failures
            retry_delay: Base delay between attempts in seconds
        """
        for attempt in range(max_retries):
            try:
                conn = await asyncpg.connect(dsn)
                return cls(conn)
            except (CannotConnectNowError, TooManyConnectionsError) as e:
                if attempt < max_retries - 1:
                    logger.warning(
                        "Connect attempt %d failed, retrying: %s", attempt + 1, e
                    )
                    await asyncio.sleep(retry_delay * (attempt + 1))
                else:
                    raise ConnectionSetupError(
                        f"Failed to connect after {max_retries} attempts: {e}"
                    ) from e
            except (socket.gaierror, OSError) as e:
                # DNS resolution or network errors can be transient when many
                # workers start simultaneously
                if attempt < max_retries - 1:
                    jitter = random.uniform(0, 0.5)
                    delay = retry_delay * (attempt + 1) + jitter
                    logger.warning(
                        "Connect attempt %d failed (DNS/network error: %s), "
                        "retrying in %.1fs...",
                        attempt + 1,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
                else:
                    raise ConnectionSetupError(
                        f"DNS/network error connecting after {max_retries} attempts: {e}"
                    ) from e
            except asyncpg.PostgresError as e:
                raise ConnectionSetupError(
                    f"Failed to connect: {type(e).__name__}: {e}"
                ) from e
        raise ConnectionSetupError("Failed to connect: no attempts made")

    async def exec(self, sql: str) -> Optional[int]:
        try:
            status = await self._conn.execute(sql)
        except _STATEMENT_ERRORS as e:
            raise StatementError(str(e), sql=sql) from e
        return parse_status_rowcount(status)

    async def query_all(self, sql: str) -> List[tuple]:
        try:
            rows = await self._conn.fetch(sql)
        except _STATEMENT_ERRORS as e:
            raise StatementError(str(e), sql=sql) from e
        # Convert asyncpg.Record to tuples
        return [tuple(row.values()) for row in rows]

    async def scan(self, sql: str) -> int:
        count = 0
        try:
            # Server-side cursors need a transaction block.
            async with self._conn.transaction():
                async for _ in self._conn.cursor(sql):
                    count += 1
        except _STATEMENT_ERRORS as e:
            raise StatementError(str(e), sql=sql) from e
        return count

    async def close(self) -> None:
        if self._conn is not None and not self._conn.is_closed():
            await self._conn.close()
