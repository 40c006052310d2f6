"""
Connection factory.

Picks a backend from the DSN scheme and opens one session per call. Session
statements (``use <db>``, session settings) are replayed on every connection
so workers never share state beyond the store itself.
"""

from __future__ import annotations

import logging
from typing import Sequence
from urllib.parse import urlsplit

from stressbench.connectors.base import Connection
from stressbench.core.errors import ConnectionSetupError, StatementError

logger = logging.getLogger(__name__)

DATABEND_SCHEMES = {"databend", "databend+http", "databend+flight"}
POSTGRES_SCHEMES = {"postgres", "postgresql"}


def backend_for_dsn(dsn: str) -> str:
    """Return "databend" or "postgres" for a DSN, raising on unknown schemes."""
    scheme = urlsplit(str(dsn or "")).scheme.lower()
    if scheme in DATABEND_SCHEMES:
        return "databend"
    if scheme in POSTGRES_SCHEMES:
        return "postgres"
    raise ConnectionSetupError(f"Unsupported DSN scheme: {scheme!r}")


class ConnectionFactory:
    """Opens fresh sessions against one store."""

    def __init__(self, dsn: str, *, session_statements: Sequence[str] = ()):
        self.dsn = dsn
        self.backend = backend_for_dsn(dsn)
        self.session_statements = tuple(session_statements)

    def with_session(self, session_statements: Sequence[str]) -> "ConnectionFactory":
        """Factory for the same store with a different session prologue."""
        return ConnectionFactory(self.dsn, session_statements=session_statements)

    async def _open_raw(self) -> Connection:
        if self.backend == "databend":
            from stressbench.connectors.databend_conn import DatabendConnection

            return await DatabendConnection.open(self.dsn)

        from stressbench.connectors.postgres_conn import PostgresConnection

        return await PostgresConnection.open(self.dsn)

    async def connect(self) -> Connection:
        conn = await self._open_raw()
        try:
            for sql in self.session_statements:
                await conn.exec(sql)
        except StatementError as e:
            await conn.close()
            raise ConnectionSetupError(
                f"Session statement failed: {e.sql!r}: {e}"
            ) from e
        return conn


__all__ = [
    "Connection",
    "ConnectionFactory",
    "backend_for_dsn",
]
