import asyncio

import pytest

from stressbench.connectors.base import Connection
from stressbench.core.errors import ConnectionSetupError, StatementError


class _FakeConnection(Connection):
    def __init__(self, store: "_FakeStore") -> None:
        self.store = store
        self.executed: list[str] = []
        self.closed = False

    async def exec(self, sql: str):
        # Yield like a real network round trip so looping workers interleave.
        await asyncio.sleep(0)
        self.executed.append(sql)
        self.store.executed.append(sql)
        self.store.check(sql)
        return None

    async def query_all(self, sql: str):
        await asyncio.sleep(0)
        self.store.queries.append(sql)
        self.store.check(sql)
        return list(self.store.rows_for(sql))

    async def scan(self, sql: str) -> int:
        return len(await self.query_all(sql))

    async def close(self) -> None:
        self.closed = True


class _FakeStore:
    """In-memory stand-in for a store: records SQL, injects failures, serves rows."""

    def __init__(self) -> None:
        self.executed: list[str] = []
        self.queries: list[str] = []
        self.connections: list[_FakeConnection] = []
        self._failures: list[list] = []
        self._rows: list[tuple[str, list[tuple]]] = []
        self.connect_attempts = 0
        self._failed_connects: set[int] = set()

    def fail_connect(self, *, after: int = 0, times: int = 1):
        """Fail ``times`` connects, starting ``after`` successful ones from now."""
        start = self.connect_attempts + after
        self._failed_connects.update(range(start, start + times))

    def check_connect(self) -> None:
        attempt = self.connect_attempts
        self.connect_attempts += 1
        if attempt in self._failed_connects:
            raise ConnectionSetupError("transient connect failure")

    def fail(self, pattern: str, *, times: int | None = None, exc: BaseException | None = None):
        self._failures.append([pattern, times, exc])

    def respond(self, pattern: str, rows: list[tuple]):
        # later registrations win
        self._rows.insert(0, (pattern, list(rows)))

    def check(self, sql: str) -> None:
        for entry in self._failures:
            pattern, remaining, exc = entry
            if pattern not in sql:
                continue
            if remaining is not None:
                if remaining <= 0:
                    continue
                entry[1] = remaining - 1
            if exc is not None:
                raise exc
            raise StatementError(f"injected failure for {pattern!r}", sql=sql)

    def rows_for(self, sql: str) -> list[tuple]:
        for pattern, rows in self._rows:
            if pattern in sql:
                return rows
        return []

    def count(self, pattern: str) -> int:
        return sum(1 for sql in self.executed if pattern in sql)


class _FakeFactory:
    def __init__(self, store: _FakeStore, session=()) -> None:
        self.store = store
        self.session_statements = tuple(session)

    def with_session(self, session):
        return _FakeFactory(self.store, session)

    async def connect(self) -> _FakeConnection:
        await asyncio.sleep(0)
        self.store.check_connect()
        conn = _FakeConnection(self.store)
        self.store.connections.append(conn)
        for sql in self.session_statements:
            await conn.exec(sql)
        return conn


@pytest.fixture
def store() -> _FakeStore:
    return _FakeStore()


@pytest.fixture
def factory(store) -> _FakeFactory:
    return _FakeFactory(store)
