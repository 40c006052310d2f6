import pytest

from stressbench.connectors import ConnectionFactory, backend_for_dsn
from stressbench.connectors.postgres_conn import parse_status_rowcount
from stressbench.core.errors import ConnectionSetupError, StatementError


def test_backend_for_dsn():
    assert backend_for_dsn("databend://root:@localhost:8000/default") == "databend"
    assert backend_for_dsn("databend+http://root:@localhost:8000") == "databend"
    assert backend_for_dsn("databend+flight://root:@localhost:8900") == "databend"
    assert backend_for_dsn("postgresql://user@localhost/db") == "postgres"
    assert backend_for_dsn("postgres://user@localhost/db") == "postgres"


def test_unknown_scheme_is_setup_error():
    with pytest.raises(ConnectionSetupError):
        backend_for_dsn("mysql://root@localhost/db")
    with pytest.raises(ConnectionSetupError):
        ConnectionFactory("")


def test_parse_status_rowcount():
    assert parse_status_rowcount("INSERT 0 5") == 5
    assert parse_status_rowcount("UPDATE 3") == 3
    assert parse_status_rowcount("DELETE 0") == 0
    assert parse_status_rowcount("BEGIN") is None
    assert parse_status_rowcount("") is None
    assert parse_status_rowcount(None) is None


def test_with_session_keeps_dsn():
    factory = ConnectionFactory("databend://root:@localhost:8000/default")
    scoped = factory.with_session(["use test_stream"])
    assert scoped.dsn == factory.dsn
    assert scoped.session_statements == ("use test_stream",)
    assert factory.session_statements == ()


@pytest.mark.asyncio
async def test_session_statement_failure_closes_connection(monkeypatch, store, factory):
    fake = await factory.connect()
    store.fail("use missing_db")

    async def fake_open(self):
        return fake

    monkeypatch.setattr(ConnectionFactory, "_open_raw", fake_open)
    scoped = ConnectionFactory("databend://root:@localhost:8000/default").with_session(
        ["use missing_db"]
    )

    with pytest.raises(ConnectionSetupError) as excinfo:
        await scoped.connect()
    assert isinstance(excinfo.value.__cause__, StatementError)
    assert fake.closed
