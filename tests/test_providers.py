import pytest
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.ext.asyncio import create_async_engine

from ticket_manager.core.exceptions import RepositoryException
from ticket_manager.tickets.infrastructure.models import SCHEMA_VERSION, TicketModel
from ticket_manager.tickets.infrastructure.providers import (
    MySQLTicketRepository,
    PostgreSQLTicketRepository,
    SQLServerTicketRepository,
)


class DriverError(Exception):
    def __init__(self, *args, sqlstate=None):
        super().__init__(*args)
        self.sqlstate = sqlstate


def wrap(orig: Exception) -> ProgrammingError:
    return ProgrammingError("CREATE TABLE tickets (...)", {}, orig)


@pytest.fixture
def idle_engine():
    return create_async_engine("sqlite+aiosqlite://")


# ========== Table exists detection ==========

@pytest.mark.parametrize(
    "provider_type, orig, expected",
    [
        (PostgreSQLTicketRepository, DriverError("relation already exists", sqlstate="42P07"), True),
        (PostgreSQLTicketRepository, DriverError("syntax error", sqlstate="42601"), False),
        (MySQLTicketRepository, DriverError(1050, "Table 'tickets' already exists"), True),
        (MySQLTicketRepository, DriverError(1064, "You have an error in your SQL syntax"), False),
        (
            SQLServerTicketRepository,
            DriverError("[42S01] There is already an object named 'tickets' in the database. (2714)"),
            True,
        ),
        (SQLServerTicketRepository, DriverError("[42000] Incorrect syntax near 'tickets'. (102)"), False),
    ],
)
def test_is_table_already_exists_error(idle_engine, storage, provider_type, orig, expected):
    repository = provider_type(idle_engine, storage)

    assert repository.is_table_already_exists_error(wrap(orig)) is expected


def test_postgres_reads_psycopg_pgcode(idle_engine, storage):
    orig = DriverError("relation already exists")
    orig.pgcode = "42P07"

    assert PostgreSQLTicketRepository(idle_engine, storage).is_table_already_exists_error(wrap(orig)) is True


# ========== Migrations ==========

@pytest.mark.asyncio
async def test_apply_migrations_records_version_when_tables_already_exist(engine, storage, monkeypatch):
    def tables_exist(*args, **kwargs):
        raise wrap(DriverError("relation \"tickets\" already exists", sqlstate="42P07"))

    monkeypatch.setattr(TicketModel.metadata, "create_all", tables_exist)
    repository = PostgreSQLTicketRepository(engine, storage)

    assert await repository.apply_migrations() is True
    assert await repository.get_applied_schema_versions() == [SCHEMA_VERSION]


@pytest.mark.asyncio
async def test_apply_migrations_wraps_other_driver_errors(engine, storage, monkeypatch):
    def broken(*args, **kwargs):
        raise wrap(DriverError("permission denied for schema public", sqlstate="42501"))

    monkeypatch.setattr(TicketModel.metadata, "create_all", broken)
    repository = PostgreSQLTicketRepository(engine, storage)

    with pytest.raises(RepositoryException, match="Migration failed"):
        await repository.apply_migrations()

    assert await repository.get_applied_schema_versions() == []
