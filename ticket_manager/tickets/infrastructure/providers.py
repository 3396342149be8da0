"""
Database Providers
==================

One ticket repository per supported backend. They differ only in how the
schema version row is inserted idempotently and in how the driver reports a
"table already exists" error.
"""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from ticket_manager.tickets.infrastructure.repositories import BaseTicketRepository


def _driver_error(exc: SQLAlchemyError):
    return getattr(exc, "orig", None)


class PostgreSQLTicketRepository(BaseTicketRepository):
    """PostgreSQL provider (asyncpg)."""

    provider_name = "PostgreSQL"

    # duplicate_table
    TABLE_EXISTS_SQLSTATE = "42P07"

    def mark_schema_applied_statement(self) -> TextClause:
        return text(
            "INSERT INTO ticket_schema_history (version_id, product_version, applied_at) "
            "VALUES (:version_id, :product_version, CURRENT_TIMESTAMP) "
            "ON CONFLICT (version_id) DO NOTHING"
        )

    def is_table_already_exists_error(self, exc: SQLAlchemyError) -> bool:
        orig = _driver_error(exc)
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        return code == self.TABLE_EXISTS_SQLSTATE


class MySQLTicketRepository(BaseTicketRepository):
    """MySQL provider (aiomysql)."""

    provider_name = "MySQL"

    # ER_TABLE_EXISTS_ERROR
    TABLE_EXISTS_ERRNO = 1050

    def mark_schema_applied_statement(self) -> TextClause:
        return text(
            "INSERT IGNORE INTO ticket_schema_history (version_id, product_version, applied_at) "
            "VALUES (:version_id, :product_version, CURRENT_TIMESTAMP)"
        )

    def is_table_already_exists_error(self, exc: SQLAlchemyError) -> bool:
        orig = _driver_error(exc)
        args = getattr(orig, "args", ())
        return bool(args) and args[0] == self.TABLE_EXISTS_ERRNO


class SQLServerTicketRepository(BaseTicketRepository):
    """SQL Server provider (aioodbc)."""

    provider_name = "SQL Server"

    # "There is already an object named ... in the database."
    TABLE_EXISTS_ERROR = 2714

    def mark_schema_applied_statement(self) -> TextClause:
        return text(
            "IF NOT EXISTS (SELECT 1 FROM ticket_schema_history WHERE version_id = :version_id) "
            "INSERT INTO ticket_schema_history (version_id, product_version, applied_at) "
            "VALUES (:version_id, :product_version, CURRENT_TIMESTAMP)"
        )

    def is_table_already_exists_error(self, exc: SQLAlchemyError) -> bool:
        orig = _driver_error(exc)
        return f"({self.TABLE_EXISTS_ERROR})" in str(orig)
