"""
Dialect-aware INSERT ... ON CONFLICT helpers.

PostgreSQL in production, SQLite in the test suite. Both support the
same ON CONFLICT DO UPDATE form, only the insert() construct differs.
"""

from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from readmeter.exceptions import StorageUnavailableError


def dialect_insert(session: AsyncSession, table: Table) -> Any:
    """
    Return the dialect-specific insert() construct for the session's bind.

    Raises:
        StorageUnavailableError: The bind's dialect has no ON CONFLICT upsert
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise StorageUnavailableError(
        "upsert", f"ON CONFLICT upsert not supported for dialect: {dialect}"
    )
