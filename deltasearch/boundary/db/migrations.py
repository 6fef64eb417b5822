"""
Schema migration for delta-indexed tables.

Adds the dirty marker columns (delta, delta_marked_at) and their indexes
to an existing application table. Safe to run multiple times.

Existing rows start dirty with no mark time, so they are eligible for the
first delta build and are cleared by the first core rebuild.

Usage:
    deltasearch migrate articles comments
"""

import logging

from sqlalchemy import Boolean, DateTime, Engine, inspect, text, true

logger = logging.getLogger(__name__)


def add_delta_columns(engine: Engine, table_name: str) -> list[str]:
    """
    Add delta marker columns to a table if they don't exist.

    Args:
        engine: Sync SQLAlchemy engine
        table_name: Existing table to migrate

    Returns:
        list[str]: Names of the columns that were added (empty when up to date)

    Raises:
        NoSuchTableError: Table does not exist
    """
    dialect = engine.dialect
    quote = dialect.identifier_preparer.quote
    existing = {column["name"] for column in inspect(engine).get_columns(table_name)}
    table = quote(table_name)

    statements: list[tuple[str, str]] = []
    if "delta" not in existing:
        statements.append((
            "delta",
            f"ALTER TABLE {table} ADD COLUMN delta "
            f"{Boolean().compile(dialect=dialect)} NOT NULL "
            f"DEFAULT {true().compile(dialect=dialect)}",
        ))
    if "delta_marked_at" not in existing:
        statements.append((
            "delta_marked_at",
            f"ALTER TABLE {table} ADD COLUMN delta_marked_at "
            f"{DateTime(timezone=True).compile(dialect=dialect)} NULL",
        ))

    with engine.begin() as conn:
        for column, statement in statements:
            conn.execute(text(statement))
            logger.info(
                f"{__name__}:add_delta_columns - Column added",
                extra={"table": table_name, "column": column},
            )
        for column in ("delta", "delta_marked_at"):
            index = quote(f"ix_{table_name}_{column}")
            conn.execute(text(f"CREATE INDEX IF NOT EXISTS {index} ON {table} ({column})"))

    if not statements:
        logger.info(
            f"{__name__}:add_delta_columns - Table already has delta columns",
            extra={"table": table_name},
        )
    return [column for column, _ in statements]
