"""
Target table preparation.

Ensures the table exists with every canonical column, then clears it
so the run's rows fully replace prior contents.
"""

import sqlalchemy as sa

from caseload.schemas.canonical import CanonicalSchema
from caseload.utils.logging import get_logger
from caseload.warehouse.engine import quote_identifier, text_table

log = get_logger(__name__)


class SchemaPreparer:
    """
    Creates and truncates target tables.

    All statements run on the caller's connection, inside the caller's
    transaction, so a failed file also rolls back its truncate.
    """

    def __init__(self, schema: CanonicalSchema) -> None:
        """
        Initialize schema preparer.

        Args:
            schema: Canonical schema of the target table.
        """
        self.schema = schema

    def ensure_table(self, conn: sa.Connection) -> list[str]:
        """
        Create the table if absent; add canonical columns it lacks.

        New columns are always TEXT. Existing columns keep their type,
        so date columns promoted by an earlier run stay DATE.

        Args:
            conn: Open connection.

        Returns:
            Canonical columns added to an existing table.
        """
        table_name = self.schema.table
        inspector = sa.inspect(conn)

        if not inspector.has_table(table_name):
            text_table(table_name, self.schema.column_names).create(conn)
            log.info(
                "Created table",
                table=table_name,
                columns=len(self.schema),
            )
            return []

        existing = {col["name"] for col in inspector.get_columns(table_name)}
        missing = [col for col in self.schema.column_names if col not in existing]
        quoted_table = quote_identifier(conn, table_name)
        for column in missing:
            conn.execute(
                sa.text(
                    f"ALTER TABLE {quoted_table} "
                    f"ADD COLUMN {quote_identifier(conn, column)} TEXT"
                )
            )
        if missing:
            log.info("Added missing canonical columns", table=table_name, columns=missing)

        extra = sorted(existing - set(self.schema.column_names))
        if extra:
            log.warning("Table has non-canonical columns", table=table_name, columns=extra)

        return missing

    def truncate(self, conn: sa.Connection) -> None:
        """Remove every row from the table."""
        quoted_table = quote_identifier(conn, self.schema.table)
        if conn.dialect.name == "postgresql":
            conn.execute(sa.text(f"TRUNCATE TABLE {quoted_table}"))
        else:
            conn.execute(sa.text(f"DELETE FROM {quoted_table}"))
        log.info("Truncated table", table=self.schema.table)

    def prepare(self, conn: sa.Connection, *, truncate: bool = True) -> None:
        """
        Create-if-absent, then truncate.

        Idempotent: repeating it on a prepared table changes nothing.

        Args:
            conn: Open connection.
            truncate: Whether to clear existing rows.
        """
        self.ensure_table(conn)
        if truncate:
            self.truncate(conn)
