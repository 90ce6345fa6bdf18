"""
Post-load type coercion.

Promotes designated text columns to DATE once every file of a run has
been attempted. Each (table, column) pair is converted in its own
transaction; a failure skips that pair only.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

import sqlalchemy as sa

from caseload.errors import CoercionError
from caseload.schemas.canonical import SchemaRegistry
from caseload.utils.logging import get_logger
from caseload.warehouse.engine import quote_identifier

log = get_logger(__name__)

CoercionStatus = Literal[
    "converted",
    "already_date",
    "missing_table",
    "missing_column",
    "failed",
]


@dataclass
class CoercionOutcome:
    """Result of converting one (table, column) pair."""

    table: str
    column: str
    status: CoercionStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the column ended up (or already was) DATE."""
        return self.status in ("converted", "already_date")


def _column_types(conn: sa.Connection, table: str) -> dict[str, sa.types.TypeEngine]:
    """Reflect column types of an existing table."""
    return {col["name"]: col["type"] for col in sa.inspect(conn).get_columns(table)}


class TypeCoercionPass:
    """
    Converts date columns from TEXT to DATE across tables.

    Empty strings and NULL become NULL; every other value is cast
    directly. Already-DATE columns are skipped, so the pass is
    idempotent.
    """

    def __init__(self, engine: sa.Engine, registry: SchemaRegistry) -> None:
        """
        Initialize coercion pass.

        Args:
            engine: Target database engine.
            registry: Canonical schemas declaring the date columns.
        """
        self.engine = engine
        self.registry = registry

    def run(self, tables: Iterable[str] | None = None) -> list[CoercionOutcome]:
        """
        Convert every designated date column of the given tables.

        Args:
            tables: Tables to process; defaults to every configured table.

        Returns:
            One outcome per (table, column) pair.
        """
        selected = list(dict.fromkeys(tables)) if tables is not None else self.registry.tables()
        outcomes: list[CoercionOutcome] = []

        log.info("Starting date coercion pass", tables=selected)

        for table in selected:
            schema = self.registry.get(table)
            for column in schema.date_columns:
                outcome = self.coerce_column(table, column)
                outcomes.append(outcome)

        n_failed = sum(1 for o in outcomes if o.status == "failed")
        log.info(
            "Date coercion pass finished",
            pairs=len(outcomes),
            converted=sum(1 for o in outcomes if o.status == "converted"),
            failed=n_failed,
        )
        return outcomes

    def coerce_column(self, table: str, column: str) -> CoercionOutcome:
        """
        Convert one column to DATE, never raising.

        Args:
            table: Table name.
            column: Column name.

        Returns:
            Outcome of the conversion.
        """
        try:
            with self.engine.begin() as conn:
                if not sa.inspect(conn).has_table(table):
                    log.warning("Table does not exist, skipping", table=table, column=column)
                    return CoercionOutcome(table, column, "missing_table")

                types = _column_types(conn, table)
                if column not in types:
                    log.warning("Column does not exist, skipping", table=table, column=column)
                    return CoercionOutcome(table, column, "missing_column")

                if isinstance(types[column], sa.Date):
                    log.info("Column already DATE, skipping", table=table, column=column)
                    return CoercionOutcome(table, column, "already_date")

                if conn.dialect.name == "postgresql":
                    self._alter_postgresql(conn, table, column)
                else:
                    self._alter_sqlite(conn, table, column)

        except Exception as e:  # noqa: BLE001
            log.error(
                "Date conversion failed, column left as text",
                table=table,
                column=column,
                error=str(e),
            )
            return CoercionOutcome(table, column, "failed", error=str(e))

        log.info("Converted column to DATE", table=table, column=column)
        return CoercionOutcome(table, column, "converted")

    def _alter_postgresql(self, conn: sa.Connection, table: str, column: str) -> None:
        """ALTER COLUMN ... TYPE DATE with a NULL-on-empty USING clause."""
        qt = quote_identifier(conn, table)
        qc = quote_identifier(conn, column)
        conn.execute(
            sa.text(
                f"ALTER TABLE {qt} ALTER COLUMN {qc} TYPE DATE "
                f"USING CASE WHEN {qc} IS NULL OR {qc} = '' THEN NULL "
                f"ELSE {qc}::DATE END"
            )
        )

    def _alter_sqlite(self, conn: sa.Connection, table: str, column: str) -> None:
        """
        Rebuild the column as DATE.

        SQLite has no ALTER COLUMN TYPE, and its date() returns NULL or
        reads bare numbers as Julian days instead of failing. Only values
        that date() returns unchanged (ISO dates) are accepted.
        """
        qt = quote_identifier(conn, table)
        qc = quote_identifier(conn, column)
        staging = f"{column}__date"
        qs = conn.dialect.identifier_preparer.quote_identifier(staging)

        bad = conn.execute(
            sa.text(
                f"SELECT {qc} FROM {qt} "
                f"WHERE {qc} IS NOT NULL AND {qc} <> '' AND date({qc}) IS NOT {qc} "
                "LIMIT 1"
            )
        ).first()
        if bad is not None:
            msg = f"invalid input syntax for type date: {bad[0]!r}"
            raise CoercionError(msg)

        conn.execute(sa.text(f"ALTER TABLE {qt} ADD COLUMN {qs} DATE"))
        conn.execute(
            sa.text(
                f"UPDATE {qt} SET {qs} = CASE WHEN {qc} IS NULL OR {qc} = '' "
                f"THEN NULL ELSE date({qc}) END"
            )
        )
        conn.execute(sa.text(f"ALTER TABLE {qt} DROP COLUMN {qc}"))
        conn.execute(sa.text(f"ALTER TABLE {qt} RENAME COLUMN {qs} TO {qc}"))
