"""
Batched multi-row inserts.

Rows are buffered and flushed as one parameterized INSERT per batch,
on the caller's connection and transaction.
"""

import threading
from collections.abc import Callable, Iterable, Sequence

import sqlalchemy as sa

from caseload.errors import IngestionCancelledError
from caseload.normalization.rows import CanonicalRow
from caseload.utils.logging import get_logger
from caseload.warehouse.engine import effective_batch_size, text_table

log = get_logger(__name__)


class BatchLoader:
    """
    Accumulates canonical rows and flushes them in multi-row INSERTs.

    Only the canonical columns present in the file are inserted; absent
    columns are left NULL by the database.
    """

    def __init__(
        self,
        conn: sa.Connection,
        table: str,
        column_names: Sequence[str],
        insert_columns: Sequence[str],
        *,
        batch_size: int = 500,
        cancel_event: threading.Event | None = None,
        on_flush: Callable[[int], None] | None = None,
    ) -> None:
        """
        Initialize batch loader.

        Args:
            conn: Open connection; the caller owns the transaction.
            table: Target table name.
            column_names: Canonical columns, matching canonical row order.
            insert_columns: Subset of column_names to insert.
            batch_size: Requested rows per INSERT (clamped to the
                dialect's bind-parameter ceiling).
            cancel_event: Checked before each flush.
            on_flush: Called with the running row total after each flush.
        """
        unknown = [col for col in insert_columns if col not in column_names]
        if unknown or not insert_columns:
            msg = f"Invalid insert columns for {table!r}: {list(insert_columns)}"
            raise ValueError(msg)

        self.conn = conn
        self.table = table
        self.insert_columns = tuple(insert_columns)
        self._positions = tuple(column_names.index(col) for col in insert_columns)
        self._statement = text_table(table, self.insert_columns).insert()
        self.batch_size = effective_batch_size(
            batch_size, len(self.insert_columns), conn.dialect.name
        )
        self.cancel_event = cancel_event
        self.on_flush = on_flush

        self._buffer: list[dict[str, str | None]] = []
        self.rows_loaded = 0
        self.batches_flushed = 0

        if self.batch_size < batch_size:
            log.debug(
                "Batch size clamped to parameter ceiling",
                table=table,
                requested=batch_size,
                effective=self.batch_size,
            )

    def add(self, row: CanonicalRow) -> None:
        """Buffer one canonical row, flushing when the batch is full."""
        self._buffer.append(
            {col: row[pos] for col, pos in zip(self.insert_columns, self._positions)}
        )
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        """
        Insert buffered rows as one statement and clear the buffer.

        Raises:
            IngestionCancelledError: If cancellation was requested.
        """
        if self.cancel_event is not None and self.cancel_event.is_set():
            msg = f"Ingestion into {self.table!r} cancelled after {self.rows_loaded} rows"
            raise IngestionCancelledError(msg)

        if not self._buffer:
            return

        self.conn.execute(self._statement.values(self._buffer))
        self.rows_loaded += len(self._buffer)
        self.batches_flushed += 1
        log.debug(
            "Batch flushed",
            table=self.table,
            rows=len(self._buffer),
            total=self.rows_loaded,
        )
        self._buffer = []

        if self.on_flush is not None:
            self.on_flush(self.rows_loaded)

    def load(self, rows: Iterable[CanonicalRow]) -> int:
        """
        Load a stream of canonical rows, flushing the final partial batch.

        Args:
            rows: Canonical rows in source order.

        Returns:
            Total rows inserted.
        """
        for row in rows:
            self.add(row)
        self.flush()
        return self.rows_loaded
