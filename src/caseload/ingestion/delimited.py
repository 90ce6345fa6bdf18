"""
Delimited-text row source.

Streams CSV exports in chunks with pandas so the file is never held in
memory as a whole.
"""

from collections.abc import Iterator
from typing import Any, BinaryIO

import pandas as pd
from pandas.errors import EmptyDataError

from caseload.ingestion.base import RawRow, RowSource
from caseload.utils.logging import get_logger

log = get_logger(__name__)


def _every_column(_: Any) -> bool:
    return True


def _clean_cell(value: Any) -> Any:
    """Map pandas missing markers (padding of short rows) to None."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


class DelimitedRowSource(RowSource):
    """
    Row source for delimited text files.

    Every cell is read as text. Quoting follows the standard CSV rules,
    so quoted cells may contain the delimiter or line breaks. Rows longer
    than the first row are truncated; shorter rows are padded with None.
    A quoted field still open at end of file raises pandas' ParserError.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        delimiter: str = ";",
        encoding: str = "utf-8-sig",
        chunk_rows: int = 5_000,
    ) -> None:
        """
        Initialize delimited row source.

        Args:
            stream: Binary file object.
            delimiter: Field delimiter.
            encoding: Text encoding of the file.
            chunk_rows: Rows parsed per pandas chunk.
        """
        super().__init__(stream)
        self.delimiter = delimiter
        self.encoding = encoding
        self.chunk_rows = chunk_rows

    def _iter_rows(self) -> Iterator[RawRow]:
        try:
            # Selecting columns by callable keeps the first row's width and
            # drops the extra cells of longer rows. Malformed quoting still
            # raises, since on_bad_lines stays "error".
            reader = pd.read_csv(
                self.stream,
                sep=self.delimiter,
                header=None,
                usecols=_every_column,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding=self.encoding,
                engine="python",
                on_bad_lines="error",
                chunksize=self.chunk_rows,
            )
        except EmptyDataError:
            log.warning("Delimited file is empty")
            return

        n_chunks = 0
        with reader:
            for chunk in reader:
                n_chunks += 1
                for values in chunk.itertuples(index=False, name=None):
                    yield [_clean_cell(value) for value in values]

        log.debug("Read delimited file", chunks=n_chunks, delimiter=self.delimiter)
