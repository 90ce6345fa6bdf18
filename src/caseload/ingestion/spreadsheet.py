"""
Spreadsheet-archive row source.

Reads the first worksheet of an XLSX workbook with openpyxl in
read-only mode, which streams row bodies from the archive.
"""

import io
from collections.abc import Iterator
from typing import BinaryIO

from openpyxl import load_workbook

from caseload.ingestion.base import RawRow, RowSource
from caseload.utils.logging import get_logger

log = get_logger(__name__)


class SpreadsheetRowSource(RowSource):
    """
    Row source for spreadsheet archives.

    Cells keep the types stored in the workbook: strings, numbers,
    booleans, datetimes (for date-formatted cells) and None.
    """

    def _ensure_seekable(self) -> BinaryIO:
        """Buffer non-seekable streams; the zip directory sits at the end."""
        if self.stream.seekable():
            return self.stream
        log.debug("Buffering non-seekable spreadsheet stream")
        return io.BytesIO(self.stream.read())

    def _iter_rows(self) -> Iterator[RawRow]:
        workbook = load_workbook(
            self._ensure_seekable(),
            read_only=True,
            data_only=True,
        )
        try:
            if not workbook.worksheets:
                msg = "Spreadsheet contains no worksheets"
                raise ValueError(msg)
            worksheet = workbook.worksheets[0]
            log.debug("Reading worksheet", sheet=worksheet.title)
            for values in worksheet.iter_rows(values_only=True):
                yield list(values)
        finally:
            workbook.close()
