"""
Failed-rows report writer.

The report repeats the input header and only the rows that failed, in their
original column order, with one extra column holding the error message.
"""

import csv
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import openpyxl
from openpyxl.utils import get_column_letter

from spreadsheet_importer.models import FailedRow, ImportSummary

logger = logging.getLogger(__name__)

DEFAULT_ERROR_COLUMN = "error"


def format_failure(failure: FailedRow) -> str:
    prefix = f"{failure.field}: " if failure.field else ""
    return f"{prefix}{failure.message}"


class FailedRowsWriter:
    """Writes a failed-rows report as csv or xlsx (picked from the suffix).

    Args:
        path: Output file; ``.xlsx`` writes a workbook, anything else csv
        header: Input header cells, in input column order
        error_column: Title of the appended error column
        width: Number of data columns; the header is padded with column
            letters up to it. Rows wider than this are written whole.
    """

    def __init__(self, path: Union[str, Path], header: Sequence[Any],
                 error_column: str = DEFAULT_ERROR_COLUMN, width: Optional[int] = None):
        self.path = Path(path)
        self.header = [self._text(h) for h in header]
        width = max(width or 0, len(self.header))
        self.header.extend(f"column {get_column_letter(i + 1)}" for i in range(len(self.header), width))
        self.error_column = error_column
        self.rows_written = 0
        self._fp = None
        self._csv = None
        self._workbook = None
        self._sheet = None
        self._closed = False

    @property
    def as_workbook(self) -> bool:
        return self.path.suffix.lower() in (".xlsx", ".xlsm")

    @staticmethod
    def _text(value: Any) -> str:
        return "" if value is None else str(value)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.as_workbook:
            self._workbook = openpyxl.Workbook(write_only=True)
            self._sheet = self._workbook.create_sheet("Failed rows")
            self._sheet.append(self.header + [self.error_column])
        else:
            self._fp = self.path.open("w", newline="", encoding="utf-8")
            self._csv = csv.writer(self._fp)
            self._csv.writerow(self.header + [self.error_column])

    def write(self, failure: FailedRow) -> None:
        """Append one failed row."""
        if self._closed:
            raise RuntimeError("FailedRowsWriter is closed")
        if self._fp is None and self._workbook is None:
            self.open()

        cells: List[Any] = list(failure.cells)
        if len(cells) < len(self.header):
            cells.extend([None] * (len(self.header) - len(cells)))

        if self._sheet is not None:
            self._sheet.append(cells + [format_failure(failure)])
        else:
            clean = [format(v, "f") if isinstance(v, Decimal) else self._text(v) for v in cells]
            self._csv.writerow(clean + [format_failure(failure)])
        self.rows_written += 1

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._workbook is not None:
            self._workbook.save(self.path)
            self._workbook = None
        if self._fp is not None and not self._fp.closed:
            self._fp.flush()
            self._fp.close()


def write_failed_rows(summary: ImportSummary, path: Union[str, Path],
                      error_column: str = DEFAULT_ERROR_COLUMN) -> Optional[Path]:
    """Write the failed-rows report for a run.

    Returns:
        The report path, or None when the run had no failures
    """
    if not summary.failures:
        logger.info("No failed rows, report not written")
        return None
    width = max(len(f.cells) for f in summary.failures)
    with FailedRowsWriter(path, summary.header, error_column, width=width) as writer:
        for failure in summary.failures:
            writer.write(failure)
    logger.info(f"Wrote {writer.rows_written} failed row(s) to {writer.path}")
    return writer.path
