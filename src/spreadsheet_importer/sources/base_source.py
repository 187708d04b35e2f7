"""
Base row source with the behaviour shared by every file format.

A subclass only has to enumerate the physical rows of the selected sheet;
this class applies the header offset, numbering, cell normalization, blank
row skipping, and the full-load / streaming distinction on top.
"""

import logging
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from spreadsheet_importer.casting import normalize_cells
from spreadsheet_importer.config_models import ImportOptions
from spreadsheet_importer.models import FileHandle, RawRow
from spreadsheet_importer.streaming import call_with_timeout, iter_with_timeout

logger = logging.getLogger(__name__)


class BaseRowSource:
    """Lazy sequence of RawRow for one sheet of one file.

    The first row yielded is the row at ``header_offset`` (the header
    position), even when it is blank. Rows before it are never yielded and
    blank rows after it are skipped, but both still advance the row number.

    In full-load mode the rows are parsed into memory by ``load()`` and the
    source can be iterated repeatedly. In streaming mode the source reads
    through a forward-only cursor and can be iterated exactly once.
    """

    def __init__(self, handle: FileHandle, options: ImportOptions, streaming: bool):
        self.handle = handle
        self.options = options
        self.streaming = streaming
        self._rows: Optional[List[RawRow]] = None
        self._consumed = False

    def iter_physical_rows(self) -> Iterator[Tuple[int, Optional[Sequence[Any]], Optional[str]]]:
        """Yield ``(number, values, error)`` for every physical row from the top of the sheet.

        ``number`` is the zero-based position of the row's first line in the
        source. ``values`` is None when the row could not be decoded, in which
        case ``error`` describes why. Subclasses must release their resources
        when the generator finishes or is closed.
        """
        raise NotImplementedError

    def _generate(self) -> Iterator[RawRow]:
        header_offset = self.options.header_offset
        header_seen = False
        for number, values, error in self.iter_physical_rows():
            if number < header_offset:
                continue
            if error is not None:
                header_seen = True
                yield RawRow(number, (), error=error)
                continue
            row = RawRow(number, normalize_cells(values))
            if header_seen and row.is_blank:
                logger.debug(f"Skipping blank row {number}")
                continue
            header_seen = True
            yield row

    def load(self) -> "BaseRowSource":
        """Parse every row into memory (full-load mode only)."""
        if self.streaming:
            raise RuntimeError("load() is not available in streaming mode")
        if self._rows is None:
            self._rows = call_with_timeout(
                lambda: list(self._generate()),
                self.options.io_timeout,
                f"reading {self.handle.name}",
            )
        return self

    def __iter__(self) -> Iterator[RawRow]:
        if not self.streaming:
            return iter(self.load()._rows)
        if self._consumed:
            raise RuntimeError(
                f"Streaming source for {self.handle.name} can only be iterated once; reopen the file"
            )
        self._consumed = True
        rows = self._generate()
        if self.options.io_timeout is not None:
            return iter_with_timeout(rows, self.options.io_timeout)
        return rows
