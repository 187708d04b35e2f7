"""
Workbook source (xlsx, xlsm) backed by openpyxl.

Full-load mode opens the workbook normally; streaming mode uses openpyxl's
read-only workbook, which parses the sheet XML incrementally.
"""

import logging
from typing import Any, Iterator, Optional, Sequence, Tuple

import openpyxl

from spreadsheet_importer.errors import SpreadsheetImportError, UnreadableFile
from spreadsheet_importer.models import FileHandle, SheetDescriptor
from spreadsheet_importer.sources.base_source import BaseRowSource

logger = logging.getLogger(__name__)


def _workbook_source(handle: FileHandle):
    source = handle.source
    if not isinstance(source, str):
        source.seek(0)
    return source


def read_sheet_descriptors(handle: FileHandle) -> Tuple[SheetDescriptor, ...]:
    """List worksheets without loading their cells.

    Chart sheets are not worksheets and are not listed.
    """
    try:
        wb = openpyxl.load_workbook(_workbook_source(handle), read_only=True, data_only=True)
    except Exception as e:
        raise UnreadableFile(f"Cannot open workbook {handle.name}: {e}") from e

    try:
        sheets = []
        for index, ws in enumerate(wb.worksheets):
            try:
                row_count = ws.max_row
            except (AttributeError, ValueError):
                row_count = None
            sheets.append(SheetDescriptor(name=ws.title, index=index, row_count=row_count))
        return tuple(sheets)
    finally:
        wb.close()


class XlsxRowSource(BaseRowSource):
    """Rows of the active worksheet of a workbook."""

    def iter_physical_rows(self) -> Iterator[Tuple[int, Optional[Sequence[Any]], Optional[str]]]:
        index = self.options.active_sheet
        try:
            wb = openpyxl.load_workbook(
                _workbook_source(self.handle),
                read_only=self.streaming,
                data_only=True,
            )
        except Exception as e:
            raise UnreadableFile(f"Cannot open workbook {self.handle.name}: {e}") from e

        try:
            ws = wb.worksheets[index]
            logger.debug(f"Reading sheet '{ws.title}' of {self.handle.name}")
            rows = ws.iter_rows(values_only=True)
            number = 0
            while True:
                try:
                    values = next(rows)
                except StopIteration:
                    break
                except SpreadsheetImportError:
                    raise
                except Exception as e:
                    # the sheet XML cannot be resynchronised after a parse error
                    raise UnreadableFile(f"Cannot read sheet '{ws.title}' of {self.handle.name}: {e}") from e
                yield number, values, None
                number += 1
        finally:
            wb.close()
