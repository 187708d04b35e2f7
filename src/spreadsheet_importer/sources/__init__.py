"""
Row sources for the supported file formats.

The three library-facing operations are ``open_file``, ``list_sheets`` and
``read_rows``.
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

from spreadsheet_importer.config_models import ImportOptions
from spreadsheet_importer.errors import InvalidSheetIndex, UnreadableFile
from spreadsheet_importer.models import FileFormat, FileHandle, SheetDescriptor
from spreadsheet_importer.sources.base_source import BaseRowSource
from spreadsheet_importer.sources.csv_source import CsvRowSource
from spreadsheet_importer.sources.xlsx_source import XlsxRowSource, read_sheet_descriptors
from spreadsheet_importer.streaming import call_with_timeout

logger = logging.getLogger(__name__)

_SUFFIX_FORMATS = {
    ".csv": FileFormat.CSV,
    ".txt": FileFormat.CSV,
    ".tsv": FileFormat.TSV,
    ".tab": FileFormat.TSV,
    ".xlsx": FileFormat.XLSX,
    ".xlsm": FileFormat.XLSX,
}

_ZIP_MAGIC = b"PK\x03\x04"

Source = Union[str, Path, BinaryIO]


def _read_magic(source: Union[str, BinaryIO]) -> bytes:
    if isinstance(source, str):
        with open(source, 'rb') as f:
            return f.read(4)
    source.seek(0)
    magic = source.read(4)
    source.seek(0)
    return magic


def detect_format(name: str, source: Union[str, BinaryIO]) -> FileFormat:
    """Pick a format from the file suffix, falling back to magic bytes.

    Workbooks are zip containers (``PK\\x03\\x04``); anything else is
    treated as comma separated text.
    """
    suffix = Path(name).suffix.lower()
    if suffix in _SUFFIX_FORMATS:
        return _SUFFIX_FORMATS[suffix]
    return FileFormat.XLSX if _read_magic(source) == _ZIP_MAGIC else FileFormat.CSV


def _open(source: Source, file_format: Optional[FileFormat]) -> FileHandle:
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise UnreadableFile(f"Input file not found: {path}")
        if path.is_dir():
            raise UnreadableFile(f"Input path is a directory: {path}")
        if not os.access(path, os.R_OK):
            raise UnreadableFile(f"Input file is not readable: {path}")
        size = path.stat().st_size
        name = path.name
        raw: Union[str, BinaryIO] = str(path)
    else:
        if not (hasattr(source, "read") and hasattr(source, "seek")):
            raise UnreadableFile(f"Unsupported source object: {type(source).__name__}")
        source.seek(0, os.SEEK_END)
        size = source.tell()
        source.seek(0)
        name = Path(str(getattr(source, "name", "<stream>"))).name
        raw = source

    fmt = file_format or detect_format(name, raw)
    handle = FileHandle(source=raw, name=name, file_format=fmt, size=size)
    if fmt.has_sheets:
        handle = FileHandle(
            source=raw, name=name, file_format=fmt, size=size,
            sheets=read_sheet_descriptors(handle),
        )
    return handle


def open_file(source: Source, file_format: Optional[FileFormat] = None,
              timeout: Optional[float] = None) -> FileHandle:
    """Open a file or seekable binary stream and describe it.

    Raises:
        UnreadableFile: if the file is missing, unreadable, not a valid
            workbook, or cannot be opened within ``timeout`` seconds
    """
    try:
        handle = call_with_timeout(_open, timeout, f"opening {source}", source, file_format)
    except OSError as e:
        raise UnreadableFile(f"Cannot open {source}: {e}") from e

    size_mb = (handle.size or 0) / (1024 * 1024)
    logger.info(f"Opened {handle.name} ({handle.file_format.value}, {size_mb:.2f} MB, "
                f"{len(handle.sheets)} sheet(s))")
    return handle


def list_sheets(handle: FileHandle) -> Tuple[SheetDescriptor, ...]:
    """Sheets of a multi-sheet file; empty for flat text."""
    return handle.sheets


def check_sheet_index(handle: FileHandle, index: int) -> Optional[SheetDescriptor]:
    """Validate the sheet index for this file.

    Raises:
        InvalidSheetIndex: if the index does not exist (flat text has only sheet 0)
    """
    if not handle.file_format.has_sheets:
        if index != 0:
            raise InvalidSheetIndex(index, 1)
        return None
    if index >= len(handle.sheets):
        raise InvalidSheetIndex(index, len(handle.sheets))
    return handle.sheets[index]


def read_rows(handle: FileHandle, options: ImportOptions, streaming: bool) -> BaseRowSource:
    """Create a row source for the active sheet.

    In full-load mode the rows are read before this returns.

    Raises:
        InvalidSheetIndex: if ``options.active_sheet`` does not exist
        UnreadableFile: if the file cannot be read (full-load mode)
    """
    check_sheet_index(handle, options.active_sheet)
    if handle.file_format.has_sheets:
        source: BaseRowSource = XlsxRowSource(handle, options, streaming)
    else:
        source = CsvRowSource(handle, options, streaming)
    if not streaming:
        source.load()
    return source


__all__ = [
    "BaseRowSource",
    "CsvRowSource",
    "XlsxRowSource",
    "check_sheet_index",
    "detect_format",
    "list_sheets",
    "open_file",
    "read_rows",
]
