"""
Orchestration of a single import run.

This module wires the pipeline together: open the file, choose full-load or
streaming, resolve the header, and hand the rows to the driver. It is the
entry point a host job system calls; persistence, authorization and UI stay
with the host.
"""

import logging
import threading
from pathlib import Path
from typing import AbstractSet, BinaryIO, Callable, ContextManager, Mapping, Optional, Sequence, Union

from spreadsheet_importer.config_models import ErrorSignatureTable, ImporterSchema, ImportOptions
from spreadsheet_importer.driver import ImportDriver, RecordCallback
from spreadsheet_importer.errors import CorruptRow
from spreadsheet_importer.failures import ErrorTranslator
from spreadsheet_importer.mapping import build_explicit_map, build_header_map
from spreadsheet_importer.models import ImportSummary, RawRow
from spreadsheet_importer.observability import EventType, ObservabilityManager
from spreadsheet_importer.sources import check_sheet_index, open_file, read_rows
from spreadsheet_importer.streaming import describe_mode, select_streaming

logger = logging.getLogger(__name__)


def import_file(
    source: Union[str, Path, BinaryIO],
    options: Optional[ImportOptions],
    per_record: RecordCallback,
    *,
    schema: Optional[ImporterSchema] = None,
    known_fields: Optional[AbstractSet[str]] = None,
    required_fields: Optional[AbstractSet[str]] = None,
    guesses: Optional[Mapping[str, Sequence[str]]] = None,
    cancel_event: Optional[threading.Event] = None,
    transaction: Optional[Callable[[], ContextManager]] = None,
    signatures: Optional[Union[ErrorSignatureTable, ErrorTranslator]] = None,
    observability: Optional[ObservabilityManager] = None,
) -> ImportSummary:
    """Import one sheet of one file.

    Args:
        source: Path or seekable binary stream
        options: Run options (defaults when None)
        per_record: ``callback(record, row_number, options)`` called per data row
        schema: Importer schema; supplies known/required fields and header guesses
        known_fields: Field names the importer accepts (when no schema is given)
        required_fields: Fields that must be mapped to a column
        guesses: Alternative header spellings per field
        cancel_event: Set it to stop the run between rows
        transaction: Factory for a context manager wrapped around each batch
        signatures: Error signature table (or a prepared translator)
        observability: Hook manager for events and metrics

    Returns:
        ImportSummary, also for cancelled, truncated and aborted runs

    Raises:
        UnreadableFile: file missing, unparseable, or timed out (before any row)
        InvalidSheetIndex: ``active_sheet`` does not exist
        MissingRequiredField: required fields absent from header and mapping
        UnknownField: explicit mapping names unknown fields
        CorruptRow: the header row cannot be decoded
    """
    options = options if options is not None else ImportOptions()
    if schema is not None:
        known_fields = schema.known_fields if known_fields is None else known_fields
        required_fields = schema.required_fields if required_fields is None else required_fields
        guesses = schema.guesses if guesses is None else guesses
    if known_fields is None:
        raise ValueError("import_file() needs a schema or known_fields")
    required_fields = required_fields or frozenset()

    if isinstance(signatures, ErrorTranslator):
        translator = signatures
    else:
        translator = ErrorTranslator(signatures)
    observability = observability or ObservabilityManager()

    # pre-flight: nothing below reads data rows until the header is resolved
    header_map = None
    if options.column_mapping is not None:
        header_map = build_explicit_map(options.column_mapping, known_fields, required_fields)
        logger.info(f"Using explicit column mapping for {len(header_map.bindings)} field(s)")

    handle = open_file(source, options.file_format, options.io_timeout)
    sheet = check_sheet_index(handle, options.active_sheet)
    streaming = select_streaming(handle.size, options.use_streaming, options.streaming_threshold)
    logger.info(f"Importing {handle.name}"
                f"{f' sheet {sheet.name!r}' if sheet else ''} in "
                f"{describe_mode(handle.size, streaming, options.streaming_threshold)}")

    row_source = read_rows(handle, options, streaming)
    rows = iter(row_source)
    try:
        header_row = next(rows, None)
        if header_row is None:
            header_row = RawRow(options.header_offset, ())
        if header_row.error is not None:
            raise CorruptRow(header_row.number, header_row.error)
        if header_map is None:
            header_map = build_header_map(header_row, known_fields, required_fields, guesses)
    except BaseException:
        close = getattr(rows, "close", None)
        if close is not None:
            close()
        raise

    unmapped = sorted(set(known_fields) - set(header_map.field_names))
    if unmapped:
        logger.info(f"Fields without a source column (skipped): {', '.join(unmapped)}")

    tags = {"format": handle.file_format.value}
    observability.emit_event(
        EventType.RUN_START,
        file_name=handle.name,
        details={"streaming": streaming, "sheet": sheet.name if sheet else None},
    )
    observability.start_timer("import_run_duration")

    driver = ImportDriver(
        options,
        per_record,
        translator=translator,
        cancel_event=cancel_event,
        transaction=transaction,
        observability=observability,
        file_name=handle.name,
    )
    summary = driver.run(
        rows,
        header_map,
        header=header_row.cells,
        sheet_name=sheet.name if sheet else None,
        streaming=streaming,
    )

    observability.end_timer("import_run_duration", tags=tags)
    observability.counter("rows_processed", summary.processed, tags=tags)
    observability.counter("rows_failed", summary.failed, tags=tags)
    observability.emit_event(
        EventType.RUN_ABORTED if summary.aborted else EventType.RUN_COMPLETE,
        file_name=handle.name,
        details={"status": summary.status.value, "processed": summary.processed,
                 "failed": summary.failed},
    )

    logger.info(f"{handle.name}: {summary.succeeded} of {summary.processed} row(s) imported, "
                f"{summary.failed} failed, {summary.skipped} skipped "
                f"({summary.status.value}, {summary.duration:.2f}s)")
    return summary
