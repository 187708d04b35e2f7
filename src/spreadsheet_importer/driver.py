"""
Import driver: feeds mapped rows to the caller's record callback in batches.

Rows are processed strictly in file order on the calling thread. A batch is
only a grouping for the optional ``transaction`` context; outcomes of rows in
the same batch are independent of each other.
"""

import logging
import threading
from contextlib import nullcontext
from typing import Callable, ContextManager, Iterable, Iterator, List, Optional, Tuple

from spreadsheet_importer.config_models import ImportOptions
from spreadsheet_importer.errors import (
    FatalProcessingError,
    SpreadsheetImportError,
    ValidationFailed,
)
from spreadsheet_importer.failures import ErrorTranslator, FailureCollector
from spreadsheet_importer.mapping import apply_map
from spreadsheet_importer.models import (
    ErrorKind,
    HeaderMap,
    ImportSummary,
    MappedRecord,
    OutcomeKind,
    RawRow,
    RowOutcome,
)
from spreadsheet_importer.observability import EventType, ObservabilityManager

logger = logging.getLogger(__name__)

RecordCallback = Callable[[MappedRecord, int, ImportOptions], Optional[RowOutcome]]


class _Cancelled(Exception):
    pass


class ImportDriver:
    """Runs one import over a row sequence.

    Args:
        options: Run options (chunk size, row limit, pass-through values)
        per_record: ``callback(record, row_number, options)``. Return a
            RowOutcome (None means success), raise ValidationFailed to reject
            the row, or raise FatalProcessingError to abort the run. Any other
            exception is classified through the error signature table.
        collector: Outcome collector (a fresh one by default)
        translator: Persistence error translator (packaged table by default)
        cancel_event: Checked before every row; once set the run stops
        transaction: Factory for a context manager wrapped around each batch
        observability: Optional hook manager
    """

    def __init__(
        self,
        options: ImportOptions,
        per_record: RecordCallback,
        collector: Optional[FailureCollector] = None,
        translator: Optional[ErrorTranslator] = None,
        cancel_event: Optional[threading.Event] = None,
        transaction: Optional[Callable[[], ContextManager]] = None,
        observability: Optional[ObservabilityManager] = None,
        file_name: Optional[str] = None,
    ):
        self.options = options
        self.per_record = per_record
        self.collector = collector if collector is not None else FailureCollector()
        self.translator = translator if translator is not None else ErrorTranslator()
        self.cancel_event = cancel_event
        self.transaction = transaction
        self.observability = observability or ObservabilityManager()
        self.file_name = file_name
        self._read_error: Optional[SpreadsheetImportError] = None

    def _is_cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _check_cancelled(self) -> None:
        if self._is_cancelled():
            raise _Cancelled()

    def _remaining(self) -> Optional[int]:
        if self.options.max_rows is None:
            return None
        return self.options.max_rows - self.collector.processed

    def _next_batch(self, rows: Iterator[RawRow]) -> List[RawRow]:
        size = self.options.chunk_size
        remaining = self._remaining()
        if remaining is not None:
            size = min(size, remaining)
        batch = []
        while len(batch) < size:
            self._check_cancelled()
            try:
                batch.append(next(rows))
            except StopIteration:
                break
            except SpreadsheetImportError as e:
                # rows read before the failure are still imported
                self._read_error = e
                break
        return batch

    @staticmethod
    def _has_more(rows: Iterator[RawRow]) -> bool:
        try:
            next(rows)
        except StopIteration:
            return False
        except SpreadsheetImportError as e:
            logger.warning(f"Could not read past the row limit: {e}")
        return True

    def process_row(self, row: RawRow, header_map: HeaderMap) -> RowOutcome:
        """Import a single row and return its outcome.

        The outcome is not recorded here; ``_process_batch`` records a batch's
        outcomes once its transaction has committed.

        Raises:
            FatalProcessingError: if the callback signals an unrecoverable error
        """
        if row.error is not None:
            outcome = RowOutcome.failed(ErrorKind.CORRUPT_ROW, row.error)
        else:
            record = apply_map(row, header_map)
            try:
                outcome = self.per_record(record, row.number, self.options) or RowOutcome.success()
            except ValidationFailed as e:
                outcome = RowOutcome.failed(ErrorKind.VALIDATION_FAILED, e.message, field=e.field)
            except FatalProcessingError as e:
                raise FatalProcessingError(f"Row {row.number}: {e}") from e
            except Exception as e:
                outcome = self.translator.outcome_for(e)

        if outcome.kind is OutcomeKind.FAILED:
            field_info = f" [{outcome.field}]" if outcome.field else ""
            logger.warning(f"Row {row.number} failed{field_info}: "
                           f"{outcome.error_kind.value}: {outcome.message}")
            self.observability.emit_event(
                EventType.ROW_FAILED,
                file_name=self.file_name,
                details={"row": row.number, "kind": outcome.error_kind.value},
            )
        return outcome

    def _record(self, pending: List[Tuple[RawRow, RowOutcome]]) -> None:
        for row, outcome in pending:
            self.collector.record(row.number, outcome, row.cells)

    def _process_batch(self, batch: List[RawRow], header_map: HeaderMap, batch_number: int) -> None:
        context = self.transaction() if self.transaction is not None else nullcontext()
        pending: List[Tuple[RawRow, RowOutcome]] = []
        stopped = False
        try:
            with context:
                for row in batch:
                    # rows already processed in this batch still commit
                    if self._is_cancelled():
                        stopped = True
                        break
                    pending.append((row, self.process_row(row, header_map)))
        except Exception as e:
            if self.transaction is None:
                # no transaction to roll back, the callback's writes stand
                self._record(pending)
            elif pending:
                logger.error(f"Batch {batch_number} rolled back, "
                             f"{len(pending)} processed row(s) not counted")
            if isinstance(e, FatalProcessingError):
                raise
            raise FatalProcessingError(f"Batch {batch_number} could not be committed: {e}") from e

        self._record(pending)
        if stopped:
            raise _Cancelled()

        logger.debug(f"Batch {batch_number} done: rows {batch[0].number}-{batch[-1].number}, "
                     f"{self.collector.processed} processed so far")
        self.observability.emit_event(
            EventType.BATCH_COMPLETE,
            file_name=self.file_name,
            details={"batch": batch_number, "rows": len(batch)},
        )

    def run(self, rows: Iterable[RawRow], header_map: HeaderMap, **details) -> ImportSummary:
        """Process every row after the header and return the run summary.

        ``details`` are copied onto the summary (sheet name, header, mode).
        The summary is produced even when the run is cancelled or aborted.
        """
        iterator = iter(rows)
        truncated = False
        cancelled = False
        fatal_error = None
        batch_number = 0

        try:
            while True:
                remaining = self._remaining()
                if remaining is not None and remaining <= 0:
                    truncated = self._has_more(iterator)
                    if truncated:
                        logger.warning(f"Row limit {self.options.max_rows} reached, remaining rows not imported")
                    break
                batch = self._next_batch(iterator)
                if batch:
                    batch_number += 1
                    self._process_batch(batch, header_map, batch_number)
                if self._read_error is not None:
                    raise self._read_error
                if not batch:
                    break
        except _Cancelled:
            cancelled = True
            logger.warning(f"Import cancelled after {self.collector.processed} row(s)")
        except FatalProcessingError as e:
            fatal_error = str(e)
            logger.error(f"Import aborted after {self.collector.processed} row(s): {fatal_error}")
        except SpreadsheetImportError as e:
            fatal_error = f"{type(e).__name__}: {e}"
            logger.error(f"Import aborted after {self.collector.processed} row(s): {fatal_error}")
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

        self.collector.finish(
            truncated=truncated,
            cancelled=cancelled,
            fatal_error=fatal_error,
            **details,
        )
        return self.collector.summarize()
