"""Tests for batching, row limits, cancellation and aborts in the driver."""

import threading
from contextlib import contextmanager

import pytest

from spreadsheet_importer.config_models import ImportOptions
from spreadsheet_importer.driver import ImportDriver
from spreadsheet_importer.errors import FatalProcessingError, UnreadableFile, ValidationFailed
from spreadsheet_importer.mapping import build_explicit_map
from spreadsheet_importer.models import ErrorKind, RawRow, RowOutcome, RunStatus
from spreadsheet_importer.observability import EventType, ObservabilityHook, ObservabilityManager

HEADER_MAP = build_explicit_map({"name": 0, "email": 1}, {"name", "email"})


def data_rows(count, start=1):
    return [RawRow(n, (f"user{n}", f"user{n}@x.com")) for n in range(start, start + count)]


class Recorder:
    """Record callback that remembers what it saw."""

    def __init__(self, fail_on=(), fatal_on=None, cancel_on=None, event=None):
        self.seen = []
        self.fail_on = set(fail_on)
        self.fatal_on = fatal_on
        self.cancel_on = cancel_on
        self.event = event

    def __call__(self, record, row_number, options):
        self.seen.append(row_number)
        if row_number == self.cancel_on:
            self.event.set()
        if row_number == self.fatal_on:
            raise FatalProcessingError("database went away")
        if row_number in self.fail_on:
            raise ValidationFailed("email", "Enter a valid email address.")
        return None


class EventCollector(ObservabilityHook):
    def __init__(self):
        self.events = []

    def on_event(self, event):
        self.events.append(event)


class FakeTransaction:
    """Counts batch commits and rollbacks."""

    def __init__(self, fail_commit_on=None):
        self.commits = []
        self.rollbacks = 0
        self.fail_commit_on = fail_commit_on
        self._batch = 0

    @contextmanager
    def __call__(self):
        self._batch += 1
        try:
            yield
        except BaseException:
            self.rollbacks += 1
            raise
        if self._batch == self.fail_commit_on:
            raise RuntimeError("deadlock detected")
        self.commits.append(self._batch)


def test_all_rows_processed_in_order():
    callback = Recorder(fail_on={3})
    summary = ImportDriver(ImportOptions(), callback).run(data_rows(5), HEADER_MAP)

    assert callback.seen == [1, 2, 3, 4, 5]
    assert summary.processed == 5
    assert summary.succeeded == 4
    assert summary.failed == 1
    assert summary.failures[0].row_number == 3
    assert summary.failures[0].field == "email"
    assert summary.failures[0].error_kind is ErrorKind.VALIDATION_FAILED
    assert summary.status is RunStatus.COMPLETED


def test_record_contains_mapped_fields():
    records = []
    driver = ImportDriver(ImportOptions(), lambda record, n, options: records.append(record))
    driver.run(data_rows(1), HEADER_MAP)
    assert records == [{"name": "user1", "email": "user1@x.com"}]


def test_options_are_passed_to_callback():
    options = ImportOptions(extra={"tenant": "acme"})
    seen = []
    ImportDriver(options, lambda record, n, opts: seen.append(opts.get("tenant"))).run(data_rows(2), HEADER_MAP)
    assert seen == ["acme", "acme"]


def test_batches_commit_per_chunk():
    transaction = FakeTransaction()
    summary = ImportDriver(
        ImportOptions(chunk_size=2), Recorder(), transaction=transaction,
    ).run(data_rows(5), HEADER_MAP)

    assert summary.processed == 5
    assert transaction.commits == [1, 2, 3]


def test_max_rows_truncates_when_more_rows_exist():
    callback = Recorder()
    summary = ImportDriver(ImportOptions(max_rows=3, chunk_size=2), callback).run(data_rows(10), HEADER_MAP)

    assert callback.seen == [1, 2, 3]
    assert summary.processed == 3
    assert summary.truncated is True
    assert summary.status is RunStatus.TRUNCATED


def test_max_rows_equal_to_row_count_is_not_truncated():
    summary = ImportDriver(ImportOptions(max_rows=4), Recorder()).run(data_rows(4), HEADER_MAP)
    assert summary.processed == 4
    assert summary.truncated is False


def test_max_rows_counts_failed_rows():
    summary = ImportDriver(ImportOptions(max_rows=2), Recorder(fail_on={1})).run(data_rows(5), HEADER_MAP)
    assert summary.processed == 2
    assert summary.failed == 1
    assert summary.truncated is True


def test_cancel_before_start_processes_nothing():
    event = threading.Event()
    event.set()
    callback = Recorder()
    summary = ImportDriver(ImportOptions(), callback, cancel_event=event).run(data_rows(3), HEADER_MAP)

    assert callback.seen == []
    assert summary.cancelled is True
    assert summary.processed == 0


def test_cancel_mid_batch_keeps_processed_rows():
    event = threading.Event()
    transaction = FakeTransaction()
    callback = Recorder(cancel_on=3, event=event)
    summary = ImportDriver(
        ImportOptions(chunk_size=10), callback, cancel_event=event, transaction=transaction,
    ).run(data_rows(8), HEADER_MAP)

    assert callback.seen == [1, 2, 3]
    assert summary.processed == 3
    assert summary.status is RunStatus.CANCELLED
    assert transaction.commits == [1]
    assert transaction.rollbacks == 0


def test_fatal_error_aborts_run():
    callback = Recorder(fatal_on=3)
    summary = ImportDriver(ImportOptions(chunk_size=2), callback).run(data_rows(6), HEADER_MAP)

    assert callback.seen == [1, 2, 3]
    assert summary.aborted is True
    assert summary.status is RunStatus.ABORTED
    assert summary.processed == 2
    assert summary.failed == 0
    assert "Row 3" in summary.fatal_error
    assert "database went away" in summary.fatal_error


def test_fatal_error_rolls_back_batch():
    transaction = FakeTransaction()
    ImportDriver(
        ImportOptions(chunk_size=2), Recorder(fatal_on=3), transaction=transaction,
    ).run(data_rows(6), HEADER_MAP)
    assert transaction.commits == [1]
    assert transaction.rollbacks == 1


def test_commit_failure_aborts_run():
    transaction = FakeTransaction(fail_commit_on=2)
    summary = ImportDriver(
        ImportOptions(chunk_size=2), Recorder(), transaction=transaction,
    ).run(data_rows(6), HEADER_MAP)

    assert summary.aborted is True
    assert "Batch 2 could not be committed" in summary.fatal_error
    assert transaction.commits == [1]


def test_rolled_back_rows_are_not_counted():
    transaction = FakeTransaction()
    callback = Recorder(fatal_on=4)
    summary = ImportDriver(
        ImportOptions(chunk_size=2), callback, transaction=transaction,
    ).run(data_rows(6), HEADER_MAP)

    # row 3 succeeded in the callback but its batch was rolled back
    assert callback.seen == [1, 2, 3, 4]
    assert transaction.commits == [1]
    assert transaction.rollbacks == 1
    assert summary.aborted is True
    assert summary.succeeded == 2
    assert summary.processed == 2


def test_rows_of_uncommitted_batch_are_not_counted():
    transaction = FakeTransaction(fail_commit_on=2)
    callback = Recorder(fail_on={4})
    summary = ImportDriver(
        ImportOptions(chunk_size=2), callback, transaction=transaction,
    ).run(data_rows(6), HEADER_MAP)

    assert callback.seen == [1, 2, 3, 4]
    assert summary.succeeded == 2
    assert summary.failed == 0
    assert summary.processed == 2
    assert summary.failures == ()


def test_fatal_error_without_transaction_counts_processed_rows():
    summary = ImportDriver(ImportOptions(chunk_size=2), Recorder(fatal_on=4)).run(data_rows(6), HEADER_MAP)

    assert summary.aborted is True
    assert summary.succeeded == 3
    assert summary.processed == 3


def test_read_error_mid_stream_aborts_run():
    def rows():
        yield from data_rows(2)
        raise UnreadableFile("Timed out after 1.0s waiting for the next row")

    summary = ImportDriver(ImportOptions(), Recorder()).run(rows(), HEADER_MAP)
    assert summary.aborted is True
    assert summary.processed == 2
    assert "UnreadableFile" in summary.fatal_error


def test_corrupt_row_is_a_row_failure():
    rows = data_rows(1) + [RawRow(2, (), error="malformed record")] + data_rows(1, start=3)
    callback = Recorder()
    summary = ImportDriver(ImportOptions(), callback).run(rows, HEADER_MAP)

    assert callback.seen == [1, 3]
    assert summary.processed == 3
    assert summary.failures[0].error_kind is ErrorKind.CORRUPT_ROW
    assert summary.failures[0].row_number == 2


def test_returned_outcomes_are_counted():
    def callback(record, row_number, options):
        if row_number == 2:
            return RowOutcome.skipped_duplicate("already imported")
        if row_number == 3:
            return RowOutcome.failed(ErrorKind.INVALID_REFERENCE, "no such team", field="team")
        return RowOutcome.success()

    summary = ImportDriver(ImportOptions(), callback).run(data_rows(3), HEADER_MAP)
    assert (summary.succeeded, summary.skipped, summary.failed) == (1, 1, 1)
    assert summary.failures[0].field == "team"


def test_persistence_errors_are_translated():
    class IntegrityError(Exception):
        pass

    def callback(record, row_number, options):
        raise IntegrityError("UNIQUE constraint failed: people.email")

    summary = ImportDriver(ImportOptions(), callback).run(data_rows(1), HEADER_MAP)
    failure = summary.failures[0]
    assert failure.error_kind is ErrorKind.DUPLICATE_VALUE
    assert failure.field == "email"


def test_events_are_emitted():
    hook = EventCollector()
    ImportDriver(
        ImportOptions(chunk_size=2), Recorder(fail_on={1}),
        observability=ObservabilityManager([hook]), file_name="people.csv",
    ).run(data_rows(3), HEADER_MAP)

    types = [e.event_type for e in hook.events]
    assert types.count(EventType.BATCH_COMPLETE) == 2
    assert types.count(EventType.ROW_FAILED) == 1
    assert hook.events[0].file_name == "people.csv"


def test_summary_details_are_copied():
    summary = ImportDriver(ImportOptions(), Recorder()).run(
        data_rows(1), HEADER_MAP, header=("name", "email"), sheet_name="People", streaming=True,
    )
    assert summary.header == ("name", "email")
    assert summary.sheet_name == "People"
    assert summary.streaming is True


def test_failing_hook_does_not_stop_run():
    class Broken(ObservabilityHook):
        def on_event(self, event):
            raise RuntimeError("hook bug")

    summary = ImportDriver(
        ImportOptions(), Recorder(fail_on={1}), observability=ObservabilityManager([Broken()]),
    ).run(data_rows(2), HEADER_MAP)
    assert summary.processed == 2


@pytest.mark.parametrize("chunk_size", [1, 3, 1000])
def test_chunk_size_does_not_change_outcomes(chunk_size):
    summary = ImportDriver(ImportOptions(chunk_size=chunk_size), Recorder(fail_on={2, 7})).run(
        data_rows(9), HEADER_MAP,
    )
    assert summary.processed == 9
    assert [f.row_number for f in summary.failures] == [2, 7]
