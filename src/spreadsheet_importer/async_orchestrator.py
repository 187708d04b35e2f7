"""
Async orchestration for running imports from an event loop.

An import is blocking work (file reads, the caller's persistence), so it runs
in an executor thread. Cancelling the awaiting task sets the run's cancel
event; the worker stops before its next row and keeps what it committed.
"""

import asyncio
import functools
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

from spreadsheet_importer.config_models import ImportOptions
from spreadsheet_importer.driver import RecordCallback
from spreadsheet_importer.errors import SpreadsheetImportError
from spreadsheet_importer.models import ImportSummary
from spreadsheet_importer.orchestrator import import_file

logger = logging.getLogger(__name__)


async def import_file_async(
    source: Union[str, Path, BinaryIO],
    options: Optional[ImportOptions],
    per_record: RecordCallback,
    cancel_event: Optional[threading.Event] = None,
    **kwargs: Any,
) -> ImportSummary:
    """Run ``import_file`` in the default executor.

    Accepts the same keyword arguments as ``import_file``.

    Example:
        >>> summary = await import_file_async("people.xlsx", ImportOptions(), save_person,
        ...                                   schema=schema)
    """
    cancel_event = cancel_event if cancel_event is not None else threading.Event()
    loop = asyncio.get_running_loop()
    call = functools.partial(import_file, source, options, per_record,
                             cancel_event=cancel_event, **kwargs)
    try:
        return await loop.run_in_executor(None, call)
    except asyncio.CancelledError:
        logger.warning(f"Import of {source} cancelled by caller")
        cancel_event.set()
        raise


@dataclass
class ImportJob:
    """One file to import in a batch of concurrent runs."""
    source: Union[str, Path, BinaryIO]
    per_record: RecordCallback
    options: Optional[ImportOptions] = None
    name: Optional[str] = None
    kwargs: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or str(self.source)


async def import_files_async(
    jobs: List[ImportJob],
    max_concurrent: int = 4,
    fail_fast: bool = False,
) -> Tuple[Dict[str, ImportSummary], Dict[str, str]]:
    """Import several files concurrently.

    Runs are independent: each has its own options, callback and cancel
    event. Pre-flight errors are collected per job instead of raised.

    Args:
        jobs: Files to import
        max_concurrent: Maximum number of runs in flight
        fail_fast: Cancel the remaining runs after the first pre-flight error

    Returns:
        Tuple: (summaries by job label, error messages by job label)
    """
    summaries: Dict[str, ImportSummary] = {}
    errors: Dict[str, str] = {}
    semaphore = asyncio.Semaphore(max_concurrent)

    async def run_one(job: ImportJob) -> bool:
        async with semaphore:
            try:
                summary = await import_file_async(job.source, job.options, job.per_record, **job.kwargs)
            except SpreadsheetImportError as e:
                logger.error(f"Import of {job.label} failed: {e}")
                errors[job.label] = f"{type(e).__name__}: {e}"
                return False
            summaries[job.label] = summary
            return True

    tasks = [asyncio.ensure_future(run_one(job)) for job in jobs]
    if fail_fast:
        try:
            for next_done in asyncio.as_completed(tasks):
                if not await next_done:
                    logger.warning("Stopping remaining imports due to fail_fast")
                    break
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
    else:
        await asyncio.gather(*tasks)

    return summaries, errors


def run_async_import(
    jobs: List[ImportJob],
    max_concurrent: int = 4,
    fail_fast: bool = False,
) -> Tuple[Dict[str, ImportSummary], Dict[str, str]]:
    """Synchronous wrapper around ``import_files_async``."""
    return asyncio.run(import_files_async(jobs, max_concurrent=max_concurrent, fail_fast=fail_fast))
