"""
Streaming support: the full-load vs streaming decision and bounded file I/O.

Streaming keeps only the current row (plus a small read-ahead buffer) in
memory, making it possible to import files larger than available RAM.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Iterable, Iterator, Optional, TypeVar

from spreadsheet_importer.config_models import DEFAULT_STREAMING_THRESHOLD, StreamingMode
from spreadsheet_importer.errors import UnreadableFile

logger = logging.getLogger(__name__)

T = TypeVar("T")

_END = object()


def select_streaming(
    size: Optional[int],
    use_streaming: StreamingMode = StreamingMode.AUTO,
    threshold: int = DEFAULT_STREAMING_THRESHOLD,
) -> bool:
    """Decide whether a file should be streamed.

    An explicit ON/OFF always wins. AUTO streams files strictly larger than
    ``threshold`` bytes; an unknown size counts as 0.
    """
    if use_streaming is StreamingMode.ON:
        return True
    if use_streaming is StreamingMode.OFF:
        return False
    return (size or 0) > threshold


def describe_mode(size: Optional[int], streaming: bool, threshold: int) -> str:
    size_mb = (size or 0) / (1024 * 1024)
    limit_mb = threshold / (1024 * 1024)
    mode = "streaming" if streaming else "full-load"
    return f"{mode} mode (file {size_mb:.2f} MB, threshold {limit_mb:.2f} MB)"


def call_with_timeout(func: Callable[..., T], timeout: Optional[float], what: str, *args) -> T:
    """Run a blocking file operation, giving up after ``timeout`` seconds.

    Raises:
        UnreadableFile: if the operation does not finish in time
    """
    if timeout is None:
        return func(*args)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="import-io")
    try:
        future = executor.submit(func, *args)
        return future.result(timeout=timeout)
    except FuturesTimeoutError:
        raise UnreadableFile(f"Timed out after {timeout}s while {what}")  # noqa: B904
    finally:
        # a hung read keeps its worker thread; do not wait for it
        executor.shutdown(wait=False)


def iter_with_timeout(
    rows: Iterable[T],
    timeout: float,
    buffer_size: int = 256,
) -> Iterator[T]:
    """Pull from ``rows`` on a reader thread, waiting at most ``timeout`` per item.

    The reader thread owns the underlying cursor for its whole life; it stops
    and closes the cursor when the consumer stops early.

    Raises:
        UnreadableFile: if no row arrives within ``timeout`` seconds
    """
    buffer: "queue.Queue" = queue.Queue(maxsize=buffer_size)
    stop = threading.Event()

    def offer(item) -> bool:
        while not stop.is_set():
            try:
                buffer.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def produce():
        iterator = iter(rows)
        try:
            for item in iterator:
                if not offer((item, None)):
                    break
            else:
                offer((_END, None))
        except Exception as e:
            offer((_END, e))
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

    reader = threading.Thread(target=produce, name="import-row-reader", daemon=True)
    reader.start()
    try:
        while True:
            try:
                item, error = buffer.get(timeout=timeout)
            except queue.Empty:
                raise UnreadableFile(f"Timed out after {timeout}s waiting for the next row")  # noqa: B904
            if item is _END:
                if error is not None:
                    raise error
                return
            yield item
    finally:
        stop.set()
