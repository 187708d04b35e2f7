"""
Delimited text source (csv, tsv).
"""

import csv
import io
import logging
from typing import Any, Iterator, Optional, Sequence, Tuple

from spreadsheet_importer.errors import UnreadableFile
from spreadsheet_importer.models import FileFormat
from spreadsheet_importer.sources.base_source import BaseRowSource

logger = logging.getLogger(__name__)


class CsvRowSource(BaseRowSource):
    """Rows of a delimited text file.

    Quoting is parsed strictly so that malformed records are reported as
    corrupt rows instead of being silently merged; the reader resumes at the
    next line.
    """

    @property
    def delimiter(self) -> str:
        if self.options.csv_delimiter is not None:
            return self.options.csv_delimiter
        return "\t" if self.handle.file_format is FileFormat.TSV else ","

    def _open_text(self):
        encoding = self.options.csv_encoding
        source = self.handle.source
        if isinstance(source, str):
            return open(source, 'r', encoding=encoding, newline='')
        source.seek(0)
        return io.TextIOWrapper(source, encoding=encoding, newline='')

    def _release(self, f) -> None:
        if isinstance(self.handle.source, str):
            f.close()
        else:
            # leave the caller's stream open
            f.detach()

    def iter_physical_rows(self) -> Iterator[Tuple[int, Optional[Sequence[Any]], Optional[str]]]:
        try:
            f = self._open_text()
        except OSError as e:
            raise UnreadableFile(f"Cannot open {self.handle.name}: {e}") from e

        try:
            reader = csv.reader(
                f,
                delimiter=self.delimiter,
                quotechar=self.options.csv_quotechar,
                strict=True,
            )
            while True:
                # a quoted cell may span lines; number the record by its first line
                number = reader.line_num
                try:
                    values = next(reader)
                except StopIteration:
                    break
                except csv.Error as e:
                    logger.warning(f"{self.handle.name}: malformed record ending at line {reader.line_num}: {e}")
                    yield number, None, f"malformed record ending at line {reader.line_num}: {e}"
                    continue
                except UnicodeDecodeError as e:
                    raise UnreadableFile(
                        f"{self.handle.name} is not valid {self.options.csv_encoding}: {e}"
                    ) from e
                yield number, values, None
        finally:
            self._release(f)
