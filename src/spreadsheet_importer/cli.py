"""
Command-line interface for the spreadsheet importer.

The CLI validates a file against an importer schema without persisting
anything, which makes it a dry run of what a host job would import.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from spreadsheet_importer.config_models import ErrorSignatureTable, ImporterSchema, ImportOptions, load_json
from spreadsheet_importer.csv_writer import write_failed_rows
from spreadsheet_importer.errors import SpreadsheetImportError
from spreadsheet_importer.models import RunStatus
from spreadsheet_importer.observability import LoggingHook, ObservabilityManager
from spreadsheet_importer.orchestrator import import_file
from spreadsheet_importer.sources import list_sheets, open_file
from spreadsheet_importer.validators import validating_callback

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spreadsheet-import",
        description="Validate a CSV/TSV/XLSX file against an importer schema",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate the first sheet of a workbook
  spreadsheet-import --schema people.json people.xlsx

  # Second sheet, header on the third row, write rejected rows
  spreadsheet-import --schema people.json --sheet 1 --header-offset 2 \\
      --failed-rows rejected.csv people.xlsx

  # Show the sheets of a workbook
  spreadsheet-import --list-sheets people.xlsx
        """
    )
    parser.add_argument("input_file", type=Path, help="Input file (.csv, .tsv, .xlsx)")
    parser.add_argument("--schema", type=Path, help="Importer schema JSON file")
    parser.add_argument("--options", type=Path, help="Import options JSON file")
    parser.add_argument("--sheet", type=int, help="Zero-based sheet index")
    parser.add_argument("--header-offset", type=int, help="Rows to skip before the header row")
    parser.add_argument("--max-rows", type=int, help="Stop after this many rows")
    parser.add_argument("--chunk-size", type=int, help="Rows per batch")
    parser.add_argument("--streaming", choices=["on", "off", "auto"],
                        help="Stream rows instead of loading the sheet (default: auto by size)")
    parser.add_argument("--failed-rows", type=Path,
                        help="Write failed rows to this .csv or .xlsx file")
    parser.add_argument("--signatures", type=Path, help="Error signature table JSON file")
    parser.add_argument("--list-sheets", action="store_true",
                        help="List the sheets of the file and exit")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    return parser


def load_options(args: argparse.Namespace) -> ImportOptions:
    """Options file values, overridden by command-line flags."""
    values = load_json(args.options) if args.options else {}
    overrides = {
        "active_sheet": args.sheet,
        "header_offset": args.header_offset,
        "max_rows": args.max_rows,
        "chunk_size": args.chunk_size,
        "use_streaming": args.streaming,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ImportOptions.from_dict(values)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point.

    Returns:
        Exit code: 0 = all rows valid, 2 = some rows failed or the run stopped
        early, 1 = the file could not be imported
    """
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        if args.list_sheets:
            handle = open_file(args.input_file)
            sheets = list_sheets(handle)
            if not sheets:
                logger.info(f"{handle.name} is a flat {handle.file_format.value} file (one sheet)")
            for sheet in sheets:
                rows = f", {sheet.row_count:,} rows" if sheet.row_count is not None else ""
                logger.info(f"  [{sheet.index}] {sheet.name}{rows}")
            return 0

        if args.schema is None:
            logger.error("--schema is required unless --list-sheets is given")
            return 1

        schema = ImporterSchema.from_json_file(args.schema)
        options = load_options(args)
        signatures = ErrorSignatureTable.from_json_file(args.signatures) if args.signatures else None

        summary = import_file(
            args.input_file,
            options,
            validating_callback(schema),
            schema=schema,
            signatures=signatures,
            observability=ObservabilityManager([LoggingHook(log_metrics=False)]),
        )
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1
    except SpreadsheetImportError as e:
        logger.error(f"Cannot import {args.input_file}: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1

    logger.info("=" * 80)
    logger.info("IMPORT COMPLETE" if summary.status is RunStatus.COMPLETED else f"IMPORT {summary.status.name}")
    logger.info("=" * 80)
    if summary.sheet_name:
        logger.info(f"Sheet: {summary.sheet_name}")
    logger.info(f"Mode: {'streaming' if summary.streaming else 'full-load'}")
    logger.info(f"Processed: {summary.processed:,}")
    logger.info(f"Succeeded: {summary.succeeded:,}")
    if summary.skipped:
        logger.info(f"Skipped duplicates: {summary.skipped:,}")
    if summary.failed:
        logger.warning(f"Failed: {summary.failed:,}")
        for failure in summary.failures[:20]:
            field_info = f" [{failure.field}]" if failure.field else ""
            logger.warning(f"  row {failure.row_number}{field_info}: {failure.message}")
        if len(summary.failures) > 20:
            logger.warning(f"  ... {len(summary.failures) - 20} more")
    logger.info(f"Duration: {summary.duration:.2f}s ({summary.rows_per_second:.0f} rows/sec)")

    if args.failed_rows and summary.failures:
        write_failed_rows(summary, args.failed_rows)

    if summary.aborted:
        logger.error(f"Run aborted: {summary.fatal_error}")
        return 1
    if summary.failed or summary.truncated or summary.cancelled:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
