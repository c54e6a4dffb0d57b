# ========================
# src/streaming/extraction.py
# ========================

"""
Result Extraction Module

Collects parsed records into headers and rows, and provides the simple
whole-file load used for files below the streaming threshold.
"""

import csv
import gzip
import logging
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Union

from .boundary import ensure_newline_termination
from .chunk_source import GZIP_SUFFIX, is_gzip_file
from .exceptions import DecompressionError, IngestionError, RecordParseError
from .feeder import PARSE_ERROR_PREFIX
from .parser import CSVRecordParser, ParserConfig, Record, strip_bom

logger = logging.getLogger(__name__)


@dataclass
class ParsedTable:
    """Headers and rows of a fully parsed file."""

    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict:
        return {'headers': list(self.headers), 'rows': [list(r) for r in self.rows]}


def extract_row(record: Record) -> List[str]:
    """Extract a row of strings from a parsed record, missing values become ''."""
    return [value if value is not None else '' for value in record]


class TableBuilder:
    """
    Record consumer that splits a record stream into headers and rows.

    The first non-blank record becomes the headers. Blank records (no
    fields at all) are skipped wherever they appear.
    """

    def __init__(self, max_rows: Optional[int] = None):
        """
        Args:
            max_rows (int): Stop accepting data rows after this many
        """
        self.max_rows = max_rows
        self.headers: List[str] = []
        self.rows: List[List[str]] = []
        self._has_headers = False

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_full(self) -> bool:
        return self.max_rows is not None and len(self.rows) >= self.max_rows

    def __call__(self, record: Record) -> None:
        row = extract_row(record)
        if not row:
            return
        if not self._has_headers:
            self.headers = row
            self._has_headers = True
        elif not self.is_full:
            self.rows.append(row)

    def to_table(self) -> ParsedTable:
        return ParsedTable(headers=self.headers, rows=self.rows)


def read_file_bytes(file_path: Union[str, Path],
                    max_bytes: Optional[int] = None,
                    gzip_suffix: str = GZIP_SUFFIX,
                    terminate: bool = True) -> bytes:
    """
    Read a whole file, or its first max_bytes, decompressing gzip files.

    Args:
        file_path (str): Path to the file
        max_bytes (int): Upper bound on the (decompressed) bytes returned
        gzip_suffix (str): Suffix that marks gzip files
        terminate (bool): Append a newline when the data lacks a trailing one

    Returns:
        bytes: File content
    """
    opener = gzip.open if is_gzip_file(file_path, gzip_suffix) else open
    try:
        with opener(file_path, 'rb') as f:
            data = f.read() if max_bytes is None else f.read(max_bytes)
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        raise DecompressionError(f"Corrupt gzip stream in '{file_path}': {e}") from e

    return ensure_newline_termination(data) if terminate else data


def build_table(records: Iterable[Record], max_rows: Optional[int] = None) -> ParsedTable:
    """Extract headers and data rows from parsed records."""
    builder = TableBuilder(max_rows=max_rows)
    for record in records:
        builder(record)
        if builder.is_full:
            break
    return builder.to_table()


def parse_csv_bytes(data: bytes,
                    parser_config: Optional[ParserConfig] = None,
                    max_rows: Optional[int] = None) -> ParsedTable:
    """
    Parse a block of complete records into a table.

    Raises:
        RecordParseError: If the parser rejects the data
    """
    parser = CSVRecordParser(parser_config)
    if parser.config.detect_bom:
        data = strip_bom(data)
    try:
        return build_table(parser.parse(data), max_rows=max_rows)
    except (csv.Error, UnicodeDecodeError) as e:
        raise RecordParseError(f"{PARSE_ERROR_PREFIX}{e}") from e


def parse_csv_file(file_path: Union[str, Path],
                   parser_config: Optional[ParserConfig] = None,
                   gzip_suffix: str = GZIP_SUFFIX) -> ParsedTable:
    """Read and parse a whole file (plain or gzip) into a table."""
    data = read_file_bytes(file_path, gzip_suffix=gzip_suffix)
    logger.debug(f"Read {len(data):,} bytes from {file_path}")
    return parse_csv_bytes(data, parser_config)


def commit_table(model, table: ParsedTable) -> None:
    """Replace the model content with a parsed table in one bulk handoff."""
    model.clear()
    model.set_headers(table.headers)
    model.set_data(table.rows)
    model.normalize()  # Ensure all rows have the same number of columns


def load_csv(file_path: Union[str, Path],
             model,
             parser_config: Optional[ParserConfig] = None,
             gzip_suffix: str = GZIP_SUFFIX) -> ParsedTable:
    """
    Load a whole file into the model (supports both regular and gzipped files).

    The model is only touched after the file parsed successfully.

    Args:
        file_path (str): Path to the file
        model (TableModel): Destination model
        parser_config (ParserConfig): Parser settings
        gzip_suffix (str): Suffix that marks gzip files

    Returns:
        ParsedTable: The parsed content now held by the model
    """
    try:
        table = parse_csv_file(file_path, parser_config, gzip_suffix)
    except (OSError, IngestionError):
        raise
    except Exception as e:
        raise IngestionError(f"An error occurred while loading the CSV file: {e}") from e

    commit_table(model, table)
    logger.info(f"Loaded {table.row_count:,} rows from {file_path}")
    return table
