# ========================
# src/streaming/parser.py
# ========================

"""
Record Parser Module

Turns a byte block made only of complete records into a lazy sequence of
records, using the standard csv module for the quoting grammar.
"""

import csv
import io
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)

UTF8_BOM = b'\xef\xbb\xbf'

Record = List[Optional[str]]


def strip_bom(data: bytes) -> bytes:
    """Remove a leading UTF-8 byte order mark."""
    if data.startswith(UTF8_BOM):
        return data[len(UTF8_BOM):]
    return data


@dataclass(frozen=True)
class ParserConfig:
    """
    Settings for the record parser.

    Attributes:
        delimiter: Field separator
        quote: Quote character
        escape: Escape character; equal to quote means quotes are doubled
        encoding: Character encoding of the file
        trim_whitespace: Strip surrounding whitespace from every field
        skip_empty_lines: Drop records whose fields are all empty
        strict_quoting: Raise on malformed quoting instead of repairing
        detect_bom: Drop a leading UTF-8 byte order mark
        max_field_size: Largest accepted field, in characters
        null_value: Field text that is reported as a missing value
    """

    delimiter: str = ','
    quote: str = '"'
    escape: str = '"'
    encoding: str = 'utf-8'
    trim_whitespace: bool = False
    skip_empty_lines: bool = False
    strict_quoting: bool = True
    detect_bom: bool = True
    max_field_size: int = 1024 * 1024
    null_value: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> 'ParserConfig':
        """Create parser settings from the application Config."""
        return cls(
            delimiter=config.DELIMITER,
            quote=config.QUOTE,
            escape=config.ESCAPE,
            encoding=config.ENCODING,
            trim_whitespace=config.TRIM_WHITESPACE,
            skip_empty_lines=config.SKIP_EMPTY_LINES,
            strict_quoting=config.STRICT_QUOTING,
            detect_bom=config.DETECT_BOM,
            max_field_size=config.MAX_FIELD_SIZE,
            null_value=config.NULL_VALUE_REPRESENTATION or None,
        )


class CSVRecordParser:
    """
    Parses byte blocks that are guaranteed to contain only complete records.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        """
        Initialize the parser.

        Args:
            config (ParserConfig): Parser settings, defaults to RFC 4180 style CSV
        """
        self.config = config or ParserConfig()
        self._dialect = self._build_dialect(self.config)

        # field_size_limit is process wide; only ever raise it
        if self.config.max_field_size > csv.field_size_limit():
            csv.field_size_limit(self.config.max_field_size)

    @staticmethod
    def _build_dialect(config: ParserConfig) -> dict:
        doublequote = config.escape == config.quote
        return {
            'delimiter': config.delimiter,
            'quotechar': config.quote,
            'escapechar': None if doublequote or not config.escape else config.escape,
            'doublequote': doublequote,
            'skipinitialspace': config.trim_whitespace,
            'strict': config.strict_quoting,
        }

    def parse(self, data: bytes) -> Iterator[Record]:
        """
        Lazily parse a block of complete records.

        Args:
            data (bytes): Encoded records

        Yields:
            list: One record per call, fields addressable by index

        Raises:
            csv.Error: Malformed record under strict quoting
            UnicodeDecodeError: Bytes not valid in the configured encoding
        """
        text = bytes(data).decode(self.config.encoding)
        reader = csv.reader(io.StringIO(text, newline=''), **self._dialect)

        for row in reader:
            if self.config.trim_whitespace:
                row = [field.strip() for field in row]
            if self.config.skip_empty_lines and row and all(field == '' for field in row):
                continue
            if self.config.null_value is not None:
                row = [None if field == self.config.null_value else field for field in row]
            yield row
