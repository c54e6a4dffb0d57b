# ========================
# src/streaming/feeder.py
# ========================

"""
Streaming Record Feeder Module

Drives chunk-by-chunk ingestion: keeps the carry-over bytes between chunks,
hands each safe prefix to the record parser and relays every parsed record
to a consumer, one record per call.
"""

import csv
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .boundary import create_resolver, ensure_newline_termination
from .chunk_source import DEFAULT_CHUNK_SIZE, ChunkSource
from .exceptions import RecordParseError, RecordTooLargeError
from .parser import UTF8_BOM, CSVRecordParser, ParserConfig, Record

logger = logging.getLogger(__name__)

RecordConsumer = Callable[[Record], None]

PARSE_ERROR_PREFIX = "Failed to parse CSV content: "


class StreamingRecordFeeder:
    """
    Feeds byte chunks through the boundary resolver and the record parser.

    The carry buffer is private to the feeder; it is only mutated inside
    feed() and finish() and is never handed out.
    """

    def __init__(self,
                 parser: CSVRecordParser,
                 consumer: RecordConsumer,
                 resolver=None,
                 detect_bom: bool = True,
                 max_record_bytes: int = 0,
                 is_cancelled: Optional[Callable[[], bool]] = None):
        """
        Initialize the feeder.

        Args:
            parser (CSVRecordParser): Parser for blocks of complete records
            consumer (callable): Receives each parsed record in file order
            resolver: Boundary resolver, quote aware by default
            detect_bom (bool): Drop a UTF-8 byte order mark at the start of the stream
            max_record_bytes (int): Largest carry allowed without a boundary, 0 for no limit
            is_cancelled (callable): Checked after every record; stops delivery when True
        """
        if consumer is None:
            raise ValueError("Callback cannot be None")

        self.parser = parser
        self.consumer = consumer
        self.resolver = resolver or create_resolver(
            quote=parser.config.quote,
            escape=parser.config.escape,
            encoding=parser.config.encoding,
            delimiter=parser.config.delimiter,
            skip_initial_space=parser.config.trim_whitespace,
        )
        self.max_record_bytes = max_record_bytes
        self.is_cancelled = is_cancelled or (lambda: False)

        self.records_emitted = 0
        self.bytes_parsed = 0
        self._carry = bytearray()
        self._bom_pending = detect_bom
        self._finished = False

    @property
    def carry_size(self) -> int:
        return len(self._carry)

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: bytes) -> int:
        """
        Append a chunk and parse every complete record it closes.

        Args:
            chunk (bytes): Next block of raw bytes

        Returns:
            int: Number of records delivered to the consumer
        """
        if self._finished:
            raise RuntimeError("Feeder already finished")

        self._carry += chunk
        if self._bom_pending:
            if len(self._carry) < len(UTF8_BOM) and UTF8_BOM.startswith(bytes(self._carry)):
                return 0
            self._drop_bom()

        split = self.resolver.find_split(self._carry)
        if split == 0:
            if self.max_record_bytes and len(self._carry) > self.max_record_bytes:
                raise RecordTooLargeError(
                    f"Record exceeds the maximum length of {self.max_record_bytes:,} bytes"
                )
            return 0

        prefix = bytes(self._carry[:split])
        del self._carry[:split]
        return self._emit(prefix)

    def finish(self) -> int:
        """
        Flush the trailing carry, synthesizing a final terminator if needed.

        Returns:
            int: Number of records delivered to the consumer
        """
        if self._finished:
            raise RuntimeError("Feeder already finished")
        self._finished = True

        if self._bom_pending:
            self._drop_bom()
        if not self._carry:
            return 0

        remainder = ensure_newline_termination(bytes(self._carry))
        self._carry.clear()
        self.resolver.reset()
        return self._emit(remainder)

    def _drop_bom(self) -> None:
        self._bom_pending = False
        if self._carry.startswith(UTF8_BOM):
            del self._carry[:len(UTF8_BOM)]

    def _emit(self, data: bytes) -> int:
        """Parse one safe block and forward its records."""
        self.bytes_parsed += len(data)
        records = iter(self.parser.parse(data))
        count = 0

        while True:
            try:
                record = next(records)
            except StopIteration:
                break
            except (csv.Error, UnicodeDecodeError) as e:
                raise RecordParseError(f"{PARSE_ERROR_PREFIX}{e}") from e

            self.consumer(record)
            count += 1
            if self.is_cancelled():
                break

        self.records_emitted += count
        logger.debug(f"Parsed {len(data):,} bytes into {count} records")
        return count


def parse_file_with_callback(file_path: Union[str, Path],
                             callback: RecordConsumer,
                             chunk_size: int = DEFAULT_CHUNK_SIZE,
                             parser_config: Optional[ParserConfig] = None,
                             quote_aware: bool = True,
                             max_record_bytes: int = 0,
                             is_cancelled: Optional[Callable[[], bool]] = None,
                             gzip_suffix: str = '.gz') -> int:
    """
    Stream a delimited file through a callback without loading it into memory.

    Args:
        file_path (str): Path to the file, gzip compressed when it ends in gzip_suffix
        callback (callable): Invoked once for each parsed record
        chunk_size (int): Bytes read per chunk
        parser_config (ParserConfig): Parser settings
        quote_aware (bool): Refuse to split inside quoted fields
        max_record_bytes (int): Oversized-record guard, 0 for no limit
        is_cancelled (callable): Checked before each chunk read and after each record
        gzip_suffix (str): Suffix that marks gzip files

    Returns:
        int: Number of records delivered

    Raises:
        ValueError: If the callback is None or the chunk size is not positive
        RecordParseError: If any block fails to parse
    """
    if callback is None:
        raise ValueError("Callback cannot be None")
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive")

    parser = CSVRecordParser(parser_config)
    cancelled = is_cancelled or (lambda: False)
    feeder = StreamingRecordFeeder(
        parser,
        callback,
        resolver=create_resolver(
            quote_aware,
            quote=parser.config.quote,
            escape=parser.config.escape,
            encoding=parser.config.encoding,
            delimiter=parser.config.delimiter,
            skip_initial_space=parser.config.trim_whitespace,
        ),
        detect_bom=parser.config.detect_bom,
        max_record_bytes=max_record_bytes,
        is_cancelled=cancelled,
    )

    with ChunkSource(file_path, chunk_size, gzip_suffix) as source:
        buffer = bytearray(chunk_size)
        while not cancelled():
            count = source.read_chunk(buffer)
            if count == 0:
                feeder.finish()
                break
            feeder.feed(bytes(buffer[:count]))

    logger.debug(f"Streamed {feeder.records_emitted:,} records ({feeder.bytes_parsed:,} bytes) from {file_path}")
    return feeder.records_emitted
