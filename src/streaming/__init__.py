# ========================
# src/streaming/__init__.py
# ========================

"""
Streaming Loader Package

Core components for loading large delimited files without blocking the caller:
- chunk_source: Bounded-memory reads of plain and gzip files
- boundary: Safe split points between records
- parser: Record parsing on top of the csv module
- feeder: Chunk-by-chunk record delivery
- controller: Preview + background load with marshaled callbacks
- orchestrator: Whole-file or streaming path selection
"""

from .boundary import LineBoundaryResolver, QuoteAwareBoundaryResolver, create_resolver
from .chunk_source import ChunkSource
from .controller import AsyncIngestionController, LoadState, LoopDispatcher, ProgressEvent, QueueDispatcher
from .exceptions import DecompressionError, IngestionError, RecordParseError, RecordTooLargeError
from .extraction import ParsedTable, load_csv, parse_csv_file
from .feeder import StreamingRecordFeeder, parse_file_with_callback
from .heuristic import should_use_streaming
from .orchestrator import FileLoader
from .parser import CSVRecordParser, ParserConfig
from .table_model import TableModel

__all__ = [
    'AsyncIngestionController',
    'ChunkSource',
    'CSVRecordParser',
    'DecompressionError',
    'FileLoader',
    'IngestionError',
    'LineBoundaryResolver',
    'LoadState',
    'LoopDispatcher',
    'ParsedTable',
    'ParserConfig',
    'ProgressEvent',
    'QueueDispatcher',
    'QuoteAwareBoundaryResolver',
    'RecordParseError',
    'RecordTooLargeError',
    'StreamingRecordFeeder',
    'TableModel',
    'create_resolver',
    'load_csv',
    'parse_csv_file',
    'parse_file_with_callback',
    'should_use_streaming',
]

__version__ = "1.0.0"
