# ========================
# src/streaming/chunk_source.py
# ========================

"""
Chunk Source Module

Delivers a file as a sequence of fixed-size byte chunks, decompressing
gzip files on the fly when the filename carries the gzip suffix.
"""

import gzip
import logging
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from .exceptions import DecompressionError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024  # 8 MiB
GZIP_SUFFIX = '.gz'


def is_gzip_file(file_path: Union[str, Path, None], suffix: str = GZIP_SUFFIX) -> bool:
    """Check if a file is gzip compressed based on its extension."""
    return file_path is not None and str(file_path).lower().endswith(suffix.lower())


class ChunkSource:
    """
    Reads a file in fixed-size chunks without holding it in memory.

    The underlying file handle (and decompressor) is released by close(),
    which runs on normal completion, on error and on cancellation when the
    source is used as a context manager.
    """

    def __init__(self,
                 file_path: Union[str, Path],
                 chunk_size: int = DEFAULT_CHUNK_SIZE,
                 gzip_suffix: str = GZIP_SUFFIX):
        """
        Initialize the chunk source.

        Args:
            file_path (str): Path to the file to read
            chunk_size (int): Number of bytes to read per chunk
            gzip_suffix (str): Filename suffix that marks gzip compression
        """
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")

        self.file_path = Path(file_path)
        self.chunk_size = chunk_size
        self.compressed = is_gzip_file(self.file_path, gzip_suffix)
        self.bytes_read = 0
        self._raw: Optional[BinaryIO] = None
        self._stream: Optional[BinaryIO] = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> 'ChunkSource':
        """
        Open the file for reading.

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: If the file cannot be opened
        """
        if self._stream is not None:
            return self

        try:
            self._raw = open(self.file_path, 'rb')
        except FileNotFoundError:
            logger.error(f"File '{self.file_path}' was not found")
            raise
        except OSError as e:
            logger.error(f"Cannot open file '{self.file_path}': {e}")
            raise

        self._stream = gzip.GzipFile(fileobj=self._raw, mode='rb') if self.compressed else self._raw
        logger.debug(
            f"Opened {self.file_path} (compressed={self.compressed}, chunk_size={self.chunk_size:,})"
        )
        return self

    def read_chunk(self, buffer: bytearray) -> int:
        """
        Fill the buffer with the next chunk of (decompressed) bytes.

        Args:
            buffer (bytearray): Destination buffer; at most len(buffer) bytes are read

        Returns:
            int: Number of bytes read, 0 at end of stream
        """
        if self._stream is None:
            raise ValueError("ChunkSource is not open")

        view = memoryview(buffer)
        total = 0
        try:
            # A gzip stream may return short reads before the end of data
            while total < len(view):
                count = self._stream.readinto(view[total:])
                if not count:
                    break
                total += count
        except (gzip.BadGzipFile, EOFError, zlib.error) as e:
            raise DecompressionError(f"Corrupt gzip stream in '{self.file_path}': {e}") from e
        finally:
            view.release()

        self.bytes_read += total
        return total

    def chunks(self) -> Iterator[bytes]:
        """
        A generator that yields the file as byte chunks.

        Yields:
            bytes: The next chunk, never empty
        """
        buffer = bytearray(self.chunk_size)
        while True:
            count = self.read_chunk(buffer)
            if count == 0:
                return
            yield bytes(buffer[:count])

    def close(self) -> None:
        """Release the decompressor and the file handle."""
        stream, raw = self._stream, self._raw
        self._stream = None
        self._raw = None
        try:
            if stream is not None and stream is not raw:
                stream.close()
        finally:
            if raw is not None:
                raw.close()
                logger.debug(f"Closed {self.file_path} after {self.bytes_read:,} bytes")

    def __enter__(self) -> 'ChunkSource':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
