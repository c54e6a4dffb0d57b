# ========================
# src/streaming/boundary.py
# ========================

"""
Chunk Boundary Module

Finds safe split points in accumulated bytes so that the bytes before the
split contain only complete records. The remainder becomes the carry for
the next chunk.
"""

import logging
import re
from typing import Union

logger = logging.getLogger(__name__)

LF = 0x0A
CR = 0x0D

Buffer = Union[bytes, bytearray]


def ensure_newline_termination(data: bytes) -> bytes:
    """
    Ensure a byte block ends with a line terminator so the last record is parsed.

    Args:
        data (bytes): Raw bytes

    Returns:
        bytes: The data, with '\\n' appended when it is non-empty and does
            not already end in '\\n' or '\\r'
    """
    if not data or data[-1] in (LF, CR):
        return bytes(data)
    return bytes(data) + b'\n'


class LineBoundaryResolver:
    """
    Splits after the last line terminator in the buffer.

    This policy does not look at quotes: a terminator inside a quoted field
    that lands near a chunk edge is taken as a record boundary. Use
    QuoteAwareBoundaryResolver for data with multi-line quoted values.
    """

    def find_split(self, buffer: Buffer) -> int:
        """
        Find the split index for the buffer.

        A trailing '\\r' is not treated as a boundary because the matching
        '\\n' may arrive with the next chunk.

        Args:
            buffer (bytes): Carry plus newly read bytes

        Returns:
            int: Index k such that buffer[:k] holds complete lines; 0 if none
        """
        end = len(buffer)
        while end > 0:
            index = max(buffer.rfind(b'\n', 0, end), buffer.rfind(b'\r', 0, end))
            if index < 0:
                return 0
            if buffer[index] == CR and index == len(buffer) - 1:
                end = index
                continue
            return index + 1
        return 0

    def reset(self) -> None:
        """Stateless; nothing to reset."""


# Field states, following csv.reader
START_FIELD = 0
IN_FIELD = 1
IN_QUOTED_FIELD = 2
QUOTE_IN_QUOTED_FIELD = 3


class QuoteAwareBoundaryResolver:
    """
    Splits after the last line terminator that lies outside a quoted field.

    Tracks the same field states as csv.reader: a quote opens a quoted field
    only at the start of a field, so a stray quote inside an unquoted value
    is plain data. The state is carried across calls, so bytes already
    scanned in the carry are never scanned twice. Callers must pass buffers
    of the form carry + new bytes, where carry is buffer[split:] of the
    previous call.
    """

    def __init__(self, quote: str = '"', escape: str = '"', encoding: str = 'utf-8',
                 delimiter: str = ',', skip_initial_space: bool = False):
        """
        Initialize the resolver.

        Args:
            quote (str): Quote character
            escape (str): Escape character; equal to quote means doubled quotes
            encoding (str): Encoding used to turn the characters into bytes
            delimiter (str): Field delimiter
            skip_initial_space (bool): Spaces after a delimiter do not start the field
        """
        quote_bytes = quote.encode(encoding)
        escape_bytes = escape.encode(encoding) if escape else b''
        delimiter_bytes = delimiter.encode(encoding)
        if len(quote_bytes) != 1 or len(escape_bytes) > 1 or len(delimiter_bytes) != 1:
            raise ValueError("Quote, escape and delimiter characters must encode to a single byte")

        self._quote = quote_bytes[0]
        self._delimiter = delimiter_bytes[0]
        self._doublequote = escape_bytes == quote_bytes
        self._escape = escape_bytes[0] if escape_bytes and not self._doublequote else None
        self._skip_initial_space = skip_initial_space

        specials = b'\r\n' + quote_bytes + delimiter_bytes
        if self._escape is not None:
            specials += escape_bytes
        self._pattern = re.compile(b'[' + re.escape(specials) + b']')
        self.reset()

    def reset(self) -> None:
        """Forget the scan state; the next buffer must start on a record boundary."""
        self._scanned = 0
        self._state = START_FIELD
        self._escaped = False
        self._pending_cr = False

    @property
    def in_quotes(self) -> bool:
        return self._state == IN_QUOTED_FIELD

    def _after_plain_bytes(self, state: int, buffer: Buffer, start: int, end: int) -> int:
        if state == START_FIELD:
            if self._skip_initial_space and not buffer[start:end].strip(b' '):
                return START_FIELD
            return IN_FIELD
        if state == QUOTE_IN_QUOTED_FIELD:
            return IN_FIELD
        return state

    def _after_quote(self, state: int) -> int:
        if state == START_FIELD or state == QUOTE_IN_QUOTED_FIELD:
            return IN_QUOTED_FIELD
        if state == IN_QUOTED_FIELD:
            return QUOTE_IN_QUOTED_FIELD if self._doublequote else IN_FIELD
        return IN_FIELD

    def find_split(self, buffer: Buffer) -> int:
        """
        Find the split index for the buffer.

        Args:
            buffer (bytes): Carry plus newly read bytes

        Returns:
            int: Index k such that buffer[:k] holds complete records; 0 if none
        """
        size = len(buffer)
        pos = min(self._scanned, size)
        split = 0
        state = self._state

        if pos < size:
            if self._pending_cr:
                self._pending_cr = False
                if buffer[pos] != LF:
                    split = pos
            if self._escaped:
                self._escaped = False
                pos += 1

        while pos < size:
            match = self._pattern.search(buffer, pos)
            index = size if match is None else match.start()
            if index > pos:
                state = self._after_plain_bytes(state, buffer, pos, index)
            if match is None:
                break
            byte = buffer[index]
            pos = index + 1

            if byte == self._escape:
                if state != IN_QUOTED_FIELD:
                    state = IN_FIELD
                if pos < size:
                    pos += 1
                else:
                    self._escaped = True
            elif byte == self._quote:
                state = self._after_quote(state)
            elif state == IN_QUOTED_FIELD:
                continue
            elif byte == self._delimiter:
                state = START_FIELD
            elif byte == LF:
                split = pos
                state = START_FIELD
            elif pos < size:
                # CR: a following LF belongs to the same terminator
                if buffer[pos] == LF:
                    pos += 1
                split = pos
                state = START_FIELD
            else:
                self._pending_cr = True
                state = START_FIELD

        self._state = state
        self._scanned = size - split
        return split


def create_resolver(quote_aware: bool = True,
                    quote: str = '"',
                    escape: str = '"',
                    encoding: str = 'utf-8',
                    delimiter: str = ',',
                    skip_initial_space: bool = False):
    """Build the boundary resolver for the configured policy."""
    if quote_aware:
        return QuoteAwareBoundaryResolver(quote=quote, escape=escape, encoding=encoding,
                                          delimiter=delimiter, skip_initial_space=skip_initial_space)
    return LineBoundaryResolver()
