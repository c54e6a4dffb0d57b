# ========================
# src/streaming/exceptions.py
# ========================

"""
Custom exceptions for the streaming CSV loader.

Setup failures (missing file, permission denied) are raised as the builtin
OSError family and are not wrapped here.
"""


class IngestionError(Exception):
    """Base class for failures raised while loading a delimited file."""
    pass


class DecompressionError(IngestionError):
    """Raised when a gzip stream is corrupt or truncated."""
    pass


class RecordParseError(IngestionError):
    """Raised when the record parser rejects a block of complete records."""
    pass


class RecordTooLargeError(RecordParseError):
    """Raised when a single record outgrows the configured carry limit."""
    pass
