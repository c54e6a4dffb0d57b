# ========================
# src/streaming/heuristic.py
# ========================

"""
Size Heuristic Module

Decides from the file size whether a file goes through the streaming path.
"""

import logging
import os
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

LARGE_FILE_THRESHOLD_BYTES = 10 * 1024 * 1024  # 10 MiB


def should_use_streaming(file_path: Union[str, Path],
                         threshold_bytes: int = LARGE_FILE_THRESHOLD_BYTES) -> bool:
    """
    Check if a file should be loaded through the streaming path.

    Args:
        file_path (str): Path to the file
        threshold_bytes (int): Files at or above this size are streamed

    Returns:
        bool: True for large files; False when the size cannot be determined
    """
    try:
        file_size = os.path.getsize(file_path)
    except OSError as e:
        logger.debug(f"Could not stat {file_path}, using whole-file load: {e}")
        return False

    return file_size >= threshold_bytes
