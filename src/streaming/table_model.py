# ========================
# src/streaming/table_model.py
# ========================

"""
Table Model Module

In-memory row/column destination for loaded files. Rows may be ragged
until normalize() pads them to a common width.
"""

from typing import Any, Dict, List, Optional, Sequence


class TableModel:
    """
    Stores headers and rows of a loaded file.
    Only the caller's thread mutates a model; it holds no locks.
    """

    def __init__(self):
        self._headers: List[str] = []
        self._data: List[List[str]] = []

    def clear(self) -> None:
        """Clears all data."""
        self._headers = []
        self._data = []

    def set_headers(self, headers: Sequence[str]) -> None:
        self._headers = list(headers)

    def set_data(self, data: Sequence[Sequence[str]]) -> None:
        """Sets all rows at once."""
        self._data = [list(row) for row in data]

    def normalize(self) -> None:
        """Pad headers and rows so every row has the same number of columns."""
        max_cols = self.column_count
        while len(self._headers) < max_cols:
            self._headers.append(f"Column {len(self._headers) + 1}")
        for row in self._data:
            if len(row) < max_cols:
                row.extend([''] * (max_cols - len(row)))

    @property
    def headers(self) -> List[str]:
        return list(self._headers)

    @property
    def row_count(self) -> int:
        return len(self._data)

    @property
    def column_count(self) -> int:
        """Maximum number of columns across headers and rows."""
        return max([len(self._headers)] + [len(row) for row in self._data])

    def get_header(self, index: int) -> str:
        if 0 <= index < len(self._headers):
            return self._headers[index]
        return f"Column {index + 1}"

    def get_row(self, index: int) -> List[str]:
        if 0 <= index < len(self._data):
            return list(self._data[index])
        return []

    def get_rows(self, offset: int = 0, limit: Optional[int] = None) -> List[List[str]]:
        end = None if limit is None else offset + limit
        return [list(row) for row in self._data[offset:end]]

    def get_value(self, row: int, col: int) -> str:
        if 0 <= row < len(self._data) and 0 <= col < len(self._data[row]):
            return self._data[row][col]
        return ''

    def to_dict(self, offset: int = 0, limit: Optional[int] = None) -> Dict[str, Any]:
        """Convert a window of the table to a JSON friendly dictionary."""
        return {
            'headers': self.headers,
            'row_count': self.row_count,
            'column_count': self.column_count,
            'offset': offset,
            'rows': self.get_rows(offset, limit),
        }
