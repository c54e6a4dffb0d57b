# ========================
# src/utils/data_generator.py
# ========================

"""
Data Generation Utilities

Writes delimited test files of any size, plain or gzip compressed, with
optional quoted fields spanning several lines.
"""

import csv
import gzip
import random
import logging
from typing import List, Dict, Any, Optional
from pathlib import Path

logger = logging.getLogger(__name__)

HEADER = ['id', 'name', 'category', 'quantity', 'price', 'notes']

UTF8_BOM = '\ufeff'


class DataGenerator:
    """
    Data generator for creating delimited test files.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize data generator.

        Args:
            seed (int): Random seed for reproducible data generation
        """
        self._random = random.Random(seed)

        self._initialize_data_patterns()
        logger.info(f"DataGenerator initialized with seed: {seed}")

    def _initialize_data_patterns(self) -> None:
        """Initialize value pools."""
        self.names = [
            "Laptop Pro 15", "Smartphone X", "Wireless Headphones", "4K LED TV",
            "Blender Pro", "Coffee Maker Elite", "Men's T-shirt (Blue)",
            "Running Shoes", "Gaming Mouse", "Office Chair"
        ]
        self.categories = ["Electronics", "Home Appliance", "Fashion"]

        # Notes exercise quoting: delimiters, quotes and line breaks inside fields
        self.plain_notes = ["", "in stock", "backorder", "discontinued"]
        self.tricky_notes = [
            "ships in 2-3 days, tracked",
            'the "premium" edition',
            "line one\nline two",
            "multi\r\nline, with \"quotes\"",
        ]

    def generate_dataset(self,
                         file_path: str,
                         num_rows: int,
                         multiline_rate: float = 0.0,
                         delimiter: str = ',',
                         line_terminator: str = '\n',
                         include_bom: bool = False,
                         gzip_suffix: str = '.gz') -> Dict[str, Any]:
        """
        Generate a delimited file with a header row and num_rows data rows.

        Files whose name ends in gzip_suffix are written gzip compressed.

        Args:
            file_path (str): Output file path
            num_rows (int): Number of data rows to generate
            multiline_rate (float): Fraction of rows whose notes need quoting
            delimiter (str): Field delimiter
            line_terminator (str): Record terminator
            include_bom (bool): Start the file with a UTF-8 byte order mark
            gzip_suffix (str): Suffix that selects gzip output

        Returns:
            dict: Generation statistics
        """
        logger.info(f"Generating {num_rows:,} rows into {file_path}...")

        stats = {
            'total_rows': num_rows,
            'quoted_rows': 0,
            'compressed': str(file_path).endswith(gzip_suffix),
        }

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

        if stats['compressed']:
            handle = gzip.open(file_path, 'wt', newline='', encoding='utf-8')
        else:
            handle = open(file_path, 'w', newline='', encoding='utf-8')

        with handle as f:
            if include_bom:
                f.write(UTF8_BOM)
            writer = csv.writer(f, delimiter=delimiter, lineterminator=line_terminator)
            writer.writerow(HEADER)

            for i in range(num_rows):
                record = self._generate_single_record(i, multiline_rate, stats)
                writer.writerow(record)

                if (i + 1) % 100000 == 0:
                    logger.debug(f"Generated {i + 1:,} records")

        stats['file_size_bytes'] = Path(file_path).stat().st_size

        logger.info(f"Dataset generated: {file_path} ({stats['file_size_bytes']:,} bytes)")
        return stats

    def _generate_single_record(self,
                                index: int,
                                multiline_rate: float,
                                stats: Dict[str, Any]) -> List[Any]:
        """Generate a single record."""
        if multiline_rate and self._random.random() < multiline_rate:
            notes = self._random.choice(self.tricky_notes)
            stats['quoted_rows'] += 1
        else:
            notes = self._random.choice(self.plain_notes)

        return [
            index + 1,
            self._random.choice(self.names),
            self._random.choice(self.categories),
            self._random.randint(1, 20),
            round(self._random.uniform(5, 2000), 2),
            notes,
        ]
