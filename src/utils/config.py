# ========================
# src/utils/config.py
# ========================

"""
Configuration Management

Centralized configuration for the loader with environment support.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    """
    Configuration class for the streaming loader.
    Supports environment variables and default values.
    """

    def __init__(self, config_dict: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            config_dict (dict): Optional configuration overrides
        """
        # Loading Strategy
        self.LARGE_FILE_THRESHOLD_BYTES = int(os.getenv('LOADER_LARGE_FILE_THRESHOLD', str(10 * 1024 * 1024)))
        self.CHUNK_SIZE_BYTES = int(os.getenv('LOADER_CHUNK_SIZE', str(8 * 1024 * 1024)))
        self.GZIP_SUFFIX = os.getenv('LOADER_GZIP_SUFFIX', '.gz')
        self.QUOTE_AWARE_BOUNDARIES = _env_bool('LOADER_QUOTE_AWARE', 'true')
        self.MAX_RECORD_BYTES = int(os.getenv('LOADER_MAX_RECORD_BYTES', '0'))  # 0 = unlimited

        # Preview and Progress
        self.PREVIEW_ROWS = int(os.getenv('LOADER_PREVIEW_ROWS', '100'))
        self.PREVIEW_BYTES_PER_ROW = int(os.getenv('LOADER_PREVIEW_BYTES_PER_ROW', '100'))
        self.PROGRESS_UPDATE_INTERVAL = int(os.getenv('LOADER_PROGRESS_INTERVAL', '1000'))

        # Parser Settings
        self.DELIMITER = os.getenv('CSV_DELIMITER', ',')
        self.QUOTE = os.getenv('CSV_QUOTE', '"')
        self.ESCAPE = os.getenv('CSV_ESCAPE', '"')
        self.ENCODING = os.getenv('CSV_ENCODING', 'utf-8')
        self.TRIM_WHITESPACE = _env_bool('CSV_TRIM_WHITESPACE', 'false')
        self.DETECT_BOM = _env_bool('CSV_DETECT_BOM', 'true')
        self.SKIP_EMPTY_LINES = _env_bool('CSV_SKIP_EMPTY_LINES', 'false')
        self.STRICT_QUOTING = _env_bool('CSV_STRICT_QUOTING', 'true')
        self.MAX_FIELD_SIZE = int(os.getenv('CSV_MAX_FIELD_SIZE', str(1024 * 1024)))
        self.NULL_VALUE_REPRESENTATION = os.getenv('CSV_NULL_VALUE', '')

        # Service Settings
        self.UPLOAD_DIR = os.getenv('LOADER_UPLOAD_DIR', 'data/uploaded')
        self.API_PORT = int(os.getenv('API_PORT', '8000'))

        # Logging Configuration
        self.LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

        # Override with provided config
        if config_dict:
            self._update_from_dict(config_dict)

    def _update_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for key, value in config_dict.items():
            if hasattr(self, key.upper()):
                setattr(self, key.upper(), value)

    @property
    def preview_bytes(self) -> int:
        """Byte budget for the preview read."""
        return (self.PREVIEW_ROWS + 1) * self.PREVIEW_BYTES_PER_ROW

    def get_data_paths(self) -> Dict[str, Path]:
        """Get all configured data paths as Path objects."""
        return {
            'upload_dir': Path(self.UPLOAD_DIR),
            'logs_dir': Path('logs')
        }

    def ensure_directories(self) -> None:
        """Create necessary directories if they don't exist."""
        for path in self.get_data_paths().values():
            path.mkdir(parents=True, exist_ok=True)

    def validate_config(self) -> Dict[str, bool]:
        """
        Validate configuration values.

        Returns:
            dict: Validation results for each setting
        """
        validations = {}

        # Validate numeric ranges
        validations['large_file_threshold'] = self.LARGE_FILE_THRESHOLD_BYTES >= 0
        validations['chunk_size'] = self.CHUNK_SIZE_BYTES > 0
        validations['preview_rows'] = self.PREVIEW_ROWS >= 0
        validations['preview_bytes_per_row'] = self.PREVIEW_BYTES_PER_ROW > 0
        validations['progress_interval'] = self.PROGRESS_UPDATE_INTERVAL > 0
        validations['max_record_bytes'] = self.MAX_RECORD_BYTES >= 0
        validations['max_field_size'] = self.MAX_FIELD_SIZE > 0
        validations['api_port'] = 1000 <= self.API_PORT <= 65535

        # Validate parser characters
        validations['delimiter'] = len(self.DELIMITER) == 1
        validations['quote'] = len(self.QUOTE) == 1 and self.QUOTE != self.DELIMITER
        validations['escape'] = len(self.ESCAPE) <= 1
        validations['gzip_suffix'] = self.GZIP_SUFFIX.startswith('.')

        try:
            ''.encode(self.ENCODING)
            validations['encoding'] = True
        except LookupError:
            validations['encoding'] = False

        # Validate log level
        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        validations['log_level'] = self.LOG_LEVEL.upper() in valid_log_levels

        return validations

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            attr: getattr(self, attr)
            for attr in dir(self)
            if attr.isupper() and not callable(getattr(self, attr))
        }

    def save_to_file(self, file_path: str) -> None:
        """Save configuration to JSON file."""
        import json
        with open(file_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load_from_file(cls, file_path: str) -> 'Config':
        """Load configuration from JSON file."""
        import json
        with open(file_path, 'r') as f:
            config_dict = json.load(f)
        return cls(config_dict)

    def __str__(self) -> str:
        """String representation of configuration."""
        lines = ["Configuration Settings:"]
        config_dict = self.to_dict()
        for key, value in sorted(config_dict.items()):
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)
