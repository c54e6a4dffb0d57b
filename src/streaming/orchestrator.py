# ========================
# src/streaming/orchestrator.py
# ========================

"""
Load Orchestrator Module

Chooses between the whole-file load and the preview + background load for
a file, and offers a blocking run() for scripts.
"""

import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .controller import AsyncIngestionController, ProgressEvent, QueueDispatcher
from .extraction import load_csv
from .heuristic import should_use_streaming
from .parser import ParserConfig
from .table_model import TableModel
from ..utils.config import Config
from ..utils.performance_monitor import monitor_performance

logger = logging.getLogger(__name__)


class FileLoader:
    """
    Loads one delimited file into a table model.
    Files at or above the large-file threshold go through the controller.
    """

    def __init__(self,
                 input_file: Union[str, Path],
                 model: Optional[TableModel] = None,
                 config: Optional[Config] = None):
        """
        Initialize the loader.

        Args:
            input_file (str): Path to the input file (plain or gzip)
            model (TableModel): Destination model, a new one by default
            config (Config): Configuration object
        """
        self.input_file = Path(input_file)
        self.model = model if model is not None else TableModel()
        self.config = config or Config()
        self.parser_config = ParserConfig.from_config(self.config)
        self.controller: Optional[AsyncIngestionController] = None

        logger.info("FileLoader initialized:")
        logger.info(f"  Input: {self.input_file}")
        logger.info(f"  Threshold: {self.config.LARGE_FILE_THRESHOLD_BYTES:,} bytes")

    def uses_streaming(self) -> bool:
        return should_use_streaming(self.input_file, self.config.LARGE_FILE_THRESHOLD_BYTES)

    def open(self,
             dispatcher,
             on_preview: Optional[Callable] = None,
             on_progress: Optional[Callable[[ProgressEvent], None]] = None,
             on_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
             on_cancelled: Optional[Callable[[], None]] = None,
             on_error: Optional[Callable[[BaseException], None]] = None) -> Optional[AsyncIngestionController]:
        """
        Start loading the file.

        Small files are loaded synchronously and on_complete is called before
        returning; their errors propagate to the caller. Large files get a
        started controller whose callbacks arrive through the dispatcher.

        Returns:
            AsyncIngestionController: The running controller, None for small files
        """
        if not self.uses_streaming():
            start = time.time()
            table = load_csv(self.input_file, self.model, self.parser_config, self.config.GZIP_SUFFIX)
            if on_progress:
                on_progress(ProgressEvent(table.row_count, table.row_count, True))
            if on_complete:
                on_complete({
                    'file_path': str(self.input_file),
                    'rows_loaded': table.row_count,
                    'column_count': self.model.column_count,
                    'elapsed_seconds': time.time() - start,
                })
            return None

        self.controller = AsyncIngestionController(
            self.input_file,
            self.model,
            dispatcher,
            config=self.config,
            parser_config=self.parser_config,
            on_preview=on_preview,
            on_progress=on_progress,
            on_complete=on_complete,
            on_cancelled=on_cancelled,
            on_error=on_error,
        )
        self.controller.start()
        return self.controller

    def run(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Load the file and block until the load has finished.

        Args:
            timeout (float): Give up waiting after this many seconds

        Returns:
            dict: Summary of the load

        Raises:
            Exception: Whatever ended the load with an error
        """
        logger.info(f"Starting load of '{self.input_file}'...")
        dispatcher = QueueDispatcher()
        outcome: Dict[str, Any] = {'status': 'running'}

        def completed(results: Dict[str, Any]) -> None:
            outcome.update(results)
            outcome['status'] = 'completed'

        def cancelled() -> None:
            outcome['status'] = 'cancelled'

        def failed(error: BaseException) -> None:
            outcome['status'] = 'failed'
            outcome['error'] = error

        def preview_ready(table) -> None:
            outcome['preview_rows'] = table.row_count

        streaming = self.uses_streaming()
        with monitor_performance(f"Run {self.input_file.name}") as monitor:
            controller = self.open(dispatcher,
                                   on_preview=preview_ready,
                                   on_complete=completed,
                                   on_cancelled=cancelled,
                                   on_error=failed)
            if controller is not None:
                if not dispatcher.run_until(lambda: controller.is_terminal, timeout):
                    controller.cancel()
                    dispatcher.run_until(lambda: controller.is_terminal)
                controller.join()
            monitor.update_progress(self.model.row_count)

        if outcome['status'] == 'failed':
            raise outcome['error']

        results = {
            'load_status': outcome['status'],
            'input_file': str(self.input_file),
            'streaming': streaming,
            'rows_loaded': self.model.row_count,
            'column_count': self.model.column_count,
            'preview_rows': outcome.get('preview_rows'),
            'performance': outcome.get('performance') or monitor.summary,
        }
        self._log_final_summary(results)
        return results

    def _log_final_summary(self, results: Dict[str, Any]) -> None:
        """Log final load summary."""
        logger.info("=" * 60)
        logger.info("LOAD SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Input file: {results['input_file']}")
        logger.info(f"Status: {results['load_status']}")
        logger.info(f"Mode: {'streaming' if results['streaming'] else 'whole file'}")
        logger.info(f"Rows loaded: {results['rows_loaded']:,}")
        logger.info(f"Columns: {results['column_count']}")
        logger.info("=" * 60)

    def validate_input(self) -> bool:
        """
        Validate input file exists and is readable.

        Returns:
            bool: True if input is valid
        """
        if not self.input_file.exists():
            logger.error(f"Input file does not exist: {self.input_file}")
            return False

        if not self.input_file.is_file():
            logger.error(f"Input path is not a file: {self.input_file}")
            return False

        try:
            with open(self.input_file, 'rb') as f:
                f.read(1)
        except OSError as e:
            logger.error(f"Cannot read input file: {e}")
            return False

        logger.info(f"Input validation passed: {self.input_file}")
        return True

    def estimate_processing_time(self) -> Dict[str, Any]:
        """
        Estimate load time based on file size and configuration.

        Returns:
            dict: Load time estimates
        """
        try:
            file_size = self.input_file.stat().st_size
        except OSError as e:
            logger.warning(f"Could not estimate processing time: {e}")
            return {}

        estimated_rows = file_size // self.config.PREVIEW_BYTES_PER_ROW

        # Conservative parse rate (rows per second)
        base_rate = 200000
        estimated_seconds = estimated_rows / base_rate

        return {
            'file_size_mb': file_size / (1024 * 1024),
            'estimated_rows': estimated_rows,
            'estimated_processing_time_seconds': estimated_seconds,
            'estimated_processing_time_minutes': estimated_seconds / 60,
            'chunk_count_estimate': file_size // self.config.CHUNK_SIZE_BYTES + 1,
            'uses_streaming': self.uses_streaming(),
        }
