# ========================
# src/streaming/controller.py
# ========================

"""
Async Ingestion Controller Module

Coordinates a two-phase load of a large file: a bounded synchronous
preview, then a full load on a dedicated worker thread. Every callback
coming from the worker is marshaled onto the caller's single-threaded
context through a dispatcher; the destination model is only written on
that context, in one bulk handoff, after a successful load.
"""

import asyncio
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from .boundary import create_resolver, ensure_newline_termination
from .chunk_source import ChunkSource
from .extraction import ParsedTable, TableBuilder, commit_table, parse_csv_bytes, read_file_bytes
from .feeder import StreamingRecordFeeder
from .parser import CSVRecordParser, ParserConfig
from ..utils.config import Config
from ..utils.logging_setup import get_load_logger
from ..utils.performance_monitor import monitor_performance


class LoadState(Enum):
    """Lifecycle of one controller."""
    IDLE = 'idle'
    PREVIEW_LOADING = 'preview_loading'
    PREVIEW_READY = 'preview_ready'
    FULL_LOADING = 'full_loading'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (LoadState.COMPLETED, LoadState.CANCELLED, LoadState.FAILED)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress snapshot; total_rows is None while the total is unknown."""
    rows_loaded: int
    total_rows: Optional[int] = None
    is_complete: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows_loaded': self.rows_loaded,
            'total_rows': self.total_rows,
            'is_complete': self.is_complete,
        }


class LoadSession:
    """
    State of one full-load attempt.

    Owned and mutated by the worker thread only. The cancelled flag is the
    single exception: any thread may set it, nobody clears it.
    """

    def __init__(self, file_path: Path, progress_interval: int):
        self.path = file_path
        self.progress_interval = progress_interval
        self.builder = TableBuilder()
        self.last_reported = 0
        self._cancel_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def rows_loaded(self) -> int:
        return self.builder.row_count

    def take_progress(self) -> Optional[ProgressEvent]:
        """Return an event when a full progress interval has passed since the last one."""
        rows = self.rows_loaded
        if rows - self.last_reported < self.progress_interval:
            return None
        self.last_reported = rows
        return ProgressEvent(rows)


class QueueDispatcher:
    """
    Runs posted callbacks on whichever thread calls run_pending().

    Used by scripts and tests as a minimal single-threaded event loop.
    """

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()

    def post(self, callback: Callable, *args) -> None:
        self._queue.put((callback, args))

    def run_pending(self, timeout: Optional[float] = None) -> int:
        """
        Run queued callbacks in order.

        Args:
            timeout (float): Seconds to wait for the first callback, None to not wait

        Returns:
            int: Number of callbacks run
        """
        count = 0
        try:
            callback, args = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return 0

        while True:
            callback(*args)
            count += 1
            try:
                callback, args = self._queue.get_nowait()
            except queue.Empty:
                return count

    def run_until(self, predicate: Callable[[], bool], timeout: Optional[float] = None) -> bool:
        """Pump callbacks until predicate() is true or the timeout expires."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while not predicate():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.run_pending(timeout=0.05)
        return True


class LoopDispatcher:
    """Marshals callbacks onto an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop

    def post(self, callback: Callable, *args) -> None:
        self.loop.call_soon_threadsafe(callback, *args)


class AsyncIngestionController:
    """
    Loads a large file as preview + background full load.

    States: IDLE -> PREVIEW_LOADING -> PREVIEW_READY -> FULL_LOADING ->
    COMPLETED | CANCELLED | FAILED. Exactly one terminal callback
    (on_complete, on_cancelled or on_error) is delivered per controller.
    """

    def __init__(self,
                 file_path: Union[str, Path],
                 model,
                 dispatcher,
                 config: Optional[Config] = None,
                 parser_config: Optional[ParserConfig] = None,
                 on_preview: Optional[Callable[[ParsedTable], None]] = None,
                 on_progress: Optional[Callable[[ProgressEvent], None]] = None,
                 on_complete: Optional[Callable[[Dict[str, Any]], None]] = None,
                 on_cancelled: Optional[Callable[[], None]] = None,
                 on_error: Optional[Callable[[BaseException], None]] = None,
                 log_label: Optional[str] = None):
        """
        Initialize the controller.

        Args:
            file_path (str): File to load
            model (TableModel): Destination, written only on the caller's context
            dispatcher: Object with post(callback, *args) running callbacks on the caller's context
            config (Config): Loader configuration
            parser_config (ParserConfig): Parser settings, derived from config by default
            on_preview (callable): Receives the preview table
            on_progress (callable): Receives throttled ProgressEvents
            on_complete (callable): Receives the results dict after the model was filled
            on_cancelled (callable): Called when the load ends by cancellation
            on_error (callable): Receives the exception that ended the load
            log_label (str): Prefix for this load's log lines, the file name by default
        """
        self.file_path = Path(file_path)
        self.model = model
        self.dispatcher = dispatcher
        self.config = config or Config()
        self.parser_config = parser_config or ParserConfig.from_config(self.config)
        self.log = get_load_logger(__name__, log_label or self.file_path.name)

        self.on_preview = on_preview
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_cancelled = on_cancelled
        self.on_error = on_error

        self.preview: Optional[ParsedTable] = None
        self.last_progress: Optional[ProgressEvent] = None
        self.results: Dict[str, Any] = {}
        self.error: Optional[BaseException] = None

        self._state = LoadState.IDLE
        self._session: Optional[LoadSession] = None
        self._thread: Optional[threading.Thread] = None
        self._start_time: Optional[float] = None

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    def start(self) -> None:
        """Load the preview, then start the full load in the background."""
        if self._state is not LoadState.IDLE:
            raise RuntimeError(f"Cannot start a load in state {self._state.value}")

        try:
            self.load_preview()
        except Exception:
            return  # Already reported through on_error

        if self._state is LoadState.PREVIEW_READY:
            self.load_async()

    def load_preview(self) -> ParsedTable:
        """
        Read and parse the first rows of the file synchronously.

        The preview is handed to on_preview; it is not written to the model.

        Returns:
            ParsedTable: Headers and up to PREVIEW_ROWS rows
        """
        if self._state is not LoadState.IDLE:
            raise RuntimeError(f"Cannot load a preview in state {self._state.value}")

        self._state = LoadState.PREVIEW_LOADING
        self._start_time = time.time()
        budget = self.config.preview_bytes

        try:
            # One byte past the budget tells a file of exactly budget bytes from a longer one
            data = read_file_bytes(self.file_path, max_bytes=budget + 1,
                                   gzip_suffix=self.config.GZIP_SUFFIX, terminate=False)
            if len(data) > budget:
                # Read stopped inside the file; keep complete records only
                data = data[:budget]
                data = data[:self._new_resolver().find_split(data)]
            else:
                data = ensure_newline_termination(data)
            table = parse_csv_bytes(data, self.parser_config, max_rows=self.config.PREVIEW_ROWS)
        except Exception as e:
            self.log.error(f"Preview of {self.file_path} failed: {e}")
            self._fail(e)
            raise

        self.preview = table
        self._state = LoadState.PREVIEW_READY
        self.log.info(f"Preview of {self.file_path.name}: {len(table.headers)} columns, {table.row_count} rows")

        if self.on_preview:
            self.on_preview(table)
        return table

    def load_async(self) -> None:
        """Start the full load on a dedicated worker thread."""
        if self._state not in (LoadState.IDLE, LoadState.PREVIEW_READY):
            raise RuntimeError(f"Cannot start the full load in state {self._state.value}")

        if self._start_time is None:
            self._start_time = time.time()
        self._session = LoadSession(self.file_path, self.config.PROGRESS_UPDATE_INTERVAL)
        self._state = LoadState.FULL_LOADING
        self._thread = threading.Thread(
            target=self._worker,
            args=(self._session,),
            name="CSV-Loader",
            daemon=True,
        )
        self._thread.start()
        self.log.info(f"Full load of {self.file_path} started")

    def cancel(self) -> None:
        """
        Request cancellation.

        The flag is set once and never cleared. A running worker notices it
        before its next chunk read or after the current record; the model is
        left untouched and no error is reported.
        """
        if self.is_terminal:
            return

        self.log.info(f"Cancellation requested for {self.file_path}")
        if self._session is not None:
            self._session.cancel()
        if self._state is LoadState.FULL_LOADING:
            return

        # No worker running; finish right away and notify asynchronously
        self._enter_terminal(LoadState.CANCELLED)
        if self.on_cancelled:
            self.dispatcher.post(self.on_cancelled)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread to exit. Never call this on an event loop thread."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _new_resolver(self):
        return create_resolver(
            self.config.QUOTE_AWARE_BOUNDARIES,
            quote=self.parser_config.quote,
            escape=self.parser_config.escape,
            encoding=self.parser_config.encoding,
            delimiter=self.parser_config.delimiter,
            skip_initial_space=self.parser_config.trim_whitespace,
        )

    # ---- worker thread ----

    def _worker(self, session: LoadSession) -> None:
        try:
            with monitor_performance(f"Load {session.path.name}") as monitor:
                self._read_all(session, monitor)
        except Exception as e:
            if session.cancelled:
                self.log.debug(f"Ignoring error raised after cancellation: {e}")
                self.dispatcher.post(self._deliver_cancelled, session)
            else:
                self.log.error(f"Full load of {session.path} failed: {e}")
                self.dispatcher.post(self._deliver_failure, session, e)
            return

        if session.cancelled:
            self.log.info(f"Full load of {session.path} cancelled after {session.rows_loaded:,} rows")
            self.dispatcher.post(self._deliver_cancelled, session)
            return

        self.dispatcher.post(self._deliver_completion, session, session.builder.to_table(), monitor.summary)

    def _read_all(self, session: LoadSession, monitor) -> None:
        def consume(record) -> None:
            session.builder(record)
            event = session.take_progress()
            if event is not None:
                self.dispatcher.post(self._deliver_progress, session, event)

        feeder = StreamingRecordFeeder(
            CSVRecordParser(self.parser_config),
            consume,
            resolver=self._new_resolver(),
            detect_bom=self.parser_config.detect_bom,
            max_record_bytes=self.config.MAX_RECORD_BYTES,
            is_cancelled=lambda: session.cancelled,
        )

        with ChunkSource(session.path, self.config.CHUNK_SIZE_BYTES, self.config.GZIP_SUFFIX) as source:
            buffer = bytearray(source.chunk_size)
            while not session.cancelled:
                count = source.read_chunk(buffer)
                rows_before = session.rows_loaded
                if count == 0:
                    feeder.finish()
                    monitor.update_progress(session.rows_loaded - rows_before)
                    break
                feeder.feed(bytes(buffer[:count]))
                monitor.update_progress(session.rows_loaded - rows_before, count)

    # ---- caller context ----

    def _enter_terminal(self, state: LoadState) -> bool:
        if self._state.is_terminal:
            return False
        self._state = state
        return True

    def _is_current(self, session: LoadSession) -> bool:
        return session is self._session and not self.is_terminal

    def _deliver_progress(self, session: LoadSession, event: ProgressEvent) -> None:
        if not self._is_current(session) or session.cancelled:
            return
        self.last_progress = event
        if self.on_progress:
            self.on_progress(event)

    def _deliver_completion(self, session: LoadSession, table: ParsedTable, stats: Dict[str, Any]) -> None:
        if not self._is_current(session):
            return
        if session.cancelled:
            self._deliver_cancelled(session)
            return

        commit_table(self.model, table)
        self._enter_terminal(LoadState.COMPLETED)

        rows = table.row_count
        self.results = {
            'file_path': str(self.file_path),
            'rows_loaded': rows,
            'column_count': self.model.column_count,
            'elapsed_seconds': time.time() - self._start_time,
            'performance': stats,
        }
        self.log.info(f"Loaded {rows:,} rows from {self.file_path}")

        self.last_progress = ProgressEvent(rows, rows, True)
        if self.on_progress:
            self.on_progress(self.last_progress)
        if self.on_complete:
            self.on_complete(self.results)

    def _deliver_cancelled(self, session: LoadSession) -> None:
        if not self._is_current(session):
            return
        self._enter_terminal(LoadState.CANCELLED)
        if self.on_cancelled:
            self.on_cancelled()

    def _deliver_failure(self, session: LoadSession, error: BaseException) -> None:
        if not self._is_current(session):
            return
        if session.cancelled:
            self._deliver_cancelled(session)
            return
        self._fail(error)

    def _fail(self, error: BaseException) -> None:
        if not self._enter_terminal(LoadState.FAILED):
            return
        self.error = error
        if self.on_error:
            self.on_error(error)
