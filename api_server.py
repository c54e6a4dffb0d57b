# ========================
# api_server.py
# ========================

"""
FastAPI Server for the Streaming CSV Loader

Provides REST API endpoints for uploading delimited files, watching their
load progress, browsing the loaded rows and cancelling running loads.
The asyncio event loop is the single thread that owns every table model.
"""

import asyncio
import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from fastapi import FastAPI, File, UploadFile, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from src.streaming.controller import AsyncIngestionController, LoopDispatcher
from src.streaming.extraction import commit_table, parse_csv_file
from src.streaming.heuristic import should_use_streaming
from src.streaming.parser import ParserConfig
from src.streaming.table_model import TableModel
from src.utils.config import Config
from src.utils.logging_setup import setup_logging
from src.utils.performance_monitor import SystemResourceMonitor

config = Config()

# Setup logging
setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Streaming CSV Loader API",
    description="Upload large delimited files and load them without blocking the service",
    version="1.0.0"
)

# Add CORS middleware to allow frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

LOAD_NOT_FOUND_MSG = "Load not found"
SUPPORTED_SUFFIXES = ('.csv', '.tsv', '.txt')
# Statuses whose worker or executor job is still running
ACTIVE_STATUSES = ('loading', 'preview_ready', 'cancelling')

UPLOAD_DIR = Path(config.UPLOAD_DIR)
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)

# Loads are only touched from the event loop thread
load_status: Dict[str, Dict[str, Any]] = {}
load_models: Dict[str, TableModel] = {}
load_controllers: Dict[str, AsyncIngestionController] = {}


def is_supported_file(filename: str) -> bool:
    name = filename.lower()
    if name.endswith(config.GZIP_SUFFIX):
        name = name[:-len(config.GZIP_SUFFIX)]
    return name.endswith(SUPPORTED_SUFFIXES)


def get_load(load_id: str) -> Dict[str, Any]:
    if load_id not in load_status:
        raise HTTPException(status_code=404, detail=LOAD_NOT_FOUND_MSG)
    return load_status[load_id]


class LoadJobManager:
    """Starts loads and records their outcome in load_status."""

    @staticmethod
    def _finish(load_id: str, status: str, **fields) -> None:
        load = load_status.get(load_id)
        if load is None:
            return  # Deleted while running
        load['status'] = status
        load['finished_at'] = datetime.now().isoformat()
        load.update(fields)

    @staticmethod
    async def run_small_load(load_id: str, file_path: Path) -> None:
        """Whole-file load: parse in the default executor, commit on the loop thread."""
        loop = asyncio.get_running_loop()
        parser_config = ParserConfig.from_config(config)
        try:
            table = await loop.run_in_executor(
                None, parse_csv_file, file_path, parser_config, config.GZIP_SUFFIX
            )
        except Exception as e:
            table = None
            error = e
        else:
            error = None

        load = load_status.get(load_id)
        if load is None or load['status'] != 'loading':
            return  # Deleted or cancelled meanwhile
        if error is not None:
            logger.error(f"Load {load_id} failed: {error}")
            LoadJobManager._finish(load_id, 'failed', error=str(error))
            return

        model = load_models[load_id]
        commit_table(model, table)
        LoadJobManager._finish(
            load_id, 'completed',
            rows_loaded=model.row_count,
            total_rows=model.row_count,
            column_count=model.column_count,
        )
        logger.info(f"Load {load_id} completed: {model.row_count:,} rows")

    @staticmethod
    def start_streaming_load(load_id: str, file_path: Path) -> AsyncIngestionController:
        """Preview now, full load on a worker; callbacks arrive on the event loop."""

        def on_preview(table) -> None:
            load_status[load_id]['preview'] = table.to_dict()
            load_status[load_id]['status'] = 'preview_ready'

        def on_progress(event) -> None:
            load = load_status.get(load_id)
            if load is not None:
                load['status'] = 'loading'
                load['rows_loaded'] = event.rows_loaded
                load['total_rows'] = event.total_rows

        def on_complete(results) -> None:
            LoadJobManager._finish(
                load_id, 'completed',
                column_count=results['column_count'],
                performance=results.get('performance', {}),
            )
            logger.info(f"Load {load_id} completed: {results['rows_loaded']:,} rows")

        def on_cancelled() -> None:
            LoadJobManager._finish(load_id, 'cancelled')
            logger.info(f"Load {load_id} cancelled")

        def on_error(error) -> None:
            logger.error(f"Load {load_id} failed: {error}")
            LoadJobManager._finish(load_id, 'failed', error=str(error))

        controller = AsyncIngestionController(
            file_path,
            load_models[load_id],
            LoopDispatcher(asyncio.get_running_loop()),
            config=config,
            on_preview=on_preview,
            on_progress=on_progress,
            on_complete=on_complete,
            on_cancelled=on_cancelled,
            on_error=on_error,
            log_label=f"load {load_id[:8]}",
        )
        load_controllers[load_id] = controller
        controller.start()
        return controller


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Streaming CSV Loader API",
        "version": "1.0.0",
        "endpoints": {
            "upload": "/upload - Upload a delimited file and start loading it",
            "loads": "/loads - List all loads",
            "status": "/loads/{load_id} - Check load status and progress",
            "preview": "/loads/{load_id}/preview - First rows of a large file",
            "rows": "/loads/{load_id}/rows - Page through loaded rows",
            "cancel": "/loads/{load_id}/cancel - Cancel a running load",
            "health": "/health - Health check",
            "api_docs": "/docs - API documentation"
        },
        "large_file_threshold_bytes": config.LARGE_FILE_THRESHOLD_BYTES,
        "api_docs_url": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "active_loads": len([l for l in load_status.values()
                             if l['status'] in ACTIVE_STATUSES]),
        "system": SystemResourceMonitor.get_system_stats()
    }


@app.post("/upload")
async def upload_file(file: UploadFile = File(...)):
    """
    Upload a delimited file and start loading it.

    Files below the large-file threshold are parsed in one go; larger files
    get a preview followed by a background load.

    Args:
        file: CSV/TSV file to upload, optionally gzip compressed

    Returns:
        dict: Load ID and status information
    """
    if not file.filename or not is_supported_file(file.filename):
        raise HTTPException(status_code=400, detail="Only CSV, TSV and TXT files (optionally gzipped) are supported")

    try:
        load_id = str(uuid.uuid4())

        # Save uploaded file
        file_path = UPLOAD_DIR / f"{load_id}_{Path(file.filename).name}"
        def write_file():
            with open(file_path, "wb") as buffer:
                shutil.copyfileobj(file.file, buffer, config.CHUNK_SIZE_BYTES)

        # Execute file write in thread pool to avoid blocking
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, write_file)
    except Exception as e:
        logger.error(f"Upload failed: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {str(e)}")

    streaming = should_use_streaming(file_path, config.LARGE_FILE_THRESHOLD_BYTES)
    load_status[load_id] = {
        'load_id': load_id,
        'filename': file.filename,
        'status': 'loading',
        'streaming': streaming,
        'created_at': datetime.now().isoformat(),
        'input_file': str(file_path),
        'file_size': file_path.stat().st_size,
        'rows_loaded': 0,
        'total_rows': None,
    }
    load_models[load_id] = TableModel()

    if streaming:
        LoadJobManager.start_streaming_load(load_id, file_path)
    else:
        asyncio.create_task(LoadJobManager.run_small_load(load_id, file_path))

    logger.info(f"Started load {load_id} for file {file.filename} (streaming={streaming})")

    return {
        "load_id": load_id,
        "filename": file.filename,
        "status": load_status[load_id]['status'],
        "streaming": streaming,
        "message": "File uploaded successfully. Loading started.",
        "progress_info": "Use /loads/{load_id} to check progress"
    }


@app.get("/loads")
async def list_loads(
    status: Optional[str] = Query(None, description="Filter by status: loading, preview_ready, completed, cancelled, failed"),
    limit: int = Query(50, description="Maximum number of loads to return", ge=1, le=100)
):
    """
    List all loads with optional filtering.

    Args:
        status: Filter loads by status
        limit: Maximum number of loads to return

    Returns:
        dict: List of loads
    """
    loads = [
        {k: v for k, v in load.items() if k != 'preview'}
        for load in load_status.values()
    ]

    if status:
        loads = [load for load in loads if load['status'] == status]

    # Sort by creation time (newest first)
    loads.sort(key=lambda x: x['created_at'], reverse=True)
    loads = loads[:limit]

    return {
        "loads": loads,
        "total_count": len(load_status),
        "filtered_count": len(loads)
    }


@app.get("/loads/{load_id}")
async def get_load_status(load_id: str):
    """
    Get the status and progress of a load.

    Args:
        load_id: Unique load identifier

    Returns:
        dict: Load status and progress
    """
    load = {k: v for k, v in get_load(load_id).items() if k != 'preview'}
    controller = load_controllers.get(load_id)
    if controller is not None:
        load['state'] = controller.state.value
        if controller.last_progress is not None:
            load['progress'] = controller.last_progress.to_dict()
    return load


@app.get("/loads/{load_id}/preview")
async def get_load_preview(load_id: str):
    """Preview rows of a large file, available once the preview was read."""
    load = get_load(load_id)
    if 'preview' not in load:
        raise HTTPException(status_code=404, detail="No preview available for this load")
    return {"load_id": load_id, **load['preview']}


@app.get("/loads/{load_id}/rows")
async def get_load_rows(
    load_id: str,
    offset: int = Query(0, description="Index of the first row", ge=0),
    limit: int = Query(100, description="Maximum number of rows to return", ge=1, le=10000)
):
    """
    Page through the rows of a completed load.

    Args:
        load_id: Unique load identifier
        offset: Index of the first row
        limit: Maximum number of rows

    Returns:
        dict: Headers and the requested rows
    """
    load = get_load(load_id)
    if load['status'] != 'completed':
        raise HTTPException(status_code=400, detail="Load not completed yet. Please wait for loading to finish.")
    return {"load_id": load_id, **load_models[load_id].to_dict(offset, limit)}


@app.post("/loads/{load_id}/cancel")
async def cancel_load(load_id: str):
    """
    Cancel a running load. Loaded rows are discarded.

    Args:
        load_id: Unique load identifier

    Returns:
        dict: Cancellation status
    """
    load = get_load(load_id)
    if load['status'] in ('completed', 'cancelled', 'failed'):
        raise HTTPException(status_code=400, detail=f"Load already {load['status']}")

    controller = load_controllers.get(load_id)
    if controller is not None:
        controller.cancel()
        load['status'] = 'cancelling'
    else:
        # Whole-file loads drop their result when it arrives
        LoadJobManager._finish(load_id, 'cancelled')

    logger.info(f"Cancellation requested for load {load_id}")
    return {"load_id": load_id, "status": load['status']}


@app.delete("/loads/{load_id}")
async def delete_load(load_id: str):
    """
    Delete a load, cancelling it if still running, and remove its file.

    Args:
        load_id: Unique load identifier

    Returns:
        dict: Deletion status
    """
    load = get_load(load_id)

    controller = load_controllers.pop(load_id, None)
    if controller is not None:
        controller.cancel()

    try:
        input_file = Path(load['input_file'])
        if input_file.exists():
            input_file.unlink()
    except OSError as e:
        logger.error(f"Failed to delete load {load_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete load: {str(e)}")

    del load_status[load_id]
    load_models.pop(load_id, None)

    logger.info(f"Deleted load {load_id} and its uploaded file")
    return {
        "message": f"Load {load_id} and associated file deleted successfully"
    }


def start_server(host: str = "0.0.0.0", port: int = config.API_PORT, reload: bool = False):
    """Start the FastAPI server."""
    logger.info(f"Starting Streaming CSV Loader API server on {host}:{port}")
    uvicorn.run(
        "api_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    start_server(reload=True)
