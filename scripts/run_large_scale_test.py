#!/usr/bin/env python3
# ========================
# scripts/run_large_scale_test.py
# ========================

"""
Script to test the loader with a large file.
Generates a file well above the streaming threshold, loads it through the
background path and reports throughput, progress events and memory.

Usage: python scripts/run_large_scale_test.py [num_rows] [--gzip]
"""

import sys
import os

# Add project root to Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.streaming.controller import AsyncIngestionController, QueueDispatcher
from src.streaming.table_model import TableModel
from src.utils.config import Config
from src.utils.data_generator import DataGenerator
from src.utils.logging_setup import setup_logging


def main():
    """Run a large-scale test of the streaming loader."""
    args = [a for a in sys.argv[1:] if not a.startswith('--')]
    compressed = '--gzip' in sys.argv[1:]

    if args:
        try:
            num_rows = int(args[0])
        except ValueError:
            print("Usage: python run_large_scale_test.py [num_rows] [--gzip]")
            print("Example: python run_large_scale_test.py 1000000 --gzip")
            sys.exit(1)
    else:
        num_rows = 1_000_000  # Default to 1M rows for testing

    config = Config()
    setup_logging(config.LOG_LEVEL)

    input_file = 'data/raw/large_data.csv' + (config.GZIP_SUFFIX if compressed else '')

    print("=" * 60)
    print("LARGE SCALE LOADER TEST")
    print("=" * 60)
    print(f"Target dataset size: {num_rows:,} rows")
    print(f"Chunk size: {config.CHUNK_SIZE_BYTES:,} bytes")
    print(f"Input file: {input_file}")
    print("=" * 60)

    # Step 1: Generate large sample data
    print(f"\n🔄 Step 1: Generating {num_rows:,} rows of sample data...")
    if os.path.exists(input_file):
        response = input(f"File {input_file} already exists. Regenerate? (y/N): ")
        regenerate = response.lower() == 'y'
    else:
        regenerate = True
    if regenerate:
        DataGenerator(seed=42).generate_dataset(input_file, num_rows, multiline_rate=0.01)
    else:
        print("Using existing data file.")

    # Step 2: Load it in the background, always through the streaming path
    print("\n🔄 Step 2: Loading file in the background...")
    model = TableModel()
    dispatcher = QueueDispatcher()
    progress_events = []

    controller = AsyncIngestionController(
        input_file,
        model,
        dispatcher,
        config=config,
        on_preview=lambda table: print(f"   Preview: {table.row_count} rows, {len(table.headers)} columns"),
        on_progress=progress_events.append,
        on_error=lambda error: print(f"❌ Load failed: {error}"),
    )
    controller.start()
    dispatcher.run_until(lambda: controller.is_terminal)
    controller.join()

    # Step 3: Verify results
    print("\n🔄 Step 3: Verifying results...")
    print(f"   State: {controller.state.value}")
    print(f"   Progress events: {len(progress_events)}")

    if controller.results:
        performance = controller.results['performance']
        print(f"   Time: {controller.results['elapsed_seconds']:.2f}s")
        print(f"   Throughput: {performance['average_throughput_records_per_second']:,.0f} records/sec")
        print(f"   Peak memory: {performance['peak_memory_usage_mb']:.1f} MB")

    if model.row_count == num_rows:
        print(f"\n✅ All {num_rows:,} rows loaded successfully!")
    else:
        print(f"\n⚠️  Warning: expected {num_rows:,} rows, model holds {model.row_count:,}")
        sys.exit(1)


if __name__ == '__main__':
    main()
