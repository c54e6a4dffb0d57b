#!/usr/bin/env python3
# ========================
# main.py
# ========================

"""
Main Entry Point for the Streaming CSV Loader

Loads a delimited file (plain or gzip) into a table model, streaming it in
the background when it is large, and prints a summary. Without an argument
a sample file is generated first.

Usage: python main.py [file_path]
"""

import sys
import logging
from pathlib import Path

from src.streaming import FileLoader, IngestionError
from src.utils import Config, setup_logging, DataGenerator

SAMPLE_FILE = "data/raw/sample_data.csv"
SAMPLE_ROWS = 50000


def main():
    """Main execution function."""
    # Initialize configuration
    config = Config()

    # Setup logging
    setup_logging(
        log_level=config.LOG_LEVEL,
        log_file="loader.log",
        log_dir="logs"
    )

    logger = logging.getLogger(__name__)
    logger.info("=" * 60)
    logger.info("STREAMING CSV LOADER - MAIN EXECUTION")
    logger.info("=" * 60)

    try:
        config.ensure_directories()
        logger.debug(str(config))

        # Step 1: Pick or generate the input file
        if len(sys.argv) > 1:
            input_file = sys.argv[1]
        else:
            input_file = SAMPLE_FILE
            logger.info("Step 1: Generating sample data...")
            generator = DataGenerator(seed=42)  # Reproducible data
            generation_stats = generator.generate_dataset(
                file_path=input_file,
                num_rows=SAMPLE_ROWS,
                multiline_rate=0.05
            )
            logger.info(f"Sample data generated: {generation_stats}")

        # Step 2: Load it
        logger.info("Step 2: Loading file...")
        loader = FileLoader(input_file, config=config)

        if not loader.validate_input():
            logger.error("Input validation failed. Exiting.")
            return 1

        estimates = loader.estimate_processing_time()
        if estimates:
            logger.info(f"Load estimates: {estimates}")

        results = loader.run()

        # Step 3: Print summary
        _print_execution_summary(results, loader)
        return 0 if results['load_status'] == 'completed' else 1

    except (OSError, IngestionError) as e:
        logger.error(f"Load failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Load failed: {e}", exc_info=True)
        return 1


def _print_execution_summary(results: dict, loader: FileLoader) -> None:
    """Print final execution summary."""
    model = loader.model
    performance = results.get('performance') or {}

    print("\n" + "=" * 70)
    print("LOAD SUMMARY")
    print("=" * 70)
    print(f"   • File: {Path(results['input_file']).name}")
    print(f"   • Mode: {'streaming' if results['streaming'] else 'whole file'}")
    print(f"   • Status: {results['load_status']}")
    print(f"   • Rows loaded: {results['rows_loaded']:,}")
    print(f"   • Columns: {results['column_count']}")
    if performance:
        print(f"   • Time: {performance.get('total_processing_time_seconds', 0):.2f}s")
        print(f"   • Peak memory: {performance.get('peak_memory_usage_mb', 0):.1f} MB")

    print("\nFirst rows:")
    print("   " + " | ".join(model.get_header(i) for i in range(model.column_count)))
    for row in model.get_rows(0, 5):
        print("   " + " | ".join(value.replace('\n', '\\n') for value in row))
    print("=" * 70)


if __name__ == '__main__':
    exit_code = main()
    sys.exit(exit_code)
