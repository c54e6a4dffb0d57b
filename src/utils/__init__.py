# ========================
# src/utils/__init__.py
# ========================

"""
Utilities Package

Common utilities and helper functions for the streaming loader.
"""

from .config import Config
from .performance_monitor import monitor_performance, PerformanceMonitor, SystemResourceMonitor
from .logging_setup import setup_logging, get_load_logger, LoadLogAdapter
from .data_generator import DataGenerator

__all__ = [
    'Config',
    'monitor_performance',
    'PerformanceMonitor',
    'SystemResourceMonitor',
    'setup_logging',
    'get_load_logger',
    'LoadLogAdapter',
    'DataGenerator'
]
