"""
Processing module for the backup extraction system.

This module provides the sequential batch driver that runs backup files
through the configured sinks.
"""

from .batch_processor import (
    BatchProcessor, BatchContext, COUNT_OK, COUNT_DISCREPANCY, COUNT_UNAVAILABLE
)

__all__ = [
    'BatchProcessor',
    'BatchContext',
    'COUNT_OK',
    'COUNT_DISCREPANCY',
    'COUNT_UNAVAILABLE',
]
