"""
Monitoring module for the backup extraction system.

This module provides run timing and process resource metrics.
"""

from .performance_monitor import PerformanceMonitor, PerformanceMetrics, FileTiming

__all__ = [
    'PerformanceMonitor',
    'PerformanceMetrics',
    'FileTiming',
]
