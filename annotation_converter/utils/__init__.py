#!/usr/bin/env python3

"""
Utility modules for the annotation converter.
"""

from .performance_monitor import PerformanceMonitor, PerformanceMetrics

__all__ = ['PerformanceMonitor', 'PerformanceMetrics']
