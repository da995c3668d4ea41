"""
Performance infrastructure for the efficient-frontier engine.

This module provides parallel dispatch of independent solves.
"""

from .parallel_processor import ParallelProcessor, ProcessingConfig

__all__ = [
    'ParallelProcessor',
    'ProcessingConfig'
]
