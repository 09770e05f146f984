"""
Utilities package for chunked exports.

Exports shared helpers for logging and run timing. Keep this package
lightweight and free of export-specific logic.
"""

from chunked_export.utils.logging import configure_logging, get_logger
from chunked_export.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
