"""
Sample persistence.
"""
from .timescale_writer import SampleWriter, TimescaleSampleWriter, rows_affected

__all__ = [
    "SampleWriter",
    "TimescaleSampleWriter",
    "rows_affected",
]
