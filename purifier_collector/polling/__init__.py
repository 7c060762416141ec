"""
Polling loop over all registered devices.
"""
from .cycle_report import CycleReport
from .scheduler import PollingScheduler

__all__ = [
    "CycleReport",
    "PollingScheduler",
]
