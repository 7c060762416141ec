"""
Purifier Collector - sensor telemetry from networked air purifiers.

Authenticates with the vendor cloud, reads each registered purifier over
its LAN broker and stores the readings in TimescaleDB.
"""
from .config import CollectorSettings, get_collector_settings
from .main import Collector

__version__ = "1.0.0"

__all__ = [
    "CollectorSettings",
    "get_collector_settings",
    "Collector",
]
