"""
Decoded sensor sample.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SensorSample:
    """
    One decoded reading from one completed device round trip.

    Immutable; written to the store exactly once.
    """
    timestamp: datetime
    device_serial: str
    location: str
    air_quality_index: int
    temperature_celsius: float
    humidity_percent: int
    nitrogen_dioxide_density: Optional[int] = None

    def to_record(self) -> Dict[str, Any]:
        """Map to the column names of the sample table."""
        return {
            "time": self.timestamp,
            "device": self.device_serial,
            "location": self.location,
            "air": self.air_quality_index,
            "temperature": self.temperature_celsius,
            "humidity": self.humidity_percent,
            "nitrogen": self.nitrogen_dioxide_density,
        }
