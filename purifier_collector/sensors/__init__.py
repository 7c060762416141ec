"""
Sensor payload decoding and the decoded sample type.
"""
from .decoder import (
    DecodedReading,
    decode,
    dust_quality,
    no2_quality,
    pm10_quality,
    pm25_quality,
    quality_buckets,
    raw_value,
    temperature_celsius,
    voc_quality,
)
from .sample import SensorSample

__all__ = [
    "DecodedReading",
    "SensorSample",
    "decode",
    "dust_quality",
    "no2_quality",
    "pm10_quality",
    "pm25_quality",
    "quality_buckets",
    "raw_value",
    "temperature_celsius",
    "voc_quality",
]
