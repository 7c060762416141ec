"""
Decoder for the purifier environmental sensor payload.

Raw fields arrive as ints or numeric strings, with marker strings while
a sensor is still warming up. Values are mapped onto the 1 (good) to 5
(extremely bad) quality scale shown in the vendor app; the worst sensor
decides the overall index.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

from ..devices.device import ProductGeneration

logger = logging.getLogger(__name__)

# Strings the firmware reports instead of a number.
SENTINELS = frozenset({"INIT", "OFF", "NONE", "FAIL", ""})

KELVIN_OFFSET = 273.0
VOC_SCALE = 0.125

MIN_QUALITY = 1
MAX_QUALITY = 5

# Inclusive upper bounds; a value above every bound gets the last bucket.
PM25_BOUNDS: Sequence[float] = (35, 53, 70, 150)
PM10_BOUNDS: Sequence[float] = (50, 75, 100, 350)
VOC_BOUNDS: Sequence[float] = (3, 6, 8)
NO2_BOUNDS: Sequence[float] = (30, 60, 80, 90)


@dataclass(frozen=True)
class DecodedReading:
    """Normalized values from one sensor data message."""
    air_quality_index: int
    temperature_celsius: float
    humidity_percent: int
    nitrogen_dioxide_density: Optional[int] = None


def raw_value(fields: Mapping[str, Any], key: str) -> int:
    """
    Read one raw field as an integer.

    Missing fields, sentinel markers, non-finite numbers and anything
    unparseable read as 0. Decimal values are truncated.
    """
    value = fields.get(key)
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0

    text = str(value).strip()
    if text.upper() in SENTINELS:
        return 0
    try:
        return int(text, 10)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        logger.debug(f"Unparseable sensor field {key}={value!r}, using 0")
        return 0
    return int(number) if math.isfinite(number) else 0


def bucket(value: float, bounds: Sequence[float]) -> int:
    """Map a value onto a 1-based bucket using inclusive upper bounds."""
    for index, upper in enumerate(bounds):
        if value <= upper:
            return index + 1
    return len(bounds) + 1


def pm25_quality(pm25: float) -> int:
    return bucket(pm25, PM25_BOUNDS)


def pm10_quality(pm10: float) -> int:
    return bucket(pm10, PM10_BOUNDS)


def voc_quality(raw_voc: float) -> int:
    """VOC is reported in eighths; the scale applies to the scaled value."""
    return bucket(raw_voc * VOC_SCALE, VOC_BOUNDS)


def no2_quality(no2: float) -> int:
    return bucket(no2, NO2_BOUNDS)


def dust_quality(dust: float) -> int:
    """Legacy combined dust sensor, on the PM2.5 scale."""
    return bucket(dust, PM25_BOUNDS)


def temperature_celsius(raw_tact: int) -> float:
    """Convert tenths of a kelvin to degrees Celsius."""
    return round(raw_tact / 10.0 - KELVIN_OFFSET, 1)


def _clamp(index: int) -> int:
    return max(MIN_QUALITY, min(MAX_QUALITY, index))


def quality_buckets(
    fields: Mapping[str, Any],
    generation: ProductGeneration,
) -> Tuple[int, ...]:
    """
    Per-sensor quality buckets applicable to a generation.

    Args:
        fields: Raw ``data`` object of the sensor message.
        generation: Device generation.

    Returns:
        Tuple of buckets, one per sensor.
    """
    if generation == ProductGeneration.ADVANCED:
        return (
            pm25_quality(raw_value(fields, "pm25")),
            pm10_quality(raw_value(fields, "pm10")),
            voc_quality(raw_value(fields, "va10")),
            no2_quality(raw_value(fields, "noxl")),
        )

    return (
        dust_quality(raw_value(fields, "pact")),
        voc_quality(raw_value(fields, "vact")),
    )


def decode(
    fields: Mapping[str, Any],
    generation: ProductGeneration,
) -> DecodedReading:
    """
    Decode raw sensor fields.

    Never raises on missing or not-yet-initialized values.

    Args:
        fields: Raw ``data`` object of the sensor message.
        generation: Device generation.

    Returns:
        Decoded reading.
    """
    air_quality = _clamp(max(quality_buckets(fields, generation)))

    nitrogen: Optional[int] = None
    if generation == ProductGeneration.ADVANCED:
        nitrogen = raw_value(fields, "noxl")

    return DecodedReading(
        air_quality_index=air_quality,
        temperature_celsius=temperature_celsius(raw_value(fields, "tact")),
        humidity_percent=raw_value(fields, "hact"),
        nitrogen_dioxide_density=nitrogen,
    )
