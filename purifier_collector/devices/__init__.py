"""
Device descriptors and the serial-keyed device cache.
"""
from .device import ADVANCED_PRODUCT_TYPES, Device, ProductGeneration
from .device_cache import DeviceCache

__all__ = [
    "ADVANCED_PRODUCT_TYPES",
    "Device",
    "ProductGeneration",
    "DeviceCache",
]
