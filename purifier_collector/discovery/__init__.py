"""
LAN address resolution for registered devices.
"""
from .backends import DiscoveryBackend, StaticDiscovery, ZeroconfDiscovery
from .locator import DeviceLocator

__all__ = [
    "DiscoveryBackend",
    "StaticDiscovery",
    "ZeroconfDiscovery",
    "DeviceLocator",
]
