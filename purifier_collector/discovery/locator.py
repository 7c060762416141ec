"""
Device address resolution with a serial-keyed cache.
"""
import asyncio
import logging
from typing import Optional

from ..devices.device import Device
from ..devices.device_cache import DeviceCache
from .backends import DiscoveryBackend

logger = logging.getLogger(__name__)


class DeviceLocator:
    """
    Resolves and caches each device's LAN address.

    A cached serial is answered without touching the network; otherwise
    one bounded lookup is made and a hit is written back to the cache.
    """

    def __init__(self, backend: DiscoveryBackend, timeout: float = 5.0):
        """
        Initialize the locator.

        Args:
            backend: Lookup backend.
            timeout: Bounded lookup time in seconds.
        """
        self.backend = backend
        self.timeout = timeout

    async def resolve(self, device: Device, cache: DeviceCache) -> Optional[str]:
        """
        Resolve a device address.

        Args:
            device: Device to resolve.
            cache: Scheduler-owned device cache.

        Returns:
            The address, or None when the device could not be found.
        """
        cached = cache.cached_ip(device.serial)
        if cached:
            device.ip = cached
            return cached

        try:
            addresses = await asyncio.wait_for(
                self.backend.lookup(device, self.timeout),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Address lookup timed out for {device.label}")
            return None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Address lookup failed for {device.label}: {e}")
            return None

        if not addresses:
            logger.warning(f"No address found for {device.label}")
            return None

        ip = addresses[0]
        cache.set_ip(device, ip)
        logger.info(f"Resolved {device.label} to {ip}")
        return ip
