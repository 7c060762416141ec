"""
Device cache keyed by serial number.

Owned by the polling scheduler and passed into the locator; it is only
mutated from the scheduler's loop, so it needs no locking.
"""
import logging
from typing import Dict, Iterable, Iterator, List, Optional

from .device import Device

logger = logging.getLogger(__name__)


class DeviceCache:
    """
    Known devices and their resolved LAN addresses.

    Devices are kept in manifest order and never duplicated by serial.
    """

    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}

    def merge(self, manifest: Iterable[Device]) -> List[Device]:
        """
        Reconcile the cache with a freshly fetched manifest.

        Descriptors are refreshed from the manifest, cached addresses are
        kept, and serials missing from the manifest are dropped.

        Args:
            manifest: Devices from the cloud manifest.

        Returns:
            Devices that still need an address.
        """
        merged: Dict[str, Device] = {}

        for entry in manifest:
            if entry.serial in merged:
                logger.warning(f"Duplicate serial in manifest ignored: {entry.label}")
                continue

            cached = self._devices.get(entry.serial)
            if cached is not None:
                cached.name = entry.name
                cached.product_type = entry.product_type
                cached.local_credentials = entry.local_credentials
                merged[entry.serial] = cached
            else:
                logger.info(f"New device in manifest: {entry.label}")
                merged[entry.serial] = entry

        for serial in self._devices.keys() - merged.keys():
            logger.info(f"Device {serial} no longer in manifest, dropping")

        self._devices = merged
        return [device for device in merged.values() if not device.ip]

    def get(self, serial: str) -> Optional[Device]:
        return self._devices.get(serial)

    def cached_ip(self, serial: str) -> Optional[str]:
        device = self._devices.get(serial)
        return device.ip if device else None

    def set_ip(self, device: Device, ip: str) -> None:
        """Record a resolved address, adding the device if unknown."""
        cached = self._devices.setdefault(device.serial, device)
        cached.ip = ip
        device.ip = ip

    def forget_ip(self, serial: str) -> None:
        """Drop a cached address so the next pass resolves it again."""
        device = self._devices.get(serial)
        if device and device.ip:
            logger.debug(f"Forgetting cached address {device.ip} for {device.label}")
            device.ip = None

    def __contains__(self, serial: object) -> bool:
        return serial in self._devices

    def __iter__(self) -> Iterator[Device]:
        return iter(list(self._devices.values()))

    def __len__(self) -> int:
        return len(self._devices)
