"""
LAN address lookup backends.

Purifiers advertise their local MQTT broker over mDNS as
``{product_type}_{serial}`` under the ``_dyson_mqtt._tcp`` service type.
Deployments without multicast can store a static address per serial in
the secret store instead.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from zeroconf.asyncio import AsyncServiceInfo, AsyncZeroconf

from ..devices.device import Device
from ..vault.secret_store import SecretStore

logger = logging.getLogger(__name__)


class DiscoveryBackend(ABC):
    """Resolves a device serial to LAN addresses."""

    async def start(self) -> None:
        """Acquire any resources needed for lookups."""

    async def stop(self) -> None:
        """Release lookup resources."""

    @abstractmethod
    async def lookup(self, device: Device, timeout: float) -> List[str]:
        """
        Look up addresses for a device.

        Args:
            device: Device to locate.
            timeout: Bounded lookup time in seconds.

        Returns:
            Addresses found, empty when the device did not answer.
        """


class ZeroconfDiscovery(DiscoveryBackend):
    """mDNS lookup using zeroconf."""

    def __init__(self, service_type: str = "_dyson_mqtt._tcp.local."):
        self.service_type = service_type
        self._aiozc: Optional[AsyncZeroconf] = None

    async def start(self) -> None:
        if self._aiozc is None:
            self._aiozc = AsyncZeroconf()
            logger.info(f"mDNS discovery started for {self.service_type}")

    async def stop(self) -> None:
        if self._aiozc is not None:
            await self._aiozc.async_close()
            self._aiozc = None
            logger.info("mDNS discovery stopped")

    def instance_name(self, device: Device) -> str:
        return f"{device.product_type}_{device.serial}.{self.service_type}"

    async def lookup(self, device: Device, timeout: float) -> List[str]:
        await self.start()

        info = AsyncServiceInfo(self.service_type, self.instance_name(device))
        found = await info.async_request(self._aiozc.zeroconf, int(timeout * 1000))
        if not found:
            return []

        return list(info.parsed_addresses())


class StaticDiscovery(DiscoveryBackend):
    """Static per-device address stored under the device serial."""

    def __init__(self, secrets: SecretStore):
        self.secrets = secrets

    async def lookup(self, device: Device, timeout: float) -> List[str]:
        address = await self.secrets.get(device.serial)
        return [address] if address else []
