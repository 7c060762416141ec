"""
Device descriptors.

A Device is built from one entry of the cloud manifest; its LAN address
is resolved lazily and cached by the scheduler.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Product types carrying separate PM2.5/PM10/VOC/NO2 sensors.
ADVANCED_PRODUCT_TYPES = frozenset({
    "438", "438E", "438K",
    "520",
    "527", "527E", "527K",
    "358", "358E", "358K",
})


class ProductGeneration(str, Enum):
    """Sensor generation of a purifier model."""
    LEGACY = "legacy"
    ADVANCED = "advanced"

    @classmethod
    def for_product_type(cls, product_type: str) -> "ProductGeneration":
        if product_type in ADVANCED_PRODUCT_TYPES:
            return cls.ADVANCED
        return cls.LEGACY


@dataclass
class Device:
    """
    A registered purifier.

    Identity is the serial number; everything else may be refreshed
    from a newer manifest.
    """
    serial: str
    name: str
    product_type: str
    local_credentials: str
    ip: Optional[str] = None

    @classmethod
    def from_manifest(cls, entry: Dict[str, Any]) -> "Device":
        """
        Build a device from one cloud manifest entry.

        Args:
            entry: Manifest JSON object with Serial, Name, ProductType
                and LocalCredentials.

        Returns:
            Device without a resolved address.
        """
        return cls(
            serial=str(entry["Serial"]),
            name=str(entry.get("Name") or entry["Serial"]),
            product_type=str(entry["ProductType"]),
            local_credentials=str(entry.get("LocalCredentials") or ""),
        )

    @property
    def generation(self) -> ProductGeneration:
        return ProductGeneration.for_product_type(self.product_type)

    @property
    def status_topic(self) -> str:
        return f"{self.product_type}/{self.serial}/status/current"

    @property
    def command_topic(self) -> str:
        return f"{self.product_type}/{self.serial}/command"

    @property
    def label(self) -> str:
        """Display name and serial, for log lines."""
        return f"{self.name} ({self.serial})"

    def __repr__(self) -> str:
        return (
            f"Device("
            f"serial={self.serial}, "
            f"name={self.name}, "
            f"type={self.product_type}, "
            f"ip={self.ip})"
        )
