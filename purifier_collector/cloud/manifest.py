"""
Registered-device manifest.
"""
import logging
from typing import List

from ..devices.device import Device
from ..exceptions import CloudUnavailable
from .authenticator import AuthCredential, Authenticator
from .client import CloudClient

logger = logging.getLogger(__name__)

MANIFEST_PATH = "/v2/provisioningservice/manifest"


class ManifestFetcher:
    """Fetches the account's device list with encrypted local credentials."""

    def __init__(self, client: CloudClient, authenticator: Authenticator):
        self.client = client
        self.authenticator = authenticator

    async def fetch(self, credential: AuthCredential) -> List[Device]:
        """
        Fetch the manifest.

        Args:
            credential: Authorization credential from login().

        Returns:
            Devices in manifest order.

        Raises:
            CloudUnavailable: On transport or auth error. An auth error also
                invalidates the credential so the next cycle logs in again.
        """
        try:
            body = await self.client.request("GET", MANIFEST_PATH, headers=credential.header)
        except CloudUnavailable as e:
            if e.unauthorized:
                await self.authenticator.invalidate()
            raise

        if not isinstance(body, list):
            raise CloudUnavailable("Manifest response is not a list")

        devices = []
        for entry in body:
            try:
                devices.append(Device.from_manifest(entry))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed manifest entry: missing {e}")

        logger.debug(f"Manifest lists {len(devices)} devices")
        return devices
