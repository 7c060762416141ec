"""
Secret store clients.

The collector reads cloud credentials and per-device static addresses
from the secret store and keeps the auth token, OTP challenge id and OTP
code there between cycles.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

import httpx

from ..config import VaultSettings
from ..exceptions import CloudUnavailable

logger = logging.getLogger(__name__)

USERNAME_KEY = "DysonUserName"
PASSWORD_KEY = "DysonPassword"
TOKEN_KEY = "DysonToken"
CHALLENGE_ID_KEY = "DysonChallengeId"
OTP_CODE_KEY = "DysonOtpCode"

ENV_SECRET_PREFIX = "PURIFIER_SECRET_"


class SecretStore(ABC):
    """Key-value secret store."""

    async def connect(self) -> None:
        """Open any underlying connection."""

    async def disconnect(self) -> None:
        """Close any underlying connection."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return a secret, or None when absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a secret."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a secret if present."""


class EnvSecretStore(SecretStore):
    """
    In-process secret store seeded from the environment.

    ``PURIFIER_SECRET_DysonUserName=...`` seeds ``DysonUserName``. Writes
    live only as long as the process.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        if initial is None:
            initial = {
                name[len(ENV_SECRET_PREFIX):]: value
                for name, value in os.environ.items()
                if name.startswith(ENV_SECRET_PREFIX)
            }
        self._secrets: Dict[str, str] = dict(initial)

    async def get(self, key: str) -> Optional[str]:
        return self._secrets.get(key)

    async def set(self, key: str, value: str) -> None:
        self._secrets[key] = value

    async def delete(self, key: str) -> None:
        self._secrets.pop(key, None)


class VaultSecretStore(SecretStore):
    """
    HashiCorp Vault KV v2 secret store.

    All keys live in one secret document at ``{mount}/data/{path}``;
    writes merge into the current document.
    """

    def __init__(
        self,
        settings: VaultSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Vault client.

        Args:
            settings: Vault settings.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        headers = {"Content-Type": "application/json"}
        if self.settings.token:
            headers["X-Vault-Token"] = self.settings.token

        self._client = httpx.AsyncClient(
            base_url=self.settings.addr,
            headers=headers,
            timeout=self.settings.timeout,
            transport=self._transport,
        )
        logger.info(f"Vault client initialized: {self.settings.addr}")

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Vault client disconnected")

    @property
    def _data_url(self) -> str:
        return f"/v1/{self.settings.mount}/data/{self.settings.path}"

    async def _read(self) -> Dict[str, str]:
        if not self._client:
            await self.connect()

        try:
            response = await self._client.get(self._data_url)
        except httpx.HTTPError as e:
            raise CloudUnavailable(f"Vault unreachable: {e}") from e

        if response.status_code == 404:
            return {}
        if response.status_code != 200:
            raise CloudUnavailable(
                f"Vault read failed: {response.status_code}",
                status_code=response.status_code,
                unauthorized=response.status_code in (401, 403),
            )

        data = response.json().get("data") or {}
        return dict(data.get("data") or {})

    async def _write(self, document: Dict[str, str]) -> None:
        try:
            response = await self._client.post(self._data_url, json={"data": document})
        except httpx.HTTPError as e:
            raise CloudUnavailable(f"Vault unreachable: {e}") from e

        if response.status_code not in (200, 204):
            raise CloudUnavailable(
                f"Vault write failed: {response.status_code}",
                status_code=response.status_code,
                unauthorized=response.status_code in (401, 403),
            )

    async def get(self, key: str) -> Optional[str]:
        document = await self._read()
        value = document.get(key)
        return str(value) if value not in (None, "") else None

    async def set(self, key: str, value: str) -> None:
        document = await self._read()
        document[key] = value
        await self._write(document)
        logger.debug(f"Stored secret {key}")

    async def delete(self, key: str) -> None:
        document = await self._read()
        if key in document:
            del document[key]
            await self._write(document)
            logger.debug(f"Deleted secret {key}")


def create_secret_store(settings: VaultSettings) -> SecretStore:
    """Build the configured secret store backend."""
    if settings.backend == "env":
        return EnvSecretStore()
    return VaultSecretStore(settings)
