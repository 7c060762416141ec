"""
Vendor cloud HTTP client.

Wraps httpx with the base URL, user agent and timeout the cloud API
expects, and maps every failure onto CloudUnavailable.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import CloudSettings
from ..exceptions import CloudUnavailable

logger = logging.getLogger(__name__)


class CloudClient:
    """
    Client for the vendor cloud API.

    Responsibilities:
    - Hold one HTTP connection pool for the process
    - Attach the user agent and query defaults
    - Translate transport and status errors
    """

    def __init__(
        self,
        settings: CloudSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the cloud client.

        Args:
            settings: Cloud settings.
            transport: Optional httpx transport (used by tests).
        """
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Initialize HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers={
                "User-Agent": self.settings.user_agent,
                "Accept": "application/json",
            },
            timeout=self.settings.timeout,
            transport=self._transport,
        )
        logger.info(f"Cloud client initialized: {self.settings.base_url}")

    async def disconnect(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Cloud client disconnected")

    @property
    def locale_params(self) -> Dict[str, str]:
        return {"country": self.settings.country, "culture": self.settings.culture}

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            json: Optional JSON body.
            params: Optional query parameters.
            headers: Optional extra headers.

        Returns:
            Decoded JSON body (None for an empty body).

        Raises:
            CloudUnavailable: On transport failure or non-2xx status.
        """
        if not self._client:
            await self.connect()

        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers,
            )
        except httpx.HTTPError as e:
            raise CloudUnavailable(f"Cloud request {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise CloudUnavailable(
                f"Cloud request {method} {path} returned {response.status_code}",
                status_code=response.status_code,
                unauthorized=response.status_code in (401, 403),
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise CloudUnavailable(f"Cloud request {method} {path} returned invalid JSON") from e
