"""
Purifier Collector - Main Entry Point.

Starts the collector that:
1. Authenticates against the vendor cloud
2. Fetches the registered device manifest
3. Resolves each purifier on the LAN and reads its sensors
4. Stores readings in TimescaleDB
"""
import asyncio
import logging
import signal
import sys
from typing import Optional

from .cloud.authenticator import Authenticator, create_authenticator
from .cloud.client import CloudClient
from .cloud.manifest import ManifestFetcher
from .config import CollectorSettings, get_collector_settings
from .discovery.backends import DiscoveryBackend, StaticDiscovery, ZeroconfDiscovery
from .discovery.locator import DeviceLocator
from .polling.scheduler import PollingScheduler
from .session.credentials import CredentialDecryptor
from .storage.timescale_writer import SampleWriter, TimescaleSampleWriter
from .vault.secret_store import SecretStore, create_secret_store

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


class Collector:
    """
    Main collector orchestrator.

    Wires the secret store, cloud access, discovery, storage and the
    polling scheduler together and owns their lifecycle.
    """

    def __init__(
        self,
        settings: Optional[CollectorSettings] = None,
        secrets: Optional[SecretStore] = None,
        cloud_client: Optional[CloudClient] = None,
        discovery: Optional[DiscoveryBackend] = None,
        writer: Optional[SampleWriter] = None,
    ):
        """
        Initialize the collector.

        Args:
            settings: Collector settings.
            secrets: Secret store (built from settings if not provided).
            cloud_client: Cloud client (built from settings if not provided).
            discovery: Discovery backend (built from settings if not provided).
            writer: Sample writer (built from settings if not provided).
        """
        self.settings = settings or get_collector_settings()

        self.secrets = secrets or create_secret_store(self.settings.vault)
        self.cloud_client = cloud_client or CloudClient(self.settings.cloud)
        self.discovery = discovery or self._create_discovery()
        self.writer = writer or TimescaleSampleWriter(self.settings.timescale)

        self.authenticator: Authenticator = create_authenticator(
            self.settings.cloud.auth_mode, self.cloud_client, self.secrets,
        )
        self.scheduler = PollingScheduler(
            authenticator=self.authenticator,
            manifest_fetcher=ManifestFetcher(self.cloud_client, self.authenticator),
            locator=DeviceLocator(self.discovery, timeout=self.settings.discovery.timeout),
            writer=self.writer,
            decryptor=CredentialDecryptor(),
            settings=self.settings,
        )

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._scheduler_task: Optional[asyncio.Task] = None

    def _create_discovery(self) -> DiscoveryBackend:
        if self.settings.discovery.mode == "static":
            return StaticDiscovery(self.secrets)
        return ZeroconfDiscovery(self.settings.discovery.service_type)

    async def start(self) -> None:
        """Start the collector."""
        logger.info(f"Starting {self.settings.app_name}...")

        await self.secrets.connect()
        await self.cloud_client.connect()
        await self.discovery.start()
        await self.writer.connect()

        self._scheduler_task = asyncio.create_task(self.scheduler.run())
        self._scheduler_task.add_done_callback(self._on_scheduler_done)

        self._running = True
        logger.info(
            f"{self.settings.app_name} started, polling every "
            f"{self.settings.polling.interval:.0f}s"
        )

    async def stop(self) -> None:
        """Stop the collector."""
        if not self._running:
            return

        logger.info(f"Stopping {self.settings.app_name}...")
        self._running = False

        await self.scheduler.stop()
        if self._scheduler_task:
            self._scheduler_task.cancel()
            try:
                await self._scheduler_task
            except asyncio.CancelledError:
                pass
            self._scheduler_task = None

        await self.writer.disconnect()
        await self.discovery.stop()
        await self.cloud_client.disconnect()
        await self.secrets.disconnect()

        self._shutdown_event.set()
        logger.info(f"{self.settings.app_name} stopped")

    async def serve_forever(self) -> None:
        """Run the collector until shutdown."""
        await self._shutdown_event.wait()

    def _on_scheduler_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Polling scheduler exited with error: {error}")
        self._shutdown_event.set()

    def get_stats(self) -> dict:
        """Get collector statistics."""
        stats = {
            "running": self._running,
            "devices": len(self.scheduler.cache),
        }
        if self.scheduler.last_report:
            stats["last_pass"] = self.scheduler.last_report.to_dict()
        return stats


def setup_signal_handlers(collector: Collector, loop: asyncio.AbstractEventLoop):
    """Setup signal handlers for graceful shutdown."""
    def signal_handler():
        logger.info("Received shutdown signal")
        loop.create_task(collector.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: signal_handler())


async def main():
    """Main entry point."""
    settings = get_collector_settings()
    configure_logging(settings.log_level)

    collector = Collector(settings)
    setup_signal_handlers(collector, asyncio.get_running_loop())

    try:
        await collector.start()
        await collector.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        await collector.stop()


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
