"""
Polling scheduler for purifier telemetry collection.

Runs one pass at a time: authenticate, fetch the manifest, resolve
addresses, then sample each device in turn. A pass with unresolved or
failed devices is retried early, with a ceiling and backoff so a
permanently unreachable device cannot drive a tight loop.
"""
import asyncio
import logging
from typing import Callable, Optional

from ..cloud.authenticator import Authenticator
from ..cloud.manifest import ManifestFetcher
from ..config import CollectorSettings, get_collector_settings
from ..devices.device import Device
from ..devices.device_cache import DeviceCache
from ..discovery.locator import DeviceLocator
from ..exceptions import (
    AccountInactive,
    AuthPending,
    CloudUnavailable,
    CredentialError,
    DeviceUnreachable,
)
from ..session.credentials import CredentialDecryptor
from ..session.device_session import DeviceSession
from ..storage.timescale_writer import SampleWriter
from .cycle_report import CycleReport

logger = logging.getLogger(__name__)


class PollingScheduler:
    """
    Orchestrates passes over all devices.

    Features:
    - Sequential sessions, one device at a time
    - Device cache owned here and passed to the locator
    - Immediate re-pass on partial failure, bounded by a retry ceiling
    - Never stops on a single device's or pass's failure
    """

    def __init__(
        self,
        authenticator: Authenticator,
        manifest_fetcher: ManifestFetcher,
        locator: DeviceLocator,
        writer: SampleWriter,
        decryptor: Optional[CredentialDecryptor] = None,
        settings: Optional[CollectorSettings] = None,
        cache: Optional[DeviceCache] = None,
        session_factory: Callable[..., DeviceSession] = DeviceSession,
    ):
        """
        Initialize the polling scheduler.

        Args:
            authenticator: Cloud authenticator.
            manifest_fetcher: Manifest fetcher.
            locator: Device address locator.
            writer: Sample writer.
            decryptor: Local credential decryptor.
            settings: Collector settings.
            cache: Device cache (a fresh one if not provided).
            session_factory: Builds a DeviceSession per device.
        """
        self.authenticator = authenticator
        self.manifest_fetcher = manifest_fetcher
        self.locator = locator
        self.writer = writer
        self.decryptor = decryptor or CredentialDecryptor()
        self.settings = settings or get_collector_settings()
        self.cache = cache if cache is not None else DeviceCache()
        self._session_factory = session_factory

        # State
        self._fast_retries = 0
        self._running = False
        self._shutdown_event = asyncio.Event()
        self.last_report: Optional[CycleReport] = None

    async def run(self) -> None:
        """Run passes until stop() is called."""
        logger.info("Starting polling scheduler")
        self._running = True
        self._shutdown_event.clear()

        while self._running:
            try:
                report = await self.run_cycle()
                delay = self.next_delay(report)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Unexpected error in polling pass: {e}")
                delay = self.settings.polling.interval

            if delay <= 0:
                logger.info("Starting accelerated re-pass")
                await asyncio.sleep(0)
                if self._shutdown_event.is_set():
                    break
                continue

            logger.info(f"Next pass in {delay:.0f}s")
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
                # Shutdown event was set
                break
            except asyncio.TimeoutError:
                pass

        logger.info("Polling scheduler stopped")

    async def stop(self) -> None:
        """Stop after the current pass."""
        logger.info("Stopping polling scheduler")
        self._running = False
        self._shutdown_event.set()

    async def run_cycle(self) -> CycleReport:
        """
        Run one full pass.

        Returns:
            Counters for the pass.
        """
        report = CycleReport()

        try:
            credential = await self.authenticator.login()
            manifest = await self.manifest_fetcher.fetch(credential)
        except AuthPending as e:
            logger.warning(f"Pass halted, OTP challenge {e.challenge_id} awaits a code")
            report.aborted_reason = "auth_pending"
            return self._finish(report)
        except AccountInactive as e:
            logger.error(f"Pass halted, {e.message}; human action required")
            report.aborted_reason = "account_inactive"
            return self._finish(report)
        except CloudUnavailable as e:
            logger.error(f"Pass skipped, cloud unavailable: {e.message}")
            report.aborted_reason = "cloud_unavailable"
            return self._finish(report)

        self.cache.merge(manifest)
        devices = list(self.cache)
        report.devices = len(devices)

        for device in devices:
            ip = await self.locator.resolve(device, self.cache)
            if ip:
                report.resolved += 1
            else:
                report.unresolved += 1
                report.unresolved_serials.append(device.serial)

        for device in devices:
            if device.ip:
                await self._sample_device(device, report)

        return self._finish(report)

    async def _sample_device(self, device: Device, report: CycleReport) -> None:
        """Run one session and persist its sample."""
        session = self._session_factory(
            device,
            self.decryptor,
            self.settings.session,
            self.settings.receive_timeout,
        )

        try:
            sample = await session.run()
        except CredentialError as e:
            logger.error(f"Skipping {device.label}: {e.message}")
            self._record_failure(device, report)
            return
        except DeviceUnreachable as e:
            logger.error(f"Connection error: {device.label}: {e.message}")
            self.cache.forget_ip(device.serial)
            self._record_failure(device, report)
            return
        except Exception as e:
            logger.exception(f"Unexpected error sampling {device.label}: {e}")
            self._record_failure(device, report)
            return

        report.sampled += 1
        if await self.writer.write(sample):
            report.persisted += 1

    def _record_failure(self, device: Device, report: CycleReport) -> None:
        report.failed += 1
        report.failed_serials.append(device.serial)

    def _finish(self, report: CycleReport) -> CycleReport:
        self.last_report = report
        if report.aborted:
            logger.info(f"Pass aborted: {report.aborted_reason}")
        else:
            logger.info(
                f"Pass complete: devices={report.devices} resolved={report.resolved} "
                f"unresolved={report.unresolved} sampled={report.sampled} "
                f"failed={report.failed} persisted={report.persisted}"
            )
        return report

    def next_delay(self, report: CycleReport) -> float:
        """
        Seconds to wait before the next pass.

        A clean pass waits the configured interval and resets the retry
        counter. A pass with unresolved or failed devices is re-run at once
        the first time, then with exponential backoff, and after
        ``max_fast_retries`` consecutive re-passes the normal interval is
        used until a clean pass. Halted passes wait the normal interval.

        Args:
            report: Report of the pass just finished.

        Returns:
            Delay in seconds.
        """
        polling = self.settings.polling

        if report.aborted:
            return polling.interval

        if not report.needs_retry:
            self._fast_retries = 0
            return polling.interval

        self._fast_retries += 1
        if self._fast_retries > polling.max_fast_retries:
            logger.warning(
                f"{report.errors} devices still failing after "
                f"{polling.max_fast_retries} accelerated re-passes, "
                f"waiting the normal interval"
            )
            return polling.interval

        if self._fast_retries == 1:
            return 0.0

        backoff = polling.retry_backoff * (2 ** (self._fast_retries - 2))
        return min(backoff, polling.interval)

    @property
    def is_running(self) -> bool:
        return self._running
