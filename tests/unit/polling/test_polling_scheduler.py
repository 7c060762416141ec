"""
Unit tests for PollingScheduler.

Runs full passes against simulated purifiers with a faked cloud.
"""
import asyncio
from functools import partial
from unittest.mock import AsyncMock

import pytest

from purifier_collector.cloud.authenticator import AuthCredential
from purifier_collector.discovery.locator import DeviceLocator
from purifier_collector.exceptions import AccountInactive, AuthPending, CloudUnavailable
from purifier_collector.polling import CycleReport, PollingScheduler
from purifier_collector.session.device_session import DeviceSession
from tests.simulators import (
    ADVANCED_SERIAL,
    LEGACY_SERIAL,
    FakeDiscovery,
    InMemorySampleWriter,
    PurifierNetwork,
    PurifierSimulator,
)


@pytest.fixture
def authenticator():
    auth = AsyncMock()
    auth.login = AsyncMock(return_value=AuthCredential.bearer("token"))
    return auth


def make_fetcher(network: PurifierNetwork):
    fetcher = AsyncMock()
    fetcher.fetch = AsyncMock(side_effect=lambda credential: network.manifest())
    return fetcher


def make_scheduler(settings, authenticator, network, discovery=None, writer=None) -> PollingScheduler:
    return PollingScheduler(
        authenticator=authenticator,
        manifest_fetcher=make_fetcher(network),
        locator=DeviceLocator(discovery or FakeDiscovery(network.addresses()), timeout=0.5),
        writer=writer if writer is not None else InMemorySampleWriter(),
        settings=settings,
        session_factory=partial(DeviceSession, client_factory=network.client_factory),
    )


def failing_report() -> CycleReport:
    return CycleReport(devices=3, resolved=2, unresolved=1, sampled=2, persisted=2)


def clean_report() -> CycleReport:
    return CycleReport(devices=3, resolved=3, sampled=3, persisted=3)


class TestRunCycle:
    """One pass over all devices."""

    @pytest.mark.asyncio
    async def test_end_to_end_two_devices(self, settings, authenticator, network, memory_writer):
        scheduler = make_scheduler(settings, authenticator, network, writer=memory_writer)

        report = await scheduler.run_cycle()

        assert report.devices == 2
        assert report.resolved == 2
        assert report.sampled == 2
        assert report.persisted == 2
        assert not report.needs_retry

        rows = {row.device_serial: row for row in memory_writer.rows}
        legacy = rows[LEGACY_SERIAL]
        assert legacy.air_quality_index == 1
        assert legacy.nitrogen_dioxide_density is None
        assert legacy.location == "Bedroom"

        advanced = rows[ADVANCED_SERIAL]
        assert advanced.air_quality_index == 3
        assert advanced.nitrogen_dioxide_density == 20
        assert advanced.temperature_celsius == 20.1
        assert advanced.humidity_percent == 45

    @pytest.mark.asyncio
    async def test_sessions_run_in_manifest_order(self, settings, authenticator, network, memory_writer):
        scheduler = make_scheduler(settings, authenticator, network, writer=memory_writer)

        await scheduler.run_cycle()

        assert memory_writer.serials == [LEGACY_SERIAL, ADVANCED_SERIAL]

    @pytest.mark.asyncio
    async def test_one_of_three_unresolved_triggers_immediate_repass(
        self, settings, authenticator, advanced_simulator, legacy_simulator,
    ):
        lost = PurifierSimulator(serial="VS9-EU-KCA1111A", product_type="520", name="Office", ip=None)
        network = PurifierNetwork(legacy_simulator, advanced_simulator, lost)
        writer = InMemorySampleWriter()
        scheduler = make_scheduler(settings, authenticator, network, writer=writer)

        report = await scheduler.run_cycle()

        assert report.unresolved == 1
        assert report.unresolved_serials == ["VS9-EU-KCA1111A"]
        assert report.persisted == 2
        assert report.needs_retry
        assert scheduler.next_delay(report) == 0
        assert lost.clients == []

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_block_next_device(
        self, settings, authenticator, network,
    ):
        writer = InMemorySampleWriter(fail_serials={LEGACY_SERIAL})
        scheduler = make_scheduler(settings, authenticator, network, writer=writer)

        report = await scheduler.run_cycle()

        assert report.sampled == 2
        assert report.persisted == 1
        assert writer.serials == [ADVANCED_SERIAL]
        assert report.failed == 0

    @pytest.mark.asyncio
    async def test_silent_device_does_not_block_others(
        self, settings, authenticator, network, legacy_simulator, memory_writer,
    ):
        legacy_simulator.silent = True
        scheduler = make_scheduler(settings, authenticator, network, writer=memory_writer)

        report = await scheduler.run_cycle()

        assert report.failed == 1
        assert report.failed_serials == [LEGACY_SERIAL]
        assert memory_writer.serials == [ADVANCED_SERIAL]
        assert legacy_simulator.last_client.disconnected
        assert report.needs_retry

    @pytest.mark.asyncio
    async def test_unreachable_device_is_resolved_again(
        self, settings, authenticator, network, legacy_simulator,
    ):
        legacy_simulator.refuse_connect = True
        discovery = FakeDiscovery(network.addresses())
        scheduler = make_scheduler(settings, authenticator, network, discovery=discovery)

        await scheduler.run_cycle()
        assert scheduler.cache.cached_ip(LEGACY_SERIAL) is None
        assert scheduler.cache.cached_ip(ADVANCED_SERIAL) == "192.168.1.20"

        await scheduler.run_cycle()
        assert discovery.lookups.count(LEGACY_SERIAL) == 2
        assert discovery.lookups.count(ADVANCED_SERIAL) == 1

    @pytest.mark.asyncio
    async def test_credential_error_isolated(self, settings, authenticator, network, memory_writer):
        scheduler = make_scheduler(settings, authenticator, network, writer=memory_writer)

        def corrupted_manifest(credential):
            devices = network.manifest()
            devices[0].local_credentials = "garbage!!"
            return devices

        scheduler.manifest_fetcher.fetch.side_effect = corrupted_manifest

        report = await scheduler.run_cycle()

        assert report.failed == 1
        assert memory_writer.serials == [ADVANCED_SERIAL]
        assert scheduler.cache.cached_ip(LEGACY_SERIAL) == "192.168.1.21"

    @pytest.mark.asyncio
    async def test_cached_addresses_reused(self, settings, authenticator, network):
        discovery = FakeDiscovery(network.addresses())
        scheduler = make_scheduler(settings, authenticator, network, discovery=discovery)

        await scheduler.run_cycle()
        await scheduler.run_cycle()

        assert sorted(discovery.lookups) == sorted([LEGACY_SERIAL, ADVANCED_SERIAL])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error,reason", [
        (AuthPending("chal-1"), "auth_pending"),
        (AccountInactive("UNREGISTERED"), "account_inactive"),
        (CloudUnavailable("timeout"), "cloud_unavailable"),
    ])
    async def test_login_failure_halts_pass(self, settings, authenticator, network, error, reason):
        authenticator.login.side_effect = error
        scheduler = make_scheduler(settings, authenticator, network)

        report = await scheduler.run_cycle()

        assert report.aborted_reason == reason
        assert not report.needs_retry
        scheduler.manifest_fetcher.fetch.assert_not_awaited()
        assert scheduler.next_delay(report) == settings.polling.interval

    @pytest.mark.asyncio
    async def test_manifest_failure_skips_pass(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)
        scheduler.manifest_fetcher.fetch.side_effect = CloudUnavailable("bad gateway", status_code=502)

        report = await scheduler.run_cycle()

        assert report.aborted_reason == "cloud_unavailable"
        assert len(scheduler.cache) == 0


class TestNextDelay:
    """Retry ceiling and backoff."""

    def test_clean_pass_waits_interval(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)

        assert scheduler.next_delay(clean_report()) == 60.0

    def test_backoff_and_ceiling(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)

        delays = [scheduler.next_delay(failing_report()) for _ in range(5)]

        # max_fast_retries=3, retry_backoff=5, interval=60
        assert delays == [0.0, 5.0, 10.0, 60.0, 60.0]

    def test_clean_pass_resets_counter(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)
        for _ in range(4):
            scheduler.next_delay(failing_report())

        assert scheduler.next_delay(clean_report()) == 60.0
        assert scheduler.next_delay(failing_report()) == 0.0

    def test_aborted_pass_keeps_counter(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)

        assert scheduler.next_delay(failing_report()) == 0.0
        assert scheduler.next_delay(CycleReport(aborted_reason="cloud_unavailable")) == 60.0
        assert scheduler.next_delay(failing_report()) == 5.0

    def test_backoff_capped_at_interval(self, settings, authenticator, network):
        settings.polling.max_fast_retries = 10
        settings.polling.retry_backoff = 20.0
        scheduler = make_scheduler(settings, authenticator, network)

        delays = [scheduler.next_delay(failing_report()) for _ in range(4)]

        assert delays == [0.0, 20.0, 40.0, 60.0]


class TestRunLoop:
    """The stoppable loop."""

    @staticmethod
    async def wait_for_cycles(scheduler: PollingScheduler, count: int) -> None:
        for _ in range(200):
            if scheduler.run_cycle.await_count >= count:
                return
            await asyncio.sleep(0.01)

    @pytest.mark.asyncio
    async def test_failed_pass_repeats_immediately(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)
        scheduler.run_cycle = AsyncMock(side_effect=[failing_report(), clean_report(), clean_report()])

        task = asyncio.create_task(scheduler.run())
        await self.wait_for_cycles(scheduler, 2)
        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)

        # Second pass ran without waiting; the third waits the 60s interval
        assert scheduler.run_cycle.await_count == 2
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_stop_loop(self, settings, authenticator, network):
        scheduler = make_scheduler(settings, authenticator, network)
        scheduler.run_cycle = AsyncMock(side_effect=RuntimeError("boom"))

        task = asyncio.create_task(scheduler.run())
        await self.wait_for_cycles(scheduler, 1)
        assert not task.done()

        await scheduler.stop()
        await asyncio.wait_for(task, timeout=1.0)
        assert task.exception() is None
