"""
Shared pytest fixtures for collector tests.

Provides fixtures for:
- Collector settings with short timeouts
- Simulated purifiers
- In-memory secret store, discovery and sample writer
- Cloud client backed by httpx.MockTransport
"""
from typing import Callable

import httpx
import pytest

from purifier_collector.cloud.client import CloudClient
from purifier_collector.config import (
    CloudSettings,
    CollectorSettings,
    PollingSettings,
    SessionSettings,
    VaultSettings,
)
from purifier_collector.vault.secret_store import EnvSecretStore, PASSWORD_KEY, USERNAME_KEY

from tests.simulators import (
    ADVANCED_SERIAL,
    LEGACY_SERIAL,
    FakeDiscovery,
    InMemorySampleWriter,
    PurifierNetwork,
    PurifierSimulator,
)


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings(port=1883, keepalive=60, connect_timeout=0.5, receive_timeout=0.2)


@pytest.fixture
def settings(session_settings) -> CollectorSettings:
    """Collector settings with timeouts short enough for unit tests."""
    return CollectorSettings(
        cloud=CloudSettings(base_url="https://cloud.test", country="GB", culture="en-GB"),
        vault=VaultSettings(backend="env"),
        session=session_settings,
        polling=PollingSettings(interval=60.0, max_fast_retries=3, retry_backoff=5.0),
    )


# ============================================================================
# Device Fixtures
# ============================================================================

@pytest.fixture
def advanced_simulator() -> PurifierSimulator:
    return PurifierSimulator(
        serial=ADVANCED_SERIAL,
        product_type="438",
        name="Living Room",
        ip="192.168.1.20",
        sensor_data={
            "tact": "2931", "hact": "0045", "pm25": "0040", "pm10": "0060",
            "va10": "0050", "noxl": "0020",
        },
    )


@pytest.fixture
def legacy_simulator() -> PurifierSimulator:
    return PurifierSimulator(
        serial=LEGACY_SERIAL,
        product_type="475",
        name="Bedroom",
        ip="192.168.1.21",
        password="bGVnYWN5LXBhc3N3b3Jk",
        sensor_data={"tact": "2950", "hact": "0051", "pact": "0003", "vact": "0002"},
    )


@pytest.fixture
def network(advanced_simulator, legacy_simulator) -> PurifierNetwork:
    return PurifierNetwork(legacy_simulator, advanced_simulator)


# ============================================================================
# Collaborator Fakes
# ============================================================================

@pytest.fixture
def memory_writer() -> InMemorySampleWriter:
    return InMemorySampleWriter()


@pytest.fixture
def fake_discovery(network) -> FakeDiscovery:
    return FakeDiscovery(network.addresses())


@pytest.fixture
def secret_store() -> EnvSecretStore:
    return EnvSecretStore({
        USERNAME_KEY: "owner@example.com",
        PASSWORD_KEY: "cloud-password",
    })


# ============================================================================
# Cloud Fixtures
# ============================================================================

@pytest.fixture
def cloud_settings(settings) -> CloudSettings:
    return settings.cloud


@pytest.fixture
def make_cloud_client(cloud_settings) -> Callable[[Callable], CloudClient]:
    """Factory building a CloudClient routed to a request handler."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> CloudClient:
        return CloudClient(cloud_settings, transport=httpx.MockTransport(handler))
    return factory

