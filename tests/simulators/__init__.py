"""
Device simulators for collector testing.

Provides virtual purifiers that answer the local pub/sub protocol
without physical hardware, plus in-memory storage and discovery.
"""
from .collaborators import FakeDiscovery, InMemorySampleWriter
from .purifier_simulator import (
    ADVANCED_SERIAL,
    LEGACY_SERIAL,
    FakeMqttClient,
    PurifierNetwork,
    PurifierSimulator,
    encrypt_local_credentials,
)

__all__ = [
    "ADVANCED_SERIAL",
    "LEGACY_SERIAL",
    "FakeDiscovery",
    "InMemorySampleWriter",
    "FakeMqttClient",
    "PurifierNetwork",
    "PurifierSimulator",
    "encrypt_local_credentials",
]
