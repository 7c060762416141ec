"""
Per-device protocol sessions and local credential handling.
"""
from .credentials import CredentialDecryptor, LocalCredentials
from .device_session import (
    REQUEST_STATE_MSG,
    SENSOR_DATA_MSG,
    DeviceSession,
    SessionState,
    create_mqtt_client,
)

__all__ = [
    "CredentialDecryptor",
    "LocalCredentials",
    "REQUEST_STATE_MSG",
    "SENSOR_DATA_MSG",
    "DeviceSession",
    "SessionState",
    "create_mqtt_client",
]
