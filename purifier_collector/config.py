"""
Configuration for the purifier collector.

Provides settings for cloud access, the secret store, LAN discovery,
device sessions, polling, and TimescaleDB storage.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudSettings(BaseSettings):
    """Vendor cloud API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PURIFIER_CLOUD_",
        env_file=".env",
        extra="ignore",
    )

    base_url: str = Field(default="https://appapi.cp.dyson.com", description="Cloud API base URL")
    country: str = Field(default="GB", description="Account country code")
    culture: str = Field(default="en-GB", description="Account culture")
    auth_mode: Literal["basic", "otp"] = Field(default="otp", description="Authentication flow")
    user_agent: str = Field(
        default="android client",
        description="User agent sent to the cloud API",
    )
    timeout: float = Field(default=15.0, description="Request timeout in seconds")


class VaultSettings(BaseSettings):
    """Secret store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="VAULT_",
        env_file=".env",
        extra="ignore",
    )

    backend: Literal["vault", "env"] = Field(default="vault", description="Secret store backend")
    addr: str = Field(default="http://127.0.0.1:8200", description="Vault address")
    token: Optional[str] = Field(default=None, description="Vault token")
    mount: str = Field(default="secret", description="KV v2 mount point")
    path: str = Field(default="purifier-collector", description="Secret path")
    timeout: float = Field(default=5.0, description="Request timeout in seconds")


class DiscoverySettings(BaseSettings):
    """LAN address resolution configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PURIFIER_DISCOVERY_",
        env_file=".env",
        extra="ignore",
    )

    mode: Literal["zeroconf", "static"] = Field(default="zeroconf", description="Discovery backend")
    timeout: float = Field(default=5.0, description="Bounded lookup time in seconds")
    service_type: str = Field(default="_dyson_mqtt._tcp.local.", description="mDNS service type")


class SessionSettings(BaseSettings):
    """Device pub/sub session configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PURIFIER_SESSION_",
        env_file=".env",
        extra="ignore",
    )

    port: int = Field(default=1883, description="Device MQTT port")
    keepalive: int = Field(default=60, description="MQTT keepalive in seconds")
    connect_timeout: float = Field(default=10.0, description="CONNACK wait in seconds")
    receive_timeout: Optional[float] = Field(
        default=None,
        description="Sensor data wait in seconds (defaults to the polling interval)",
    )


class PollingSettings(BaseSettings):
    """Polling loop configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PURIFIER_POLLING_",
        env_file=".env",
        extra="ignore",
    )

    interval: float = Field(default=300.0, ge=60.0, le=3600.0, description="Seconds between passes")
    max_fast_retries: int = Field(default=5, ge=0, description="Accelerated re-passes before backing off")
    retry_backoff: float = Field(default=5.0, ge=0.0, description="Backoff base between re-passes")


class TimescaleSettings(BaseSettings):
    """TimescaleDB configuration for sample storage."""

    model_config = SettingsConfigDict(
        env_prefix="TIMESCALE_",
        env_file=".env",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="purifier", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: str = Field(default="postgres", description="Database password")
    table: str = Field(default="purifier_readings", description="Sample table")
    min_pool_size: int = Field(default=1, description="Minimum pool connections")
    max_pool_size: int = Field(default=4, description="Maximum pool connections")


class CollectorSettings(BaseSettings):
    """Main configuration for the collector."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Purifier Collector")
    log_level: str = Field(default="INFO")

    # Sub-settings
    cloud: CloudSettings = Field(default_factory=CloudSettings)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    timescale: TimescaleSettings = Field(default_factory=TimescaleSettings)

    @property
    def receive_timeout(self) -> float:
        """Bounded wait for sensor data in one session."""
        if self.session.receive_timeout is not None:
            return self.session.receive_timeout
        return self.polling.interval


@lru_cache()
def get_collector_settings() -> CollectorSettings:
    """
    Get cached collector settings.

    Uses LRU cache to avoid re-reading environment variables on every access.
    """
    return CollectorSettings()
