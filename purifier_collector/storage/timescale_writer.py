"""
TimescaleDB writer for decoded samples.

Writes one row per successful device session into a hypertable. A failed
write is logged and the sample dropped; it never blocks other devices.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import asyncpg

from ..config import TimescaleSettings
from ..exceptions import PersistenceError
from ..sensors.sample import SensorSample

logger = logging.getLogger(__name__)


class SampleWriter(ABC):
    """Persists decoded samples."""

    async def connect(self) -> None:
        """Open the store connection."""

    async def disconnect(self) -> None:
        """Close the store connection."""

    async def write(self, sample: SensorSample) -> bool:
        """
        Write one sample.

        Returns:
            True iff exactly one record was stored. Failures are logged,
            never raised.
        """
        try:
            rows = await self.insert(sample)
            if rows != 1:
                raise PersistenceError(
                    f"Insert affected {rows} rows",
                    sample.device_serial, sample.location,
                )
        except PersistenceError as e:
            logger.error(f"Failed to save data: {sample.location} ({sample.device_serial}): {e.message}")
            return False
        except Exception as e:
            logger.error(f"Failed to save data: {sample.location} ({sample.device_serial}): {e}")
            return False

        logger.info(f"Saved data: {sample.location} ({sample.device_serial})")
        return True

    @abstractmethod
    async def insert(self, sample: SensorSample) -> int:
        """Insert a sample and return the number of rows affected."""


class TimescaleSampleWriter(SampleWriter):
    """
    Writes samples to TimescaleDB.

    Features:
    - Async connection pooling
    - Table and hypertable created on connect
    """

    def __init__(self, settings: TimescaleSettings):
        """
        Initialize the TimescaleDB writer.

        Args:
            settings: TimescaleDB settings.
        """
        self.settings = settings
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def table(self) -> str:
        return f'"{self.settings.table}"'

    async def connect(self) -> None:
        """
        Connect to TimescaleDB and ensure the sample table.

        A pool is only kept once the table is in place; a pool whose setup
        failed is closed again.
        """
        pool: Optional[asyncpg.Pool] = None
        try:
            pool = await asyncpg.create_pool(
                host=self.settings.host,
                port=self.settings.port,
                database=self.settings.name,
                user=self.settings.user,
                password=self.settings.password,
                min_size=self.settings.min_pool_size,
                max_size=self.settings.max_pool_size,
            )
            logger.info(
                f"Connected to TimescaleDB at "
                f"{self.settings.host}:{self.settings.port}"
            )
            await self._ensure_tables(pool)

        except Exception as e:
            logger.error(f"Failed to connect to TimescaleDB: {e}")
            self._pool = None
            if pool is not None:
                await self._close_pool(pool)
            return

        self._pool = pool

    async def disconnect(self) -> None:
        """Disconnect from TimescaleDB."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Disconnected from TimescaleDB")

    async def _close_pool(self, pool: asyncpg.Pool) -> None:
        try:
            await pool.close()
        except Exception as e:
            logger.warning(f"Error closing TimescaleDB pool: {e}")

    async def _ensure_tables(self, pool: asyncpg.Pool) -> None:
        """Ensure the sample table exists."""
        async with pool.acquire() as conn:
            await conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    time TIMESTAMPTZ NOT NULL,
                    device TEXT NOT NULL,
                    location TEXT NOT NULL,
                    air SMALLINT NOT NULL,
                    temperature DOUBLE PRECISION,
                    humidity INTEGER,
                    nitrogen INTEGER
                );
            """)

            try:
                await conn.execute(f"""
                    SELECT create_hypertable(
                        '{self.settings.table}',
                        'time',
                        if_not_exists => TRUE
                    );
                """)
            except asyncpg.PostgresError as e:
                # TimescaleDB extension may be missing; plain table still works
                logger.debug(f"Hypertable creation skipped: {e}")

            await conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{self.settings.table}_device_time
                ON {self.table} (device, time DESC);
            """)

            logger.debug("Sample table and indexes ensured")

    async def insert(self, sample: SensorSample) -> int:
        if not self._pool:
            await self.connect()
        if not self._pool:
            raise PersistenceError(
                "No database connection", sample.device_serial, sample.location,
            )

        record = sample.to_record()
        async with self._pool.acquire() as conn:
            status = await conn.execute(
                f"""
                INSERT INTO {self.table}
                (time, device, location, air, temperature, humidity, nitrogen)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                record["time"],
                record["device"],
                record["location"],
                record["air"],
                record["temperature"],
                record["humidity"],
                record["nitrogen"],
            )

        return rows_affected(status)


def rows_affected(status: str) -> int:
    """Parse a command status such as ``INSERT 0 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
