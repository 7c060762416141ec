"""
Unit tests for sample persistence.
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from purifier_collector.config import TimescaleSettings
from purifier_collector.sensors.sample import SensorSample
from purifier_collector.storage import TimescaleSampleWriter, rows_affected
from tests.simulators import InMemorySampleWriter


@pytest.fixture
def sample():
    return SensorSample(
        timestamp=datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc),
        device_serial="NK6-EU-MHA0000A",
        location="Living Room",
        air_quality_index=3,
        temperature_celsius=20.1,
        humidity_percent=45,
        nitrogen_dioxide_density=20,
    )


def mock_pool(status="INSERT 0 1"):
    """Pool whose acquire() yields a connection returning the given status."""
    conn = AsyncMock()
    conn.execute = AsyncMock(return_value=status)
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    pool.close = AsyncMock()
    return pool, conn


class TestRowsAffected:
    @pytest.mark.parametrize("status,expected", [
        ("INSERT 0 1", 1),
        ("INSERT 0 0", 0),
        ("INSERT 0 2", 2),
        ("", 0),
        (None, 0),
    ])
    def test_parse(self, status, expected):
        assert rows_affected(status) == expected


class TestSensorSample:
    def test_to_record(self, sample):
        assert sample.to_record() == {
            "time": sample.timestamp,
            "device": "NK6-EU-MHA0000A",
            "location": "Living Room",
            "air": 3,
            "temperature": 20.1,
            "humidity": 45,
            "nitrogen": 20,
        }


class TestTimescaleSampleWriter:
    """Writes through a mocked asyncpg pool."""

    @pytest.mark.asyncio
    async def test_write_success(self, sample):
        writer = TimescaleSampleWriter(TimescaleSettings())
        writer._pool, conn = mock_pool("INSERT 0 1")

        assert await writer.write(sample) is True

        args = conn.execute.await_args.args
        assert "INSERT INTO" in args[0]
        assert args[1:] == (
            sample.timestamp, "NK6-EU-MHA0000A", "Living Room", 3, 20.1, 45, 20,
        )

    @pytest.mark.asyncio
    async def test_zero_rows_is_failure(self, sample):
        writer = TimescaleSampleWriter(TimescaleSettings())
        writer._pool, _ = mock_pool("INSERT 0 0")

        assert await writer.write(sample) is False

    @pytest.mark.asyncio
    async def test_database_error_is_not_raised(self, sample):
        writer = TimescaleSampleWriter(TimescaleSettings())
        writer._pool, conn = mock_pool()
        conn.execute.side_effect = OSError("connection reset")

        assert await writer.write(sample) is False

    @pytest.mark.asyncio
    async def test_unreachable_database(self, sample):
        writer = TimescaleSampleWriter(TimescaleSettings())

        with patch(
            "purifier_collector.storage.timescale_writer.asyncpg.create_pool",
            AsyncMock(side_effect=OSError("connection refused")),
        ):
            assert await writer.write(sample) is False

    @pytest.mark.asyncio
    async def test_connect_ensures_table(self):
        settings = TimescaleSettings(table="readings")
        pool, conn = mock_pool("CREATE TABLE")

        with patch(
            "purifier_collector.storage.timescale_writer.asyncpg.create_pool",
            AsyncMock(return_value=pool),
        ):
            writer = TimescaleSampleWriter(settings)
            await writer.connect()

        statements = [call.args[0] for call in conn.execute.await_args_list]
        assert any('CREATE TABLE IF NOT EXISTS "readings"' in s for s in statements)
        assert any("create_hypertable" in s for s in statements)

        await writer.disconnect()
        pool.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_table_setup_failure_closes_every_pool(self, sample):
        pools = []

        async def create_pool(**kwargs):
            pool, conn = mock_pool()
            conn.execute.side_effect = asyncpg.exceptions.InsufficientPrivilegeError(
                "permission denied for schema public"
            )
            pools.append(pool)
            return pool

        with patch(
            "purifier_collector.storage.timescale_writer.asyncpg.create_pool",
            AsyncMock(side_effect=create_pool),
        ):
            writer = TimescaleSampleWriter(TimescaleSettings())
            await writer.connect()
            for _ in range(3):
                assert await writer.write(sample) is False

        assert len(pools) == 4
        for pool in pools:
            pool.close.assert_awaited_once()
        assert writer._pool is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        asyncpg.InterfaceError("cannot perform operation: connection is closed"),
        asyncio.TimeoutError(),
    ])
    async def test_connect_errors_are_not_raised(self, error):
        with patch(
            "purifier_collector.storage.timescale_writer.asyncpg.create_pool",
            AsyncMock(side_effect=error),
        ):
            writer = TimescaleSampleWriter(TimescaleSettings())
            await writer.connect()

        assert writer._pool is None


class TestInMemoryWriter:
    """The write contract on the abstract writer."""

    @pytest.mark.asyncio
    async def test_failure_for_one_device_only(self, sample):
        writer = InMemorySampleWriter(fail_serials={"NK6-EU-MHA0000A"})

        assert await writer.write(sample) is False
        assert writer.rows == []
