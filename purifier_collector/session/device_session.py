"""
One device's pub/sub round trip.

The purifier runs an MQTT broker on the LAN. A session connects with the
decrypted local password, subscribes to the device status topic, asks for
the current state, waits for exactly one environmental sensor message and
closes again:

    CONNECTING -> CONNECTED -> AWAITING_DATA -> CLOSING -> CLOSED

Any failure moves the session to ERROR before it closes; every exit path
ends in CLOSED with the connection released.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from ..config import SessionSettings
from ..devices.device import Device, ProductGeneration
from ..exceptions import CollectorError, CredentialError, DeviceUnreachable, SessionTimeout
from ..sensors.decoder import decode
from ..sensors.sample import SensorSample
from .credentials import CredentialDecryptor

logger = logging.getLogger(__name__)

REQUEST_STATE_MSG = "REQUEST-CURRENT-STATE"
SENSOR_DATA_MSG = "ENVIRONMENTAL-CURRENT-SENSOR-DATA"

# Queued when the broker drops the connection while data is awaited.
_DISCONNECTED = object()


class SessionState(str, Enum):
    """Device session lifecycle state."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AWAITING_DATA = "awaiting_data"
    CLOSING = "closing"
    CLOSED = "closed"
    ERROR = "error"


def create_mqtt_client(device: Device, password: str) -> mqtt.Client:
    """
    Build a paho client for one device.

    Legacy models only speak MQTT 3.1 (``MQIsdp``).
    """
    protocol = mqtt.MQTTv31 if device.generation == ProductGeneration.LEGACY else mqtt.MQTTv311
    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=f"purifier-collector-{device.serial}",
        protocol=protocol,
    )
    client.username_pw_set(device.serial, password)
    return client


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DeviceSession:
    """
    Owns one device's connect, subscribe, request, receive, close sequence.

    paho runs its network loop in a background thread; callbacks hand
    results to the event loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        device: Device,
        decryptor: CredentialDecryptor,
        settings: SessionSettings,
        receive_timeout: float,
        client_factory: Callable[[Device, str], Any] = create_mqtt_client,
    ):
        """
        Initialize the session.

        Args:
            device: Device with a resolved address.
            decryptor: Local credential decryptor.
            settings: Session settings.
            receive_timeout: Bounded wait for the sensor message in seconds.
            client_factory: Builds the MQTT client for the device.
        """
        self.device = device
        self.decryptor = decryptor
        self.settings = settings
        self.receive_timeout = receive_timeout
        self._client_factory = client_factory

        self.state = SessionState.CONNECTING
        self.failed = False
        self._client: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connack: Optional[asyncio.Future] = None
        self._messages: Optional[asyncio.Queue] = None
        self._closing = False

    # ==================== Lifecycle ====================

    async def run(self) -> SensorSample:
        """
        Perform the round trip.

        Returns:
            The decoded sample.

        Raises:
            CredentialError: Local credentials could not be decrypted.
            DeviceUnreachable: Connect failure, refusal, drop or timeout.
        """
        device = self.device
        self._loop = asyncio.get_running_loop()
        self._connack = self._loop.create_future()
        self._messages = asyncio.Queue()

        try:
            if not device.ip:
                raise DeviceUnreachable("No address resolved", device.serial, device.name)

            try:
                credentials = self.decryptor.decrypt(device.local_credentials)
            except CredentialError as e:
                raise CredentialError(e.message, device.serial, device.name) from e

            await self._connect(credentials.password)
            self._request_current_state()
            fields = await self._await_sensor_data()

            reading = decode(fields, device.generation)
            sample = SensorSample(
                timestamp=datetime.now(timezone.utc),
                device_serial=device.serial,
                location=device.name,
                air_quality_index=reading.air_quality_index,
                temperature_celsius=reading.temperature_celsius,
                humidity_percent=reading.humidity_percent,
                nitrogen_dioxide_density=reading.nitrogen_dioxide_density,
            )
            logger.debug(f"Got sensor data from {device.label}: {sample}")
            return sample

        except CollectorError:
            self._transition(SessionState.ERROR)
            raise
        except asyncio.CancelledError:
            self._transition(SessionState.ERROR)
            raise
        except Exception as e:
            self._transition(SessionState.ERROR)
            raise DeviceUnreachable(
                f"Session failed: {e}", device.serial, device.name,
            ) from e
        finally:
            self._close()

    def _transition(self, state: SessionState) -> None:
        if self.state == SessionState.CLOSED:
            return
        # ERROR only moves on to teardown
        if self.state == SessionState.ERROR and state not in (SessionState.CLOSING, SessionState.CLOSED):
            return
        if state == SessionState.ERROR:
            self.failed = True
        logger.debug(f"Session {self.device.label}: {self.state.value} -> {state.value}")
        self.state = state

    async def _connect(self, password: str) -> None:
        """Open the connection and wait for CONNACK."""
        device = self.device
        logger.debug(f"Connecting to {device.label} on {device.ip}")

        self._client = self._client_factory(device, password)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        try:
            await self._loop.run_in_executor(
                None,
                partial(
                    self._client.connect,
                    device.ip,
                    self.settings.port,
                    self.settings.keepalive,
                ),
            )
        except (OSError, ValueError) as e:
            raise DeviceUnreachable(
                f"Connection error: {e}", device.serial, device.name,
            ) from e

        self._client.loop_start()

        try:
            await asyncio.wait_for(self._connack, timeout=self.settings.connect_timeout)
        except asyncio.TimeoutError as e:
            raise DeviceUnreachable(
                "Connection timeout waiting for CONNACK", device.serial, device.name,
            ) from e

        self._transition(SessionState.CONNECTED)
        logger.debug(f"Connected to {device.label}")

    def _request_current_state(self) -> None:
        """Subscribe to status and publish the state request."""
        device = self.device

        result, _ = self._client.subscribe(device.status_topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise DeviceUnreachable(
                f"Subscribe to {device.status_topic} failed (rc={result})",
                device.serial, device.name,
            )

        payload = json.dumps({"msg": REQUEST_STATE_MSG, "time": now_iso()})
        info = self._client.publish(device.command_topic, payload)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise DeviceUnreachable(
                f"State request publish failed (rc={info.rc})",
                device.serial, device.name,
            )

        self._transition(SessionState.AWAITING_DATA)

    async def _await_sensor_data(self) -> Dict[str, Any]:
        """Wait for the first environmental sensor message within the timeout."""
        device = self.device
        deadline = self._loop.time() + self.receive_timeout

        while True:
            remaining = deadline - self._loop.time()
            if remaining <= 0:
                break

            try:
                payload = await asyncio.wait_for(self._messages.get(), timeout=remaining)
            except asyncio.TimeoutError:
                break

            if payload is _DISCONNECTED:
                raise DeviceUnreachable("Connection dropped", device.serial, device.name)

            message = self._parse(payload)
            if message is None or message.get("msg") != SENSOR_DATA_MSG:
                continue

            data = message.get("data")
            return data if isinstance(data, dict) else {}

        raise SessionTimeout(
            f"No sensor data within {self.receive_timeout:.0f}s",
            device.serial, device.name,
        )

    def _parse(self, payload: bytes) -> Optional[Dict[str, Any]]:
        try:
            message = json.loads(payload)
        except (TypeError, ValueError):
            logger.debug(f"Discarding non-JSON message from {self.device.label}")
            return None
        return message if isinstance(message, dict) else None

    def _close(self) -> None:
        """Close the connection without waiting for acknowledgment."""
        self._transition(SessionState.CLOSING)
        self._closing = True

        client, self._client = self._client, None
        if client is not None:
            logger.debug(f"Disconnecting from {self.device.label}")
            try:
                client.disconnect()
            except Exception as e:
                logger.warning(f"Error during disconnect from {self.device.label}: {e}")
            finally:
                try:
                    client.loop_stop()
                except Exception as e:
                    logger.warning(f"Error stopping network loop for {self.device.label}: {e}")

        self._transition(SessionState.CLOSED)

    # ==================== MQTT Callbacks ====================

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        """Callback when the device broker answers CONNECT."""
        # Handle both int and ReasonCode values
        if isinstance(reason_code, int):
            rc = reason_code
        else:
            rc = reason_code.value if hasattr(reason_code, "value") else 0

        if rc == 0:
            self._loop.call_soon_threadsafe(self._resolve_connack, None)
        else:
            error = DeviceUnreachable(
                f"Connection refused: {reason_code}",
                self.device.serial, self.device.name,
            )
            self._loop.call_soon_threadsafe(self._resolve_connack, error)

    def _resolve_connack(self, error: Optional[Exception]) -> None:
        if self._connack.done():
            return
        if error is None:
            self._connack.set_result(True)
        else:
            self._connack.set_exception(error)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        """Callback when the connection drops."""
        if self._closing:
            return
        logger.warning(f"Disconnected from {self.device.label} (reason: {reason_code})")
        error = DeviceUnreachable(
            f"Connection dropped: {reason_code}",
            self.device.serial, self.device.name,
        )
        self._loop.call_soon_threadsafe(self._resolve_connack, error)
        self._loop.call_soon_threadsafe(self._messages.put_nowait, _DISCONNECTED)

    def _on_message(self, client, userdata, msg) -> None:
        """Callback when a message is received."""
        self._loop.call_soon_threadsafe(self._messages.put_nowait, msg.payload)
