"""
Collector exceptions.

Every failure in the collection pipeline is translated into one of these
kinds at the component boundary, so the scheduler can decide whether to
skip a device, halt a cycle, or keep going.
"""
from typing import Any, Dict, Optional


class CollectorError(Exception):
    """
    Base exception for all collector errors.

    Carries a machine-readable code and a details mapping with enough
    context (serial, display name) for diagnosis.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for structured logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class CloudUnavailable(CollectorError):
    """Cloud authentication or manifest request failed; retry next cycle."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        unauthorized: bool = False,
    ):
        self.status_code = status_code
        self.unauthorized = unauthorized
        super().__init__(
            message=message,
            code="CLOUD_UNAVAILABLE",
            details={"status_code": status_code, "unauthorized": unauthorized},
        )


class AuthPending(CollectorError):
    """An OTP challenge is outstanding and awaits external entry of the code."""

    def __init__(self, challenge_id: str):
        self.challenge_id = challenge_id
        super().__init__(
            message="One-time password requested, waiting for the code to be stored",
            code="AUTH_PENDING",
            details={"challenge_id": challenge_id},
        )


class AccountInactive(CollectorError):
    """The cloud account is not active; needs human action."""

    def __init__(self, status: Optional[str]):
        self.status = status
        super().__init__(
            message=f"Cloud account is not active (status={status})",
            code="ACCOUNT_INACTIVE",
            details={"account_status": status},
        )


class _DeviceError(CollectorError):
    def __init__(
        self,
        message: str,
        serial: Optional[str] = None,
        name: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.serial = serial
        self.name = name
        super().__init__(
            message=message,
            code=code,
            details={"serial": serial, "name": name},
        )


class CredentialError(_DeviceError):
    """Local credentials blob could not be decrypted or parsed."""

    def __init__(self, message: str, serial: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message, serial, name, code="CREDENTIAL_ERROR")


class DeviceUnreachable(_DeviceError):
    """Device could not be located, connected to, or did not answer."""

    def __init__(self, message: str, serial: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message, serial, name, code="DEVICE_UNREACHABLE")


class SessionTimeout(DeviceUnreachable):
    """No sensor data message arrived within the bounded wait."""


class PersistenceError(_DeviceError):
    """A sample could not be written to the store."""

    def __init__(self, message: str, serial: Optional[str] = None, name: Optional[str] = None):
        super().__init__(message, serial, name, code="PERSISTENCE_ERROR")
