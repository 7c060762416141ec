"""
Cloud authentication.

Two flows exist: a static basic-auth exchange, and an email one-time
password flow that yields a bearer token. Both keep their state in the
secret store so an operator can enter the OTP out of band.
"""
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..exceptions import AccountInactive, AuthPending, CloudUnavailable
from ..vault.secret_store import (
    CHALLENGE_ID_KEY,
    OTP_CODE_KEY,
    PASSWORD_KEY,
    TOKEN_KEY,
    USERNAME_KEY,
    SecretStore,
)
from .client import CloudClient

logger = logging.getLogger(__name__)

BASIC_AUTH_PATH = "/v1/userregistration/authenticate"
USER_STATUS_PATH = "/v3/userregistration/email/userstatus"
OTP_REQUEST_PATH = "/v3/userregistration/email/auth"
OTP_VERIFY_PATH = "/v3/userregistration/email/verify"

ACCOUNT_ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class AuthCredential:
    """Authorization value for cloud requests."""
    scheme: str
    value: str = field(repr=False)

    @property
    def header(self) -> Dict[str, str]:
        return {"Authorization": f"{self.scheme} {self.value}"}

    @classmethod
    def basic(cls, account: str, password: str) -> "AuthCredential":
        pair = base64.b64encode(f"{account}:{password}".encode("utf-8")).decode("ascii")
        return cls(scheme="Basic", value=pair)

    @classmethod
    def bearer(cls, token: str) -> "AuthCredential":
        return cls(scheme="Bearer", value=token)


class Authenticator(ABC):
    """Obtains an authorization credential for the cloud API."""

    def __init__(self, client: CloudClient, secrets: SecretStore):
        self.client = client
        self.secrets = secrets

    @abstractmethod
    async def login(self) -> AuthCredential:
        """
        Return a valid credential.

        Raises:
            AuthPending: An OTP challenge awaits external action.
            AccountInactive: The account is not active.
            CloudUnavailable: Transport or auth failure.
        """

    @abstractmethod
    async def invalidate(self) -> None:
        """Drop any cached credential so the next login starts over."""

    async def _account(self) -> tuple:
        username = await self.secrets.get(USERNAME_KEY)
        password = await self.secrets.get(PASSWORD_KEY)
        if not username or not password:
            raise CloudUnavailable("Cloud username or password missing from secret store")
        return username, password


class BasicAuthenticator(Authenticator):
    """Email/password exchange returning an account/password basic-auth pair."""

    def __init__(self, client: CloudClient, secrets: SecretStore):
        super().__init__(client, secrets)
        self._credential: Optional[AuthCredential] = None

    async def login(self) -> AuthCredential:
        if self._credential is not None:
            return self._credential

        username, password = await self._account()
        logger.debug("Authenticating with cloud (basic)")
        body = await self.client.request(
            "POST",
            BASIC_AUTH_PATH,
            json={"Email": username, "Password": password},
            params={"country": self.client.settings.country},
        )

        if not body or not body.get("Account") or not body.get("Password"):
            raise CloudUnavailable("Cloud authentication returned no account pair")

        self._credential = AuthCredential.basic(body["Account"], body["Password"])
        logger.info("Authenticated with cloud")
        return self._credential

    async def invalidate(self) -> None:
        self._credential = None


class OtpAuthenticator(Authenticator):
    """
    Email one-time password flow returning a bearer token.

    Policy:
    1. Reuse the stored token unless invalidated
    2. Check that the account is active
    3. Without a stored challenge id and OTP, request a challenge, store
       its id and stop with AuthPending
    4. With both, verify them, store the token and clear the challenge
    """

    async def login(self) -> AuthCredential:
        token = await self.secrets.get(TOKEN_KEY)
        if token:
            return AuthCredential.bearer(token)

        username, password = await self._account()
        await self._check_account(username)

        challenge_id = await self.secrets.get(CHALLENGE_ID_KEY)
        otp_code = await self.secrets.get(OTP_CODE_KEY)

        if not challenge_id or not otp_code:
            if challenge_id:
                logger.warning(
                    f"OTP challenge {challenge_id} still awaiting code, "
                    f"store it under {OTP_CODE_KEY}"
                )
                raise AuthPending(challenge_id)
            challenge_id = await self._request_challenge(username)
            raise AuthPending(challenge_id)

        try:
            token = await self._verify(username, password, challenge_id, otp_code)
        except CloudUnavailable as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                # Rejected code; the next cycle requests a fresh challenge.
                logger.error(f"OTP verification rejected ({e.status_code}), clearing challenge")
                await self.secrets.delete(CHALLENGE_ID_KEY)
                await self.secrets.delete(OTP_CODE_KEY)
            raise

        await self.secrets.set(TOKEN_KEY, token)
        await self.secrets.delete(CHALLENGE_ID_KEY)
        await self.secrets.delete(OTP_CODE_KEY)
        logger.info("Authenticated with cloud (OTP verified)")
        return AuthCredential.bearer(token)

    async def invalidate(self) -> None:
        logger.info("Invalidating stored cloud token")
        await self.secrets.delete(TOKEN_KEY)

    async def _check_account(self, username: str) -> None:
        body = await self.client.request(
            "POST",
            USER_STATUS_PATH,
            json={"email": username},
            params={"country": self.client.settings.country},
        )
        status = (body or {}).get("accountStatus")
        if status != ACCOUNT_ACTIVE:
            raise AccountInactive(status)

    async def _request_challenge(self, username: str) -> str:
        body = await self.client.request(
            "POST",
            OTP_REQUEST_PATH,
            json={"email": username},
            params=self.client.locale_params,
        )
        challenge_id = (body or {}).get("challengeId")
        if not challenge_id:
            raise CloudUnavailable("Cloud returned no OTP challenge id")

        await self.secrets.set(CHALLENGE_ID_KEY, str(challenge_id))
        logger.warning(
            f"OTP challenge {challenge_id} requested, "
            f"store the emailed code under {OTP_CODE_KEY}"
        )
        return str(challenge_id)

    async def _verify(
        self,
        username: str,
        password: str,
        challenge_id: str,
        otp_code: str,
    ) -> str:
        body = await self.client.request(
            "POST",
            OTP_VERIFY_PATH,
            json={
                "email": username,
                "password": password,
                "challengeId": challenge_id,
                "otpCode": otp_code,
            },
            params=self.client.locale_params,
        )
        token = (body or {}).get("token")
        if not token:
            raise CloudUnavailable("Cloud returned no token for OTP verification")
        return str(token)


def create_authenticator(
    mode: str,
    client: CloudClient,
    secrets: SecretStore,
) -> Authenticator:
    """Build the authenticator for the configured auth mode."""
    if mode == "basic":
        return BasicAuthenticator(client, secrets)
    return OtpAuthenticator(client, secrets)
