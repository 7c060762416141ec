"""
Secret store access.
"""
from .secret_store import (
    CHALLENGE_ID_KEY,
    OTP_CODE_KEY,
    PASSWORD_KEY,
    TOKEN_KEY,
    USERNAME_KEY,
    EnvSecretStore,
    SecretStore,
    VaultSecretStore,
    create_secret_store,
)

__all__ = [
    "CHALLENGE_ID_KEY",
    "OTP_CODE_KEY",
    "PASSWORD_KEY",
    "TOKEN_KEY",
    "USERNAME_KEY",
    "EnvSecretStore",
    "SecretStore",
    "VaultSecretStore",
    "create_secret_store",
]
