"""
Vendor cloud access: HTTP client, authentication and the device manifest.
"""
from .authenticator import (
    AuthCredential,
    Authenticator,
    BasicAuthenticator,
    OtpAuthenticator,
    create_authenticator,
)
from .client import CloudClient
from .manifest import ManifestFetcher

__all__ = [
    "AuthCredential",
    "Authenticator",
    "BasicAuthenticator",
    "OtpAuthenticator",
    "create_authenticator",
    "CloudClient",
    "ManifestFetcher",
]
