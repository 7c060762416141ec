"""
Local credential decryption using AES-256-CBC.
"""
import base64
import binascii
import json
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import CredentialError

# Fixed by the device vendor's protocol; not an application secret.
VENDOR_KEY = bytes(range(1, 33))
VENDOR_IV = bytes(16)


@dataclass(frozen=True)
class LocalCredentials:
    """Decrypted local session credentials, held for one session only."""
    serial: str
    password: str = field(repr=False)

    def __repr__(self) -> str:
        return f"LocalCredentials(serial={self.serial}, password=***)"


class CredentialDecryptor:
    """Decrypts the local credentials blob delivered with the manifest."""

    def __init__(self, key: bytes = VENDOR_KEY, iv: bytes = VENDOR_IV):
        """
        Initialize decryptor with the vendor key material.

        Args:
            key: 32-byte AES key.
            iv: 16-byte initialization vector.
        """
        self._key = key
        self._iv = iv

    def decrypt(self, blob: str) -> LocalCredentials:
        """
        Decrypt a base64 credentials blob.

        Args:
            blob: Base64 encoded ciphertext from the manifest.

        Returns:
            Parsed credentials.

        Raises:
            CredentialError: If the blob is malformed.
        """
        if not blob:
            raise CredentialError("Empty local credentials")

        try:
            ciphertext = base64.b64decode(blob, validate=True)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(self._iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            document = json.loads(plaintext.decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError) as e:
            raise CredentialError(f"Cannot decrypt local credentials: {e}") from e

        if not isinstance(document, dict) or not document.get("apPasswordHash"):
            raise CredentialError("Local credentials carry no password")

        return LocalCredentials(
            serial=str(document.get("serial", "")),
            password=str(document["apPasswordHash"]),
        )
