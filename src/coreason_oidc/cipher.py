# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Symmetric ciphers for encrypting token secrets at rest.
"""

from typing import Protocol, runtime_checkable

import anyio
import anyio.lowlevel
from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from coreason_oidc.config import CipherSettings
from coreason_oidc.exceptions import CipherError, ConfigurationError
from coreason_oidc.utils.logger import logger


@runtime_checkable
class Cipher(Protocol):
    """Protocol for a symmetric cipher. Both operations must be cancellable."""

    async def encrypt(self, plaintext: bytes) -> str:
        """Encrypts ``plaintext`` and returns a text-safe ciphertext."""
        ...

    async def decrypt(self, ciphertext: str) -> bytes:
        """Decrypts a ciphertext produced by :meth:`encrypt`."""
        ...


class FernetCipher:
    """
    Fernet (AES-128-CBC + HMAC-SHA256) cipher with key rotation.

    The first key encrypts; every key is tried when decrypting.
    """

    def __init__(self, keys: list[str]) -> None:
        """
        Initialize the FernetCipher.

        Args:
            keys: urlsafe-base64 encoded 32-byte keys, newest first.

        Raises:
            ConfigurationError: If no key is given or a key is malformed.
        """
        if not keys:
            raise ConfigurationError("At least one cipher secret is required.")
        try:
            self._fernet = MultiFernet([Fernet(key) for key in keys])
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid cipher secret: {e}") from e

    async def encrypt(self, plaintext: bytes) -> str:
        try:
            token = await anyio.to_thread.run_sync(self._fernet.encrypt, plaintext, abandon_on_cancel=True)
        except TypeError as e:
            raise CipherError(f"Unable to encrypt value: {e}") from e
        return token.decode("ascii")

    async def decrypt(self, ciphertext: str) -> bytes:
        try:
            return await anyio.to_thread.run_sync(
                self._fernet.decrypt, ciphertext.encode("ascii"), abandon_on_cancel=True
            )
        except (InvalidToken, UnicodeEncodeError) as e:
            raise CipherError("Unable to decrypt value: invalid ciphertext or unknown key") from e


class NoopCipher:
    """Stores values in plain text. Never use outside local development."""

    async def encrypt(self, plaintext: bytes) -> str:
        await anyio.lowlevel.checkpoint()
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CipherError(f"Unable to encode value: {e}") from e

    async def decrypt(self, ciphertext: str) -> bytes:
        await anyio.lowlevel.checkpoint()
        return ciphertext.encode("utf-8")


def new_cipher(settings: CipherSettings) -> Cipher:
    """
    Creates the cipher selected by ``settings.algorithm``.

    Raises:
        ConfigurationError: If the settings cannot produce a usable cipher.
    """
    if settings.algorithm == "noop":
        logger.warning("Using the noop cipher: credentials are stored unencrypted.")
        return NoopCipher()
    return FernetCipher([secret.get_secret_value() for secret in settings.secrets])
