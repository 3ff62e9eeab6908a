"""
Private Key Envelope Encryption

Encrypts signing-key material before it is written to the database.

Every call to encrypt() draws a fresh 16-byte salt and 16-byte IV. The
salt feeds PBKDF2-HMAC-SHA512 together with the master secret to derive a
one-off 256-bit key, which then seals the plaintext with AES-256-GCM.

Storage format (base64 of the concatenation, fixed-width prefix):
    salt (16) || iv (16) || auth tag (16) || ciphertext (rest)

The master secret is injected at construction. There is no fallback:
without MASTER_ENCRYPTION_KEY the cipher cannot be built.

MASTER KEY ROTATION:
Not automated. Changing MASTER_ENCRYPTION_KEY makes every stored key
unreadable until it is re-encrypted. reencrypt() is the building block
for an operator migration:
    old = EnvelopeCipher(OLD_SECRET); new = EnvelopeCipher(NEW_SECRET)
    record.encrypted_private_key = old.reencrypt(blob, new)

Usage:
    python -m badgeserver.core.database.encryption --generate-key
    python -m badgeserver.core.database.encryption --check-blob <blob>
"""
import asyncio
import base64
import binascii
import logging
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from badgeserver.core.config import MIN_KDF_ITERATIONS, Settings, get_settings
from badgeserver.core.errors import (
    DecryptionError,
    DecryptionIntegrityError,
    EncryptionError,
)

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH


class EnvelopeCipher:
    """
    AES-256-GCM envelope cipher keyed by a master secret.

    Stateless apart from the master secret, which is read-only after
    construction. Safe to share across threads.
    """

    def __init__(self, master_secret: Optional[str], iterations: int = MIN_KDF_ITERATIONS):
        """
        Args:
            master_secret: Process-wide master secret (MASTER_ENCRYPTION_KEY)
            iterations: PBKDF2 iteration count (>= 100,000)

        Raises:
            EncryptionError: If the master secret is missing or iterations too low
        """
        if not master_secret:
            logger.critical("MASTER_ENCRYPTION_KEY is not set - refusing to start")
            raise EncryptionError(
                "MASTER_ENCRYPTION_KEY is required - signing keys cannot be protected without it"
            )
        if iterations < MIN_KDF_ITERATIONS:
            raise EncryptionError(
                f"KDF iterations must be at least {MIN_KDF_ITERATIONS} (got {iterations})"
            )
        self._master = master_secret.encode("utf-8")
        self.iterations = iterations

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EnvelopeCipher":
        """Build the cipher from application settings."""
        settings = settings or get_settings()
        return cls(settings.master_encryption_key, iterations=settings.kdf_iterations)

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(self._master)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a string (typically a PEM private key).

        Args:
            plaintext: Text to protect

        Returns:
            base64(salt || iv || tag || ciphertext)

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            salt = secrets.token_bytes(SALT_LENGTH)
            iv = secrets.token_bytes(IV_LENGTH)
            key = self._derive_key(salt)
            # AESGCM appends the tag to the ciphertext
            sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as e:
            logger.error(f"Private key encryption failed: {type(e).__name__}")
            raise EncryptionError("Encryption failed") from e

        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a blob produced by encrypt().

        Args:
            blob: base64(salt || iv || tag || ciphertext)

        Returns:
            Original plaintext

        Raises:
            DecryptionIntegrityError: Auth tag mismatch (tampered, or wrong master key)
            DecryptionError: Malformed input
        """
        try:
            raw = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError, AttributeError) as e:
            logger.error("Encrypted key blob is not valid base64")
            raise DecryptionError("Decryption failed: malformed encrypted data") from e

        if len(raw) < HEADER_LENGTH:
            logger.error(f"Encrypted key blob too short: {len(raw)} bytes")
            raise DecryptionError("Decryption failed: malformed encrypted data")

        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
        tag = raw[SALT_LENGTH + IV_LENGTH:HEADER_LENGTH]
        ciphertext = raw[HEADER_LENGTH:]

        key = self._derive_key(salt)
        try:
            plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.error("Failed to decrypt private key - invalid authentication tag (tampering or wrong key)")
            raise DecryptionIntegrityError("Decryption failed: invalid authentication tag") from e
        except Exception as e:
            logger.error(f"Private key decryption failed: {type(e).__name__}")
            raise DecryptionError("Decryption failed") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decryption failed: plaintext is not UTF-8") from e

    async def encrypt_async(self, plaintext: str) -> str:
        """encrypt() with the PBKDF2 work moved off the event loop."""
        return await asyncio.to_thread(self.encrypt, plaintext)

    async def decrypt_async(self, blob: str) -> str:
        """decrypt() with the PBKDF2 work moved off the event loop."""
        return await asyncio.to_thread(self.decrypt, blob)

    def reencrypt(self, blob: str, target: "EnvelopeCipher") -> str:
        """Decrypt with this cipher and re-encrypt under ``target`` (master key migration)."""
        return target.encrypt(self.decrypt(blob))


def generate_master_key() -> str:
    """
    Generate a new random master secret.

    Returns:
        URL-safe base64 string (32 random bytes)
    """
    return base64.urlsafe_b64encode(os.urandom(32)).decode("ascii")


if __name__ == "__main__":
    import argparse
    import sys

    from badgeserver.core.config import configure_logging

    parser = argparse.ArgumentParser(description="Signing key envelope encryption utilities")
    parser.add_argument("--generate-key", action="store_true", help="Generate a new master encryption key")
    parser.add_argument("--check-blob", metavar="BLOB", help="Check that the configured master key opens BLOB")
    args = parser.parse_args()

    configure_logging()

    if args.generate_key:
        print("\nNew master encryption key (add to .env as MASTER_ENCRYPTION_KEY):")
        print(generate_master_key())
        sys.exit(0)

    if args.check_blob:
        try:
            cipher = EnvelopeCipher.from_settings()
            cipher.decrypt(args.check_blob)
        except DecryptionIntegrityError:
            print("❌ Blob does not authenticate under the configured master key")
            sys.exit(1)
        except (EncryptionError, DecryptionError) as e:
            print(f"❌ {e.message}")
            sys.exit(1)
        print("✅ Blob decrypts with the configured master key")
        sys.exit(0)

    parser.print_help()
