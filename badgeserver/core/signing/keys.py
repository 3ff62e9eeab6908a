"""
Ed25519 Key Management

Provides key generation, loading, and serialization for Ed25519 keypairs.
Uses the cryptography library for all cryptographic operations.

Supported public key encodings:
- PEM (SubjectPublicKeyInfo) - how keys are stored
- base64 of the raw 32 bytes
- multibase (z + base58btc of 0xed01 || raw), the publicKeyMultibase
  form of Ed25519VerificationKey2020
"""

import base64
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from badgeserver.core.signing.canonical import multibase_decode, multibase_encode

# Multicodec header for ed25519-pub
ED25519_PUB_MULTICODEC = bytes([0xED, 0x01])


def generate_keypair() -> Tuple[Ed25519PrivateKey, Ed25519PublicKey]:
    """
    Generate a new Ed25519 keypair.

    Returns:
        Tuple of (private_key, public_key)

    Example:
        >>> private_key, public_key = generate_keypair()
        >>> pem = public_key_to_pem(public_key)
    """
    private_key = Ed25519PrivateKey.generate()
    return private_key, private_key.public_key()


def private_key_to_pem(private_key: Ed25519PrivateKey) -> str:
    """
    Serialize a private key to unencrypted PKCS8 PEM.

    WARNING: The result is sensitive. Encrypt it before it is stored.
    """
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


def pem_to_private_key(pem: str) -> Ed25519PrivateKey:
    """
    Load a private key from PEM text.

    Raises:
        ValueError: If the PEM is invalid or not an Ed25519 key
    """
    try:
        private_key = serialization.load_pem_private_key(pem.encode("ascii"), password=None)
    except Exception as e:
        raise ValueError(f"Failed to load private key: {e}") from e
    if not isinstance(private_key, Ed25519PrivateKey):
        raise ValueError(f"Not an Ed25519 key: {type(private_key).__name__}")
    return private_key


def public_key_to_pem(public_key: Ed25519PublicKey) -> str:
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def public_key_to_raw(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def public_key_to_base64(public_key: Ed25519PublicKey) -> str:
    """
    Serialize a public key to base64-encoded string.

    Returns:
        Base64-encoded public key string (44 characters)
    """
    return base64.b64encode(public_key_to_raw(public_key)).decode("ascii")


def base64_to_public_key(b64_key: str) -> Ed25519PublicKey:
    """
    Deserialize a base64-encoded public key string.

    Raises:
        ValueError: If the key is invalid or wrong length
    """
    try:
        raw_bytes = base64.b64decode(b64_key, validate=True)
        if len(raw_bytes) != 32:
            raise ValueError(f"Invalid public key length: {len(raw_bytes)} bytes (expected 32)")
        return Ed25519PublicKey.from_public_bytes(raw_bytes)
    except Exception as e:
        raise ValueError(f"Invalid public key: {e}") from e


def public_key_to_multibase(public_key: Ed25519PublicKey) -> str:
    return multibase_encode(ED25519_PUB_MULTICODEC + public_key_to_raw(public_key))


def multibase_to_public_key(value: str) -> Ed25519PublicKey:
    """
    Decode a publicKeyMultibase value.

    Raises:
        ValueError: If the value is not a multibase Ed25519 public key
    """
    decoded = multibase_decode(value)
    if decoded[:2] != ED25519_PUB_MULTICODEC or len(decoded) != 34:
        raise ValueError("Not a multibase Ed25519 public key")
    return Ed25519PublicKey.from_public_bytes(decoded[2:])


def load_public_key(value: str) -> Ed25519PublicKey:
    """
    Load a stored public key in any supported encoding.

    Args:
        value: PEM, multibase (z...) or base64 raw key

    Raises:
        ValueError: If the value cannot be parsed as an Ed25519 public key
    """
    value = value.strip()
    if value.startswith("-----BEGIN"):
        try:
            key = serialization.load_pem_public_key(value.encode("ascii"))
        except Exception as e:
            raise ValueError(f"Invalid PEM public key: {e}") from e
        if not isinstance(key, Ed25519PublicKey):
            raise ValueError(f"Not an Ed25519 key: {type(key).__name__}")
        return key
    if value.startswith("z"):
        # base64 keys can also start with "z"
        try:
            return multibase_to_public_key(value)
        except ValueError:
            pass
    return base64_to_public_key(value)
