"""
Error Taxonomy

Typed exceptions raised by the encryption and key lifecycle layers.
Each carries an HTTP-equivalent status code so the API layer can map
failures without inspecting messages.

Verification never raises these for "document does not verify" - it
returns structured results instead.
"""
from typing import Any, Dict


class BadgeServerError(Exception):
    """Base class for all credential-core errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class EncryptionError(BadgeServerError):
    """Raised when private key material cannot be encrypted (or the master secret is missing)."""


class DecryptionError(BadgeServerError):
    """Raised when an encrypted blob is malformed or cannot be decrypted."""


class DecryptionIntegrityError(DecryptionError):
    """
    Authentication tag mismatch.

    The blob was tampered with, or it was encrypted under a different
    master secret. Reported as bad input rather than a server fault.
    """

    status_code = 400


class NotFoundError(BadgeServerError):
    status_code = 404


class KeyNotFoundError(NotFoundError):
    """No signing key (or no private key) exists for the requested owner/key id."""


class AssertionNotFoundError(NotFoundError):
    pass


class InvalidKeyError(BadgeServerError):
    """Supplied key material is not a usable Ed25519 public key."""

    status_code = 400


class KeyStateError(BadgeServerError):
    """Illegal lifecycle transition, e.g. rotating a revoked key or losing a rotation race."""

    status_code = 409


class SigningError(BadgeServerError):
    """Key material could not be used to produce a signature."""


def to_error_payload(exc: Exception) -> Dict[str, Any]:
    """
    Convert an exception into a JSON-safe payload.

    Unknown exceptions are reported generically so internal details
    never reach the caller.
    """
    if isinstance(exc, BadgeServerError):
        return {"error": exc.message, "status_code": exc.status_code}
    return {"error": "Internal error", "status_code": 500}
