"""
Signing Key Lifecycle

Generates issuer signing keys, stores them with the private half
envelope-encrypted, and manages rotation and revocation.

Lifecycle:
    create_key / ensure_key_exists  ->  active
    rotate_key(old)                 ->  old: rotated, new: active (previous_key_id = old)
    revoke_key                      ->  revoked (kept forever)

Keys are never deleted and never rewritten in place: rotation inserts a
new record. Rotated and revoked keys remain resolvable by id so the
verifier can check signatures they made.

Rotation and provisioning are serialized per owner: a process-local lock
plus a conditional status write (UPDATE ... WHERE status = 'active') so
two callers cannot both leave an "active" key behind.
"""
import logging
import threading
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from badgeserver.core.config import Settings, get_settings
from badgeserver.core.database.encryption import EnvelopeCipher
from badgeserver.core.database.models import KeyStatus, SigningKey
from badgeserver.core.database.repository import SigningKeyStore
from badgeserver.core.errors import InvalidKeyError, KeyNotFoundError, KeyStateError, SigningError
from badgeserver.core.signing.keys import (
    generate_keypair,
    load_public_key,
    pem_to_private_key,
    private_key_to_pem,
    public_key_to_base64,
    public_key_to_multibase,
    public_key_to_pem,
)

logger = logging.getLogger(__name__)

# owner_id -> lock guarding provisioning/rotation for that owner.
# Weak values: an entry lives only while some caller holds the lock object.
_owner_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_owner_locks_guard = threading.Lock()


def _lock_for(owner_id: str) -> threading.Lock:
    with _owner_locks_guard:
        lock = _owner_locks.get(owner_id)
        if lock is None:
            lock = threading.Lock()
            _owner_locks[owner_id] = lock
        return lock


@dataclass(frozen=True)
class GeneratedKeyPair:
    """PEM-encoded Ed25519 keypair. Not persisted by generate_key_pair()."""
    public_key_pem: str
    private_key_pem: str = field(repr=False)


@dataclass(frozen=True)
class ResolvedKey:
    """
    Decrypted key material for a single signing operation.

    Callers must not cache this beyond the operation.
    """
    key_id: str
    controller: str
    verification_method: str
    public_key: Ed25519PublicKey = field(repr=False)
    private_key: Optional[Ed25519PrivateKey] = field(default=None, repr=False)
    owner_id: Optional[str] = None


def key_id_from_verification_method(verification_method: str) -> str:
    """
    Extract the key id from a verification method URL.

    "https://issuer.example/abc#<key id>" -> "<key id>"; a bare id is returned as-is.
    """
    if "#" in verification_method:
        return verification_method.rsplit("#", 1)[1]
    return verification_method


class KeyManager:
    """
    Key lifecycle manager.

    Stateless between calls apart from the store it was given. The
    master secret lives in the injected cipher.
    """

    def __init__(
        self,
        store: SigningKeyStore,
        cipher: EnvelopeCipher,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.cipher = cipher
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Generation and provisioning
    # ------------------------------------------------------------------

    def generate_key_pair(self) -> GeneratedKeyPair:
        """Generate a new Ed25519 keypair (PEM). No side effects."""
        private_key, public_key = generate_keypair()
        return GeneratedKeyPair(
            public_key_pem=public_key_to_pem(public_key),
            private_key_pem=private_key_to_pem(private_key),
        )

    def _new_record(self, owner_id: str, controller: str, previous_key_id: Optional[str] = None) -> dict:
        pair = self.generate_key_pair()
        return {
            "owner_id": owner_id,
            "public_key": pair.public_key_pem,
            "encrypted_private_key": self.cipher.encrypt(pair.private_key_pem),
            "controller": controller,
            "algorithm_type": self.settings.signing_key_type,
            "status": KeyStatus.ACTIVE.value,
            "previous_key_id": previous_key_id,
        }

    def create_key(self, owner_id: str, controller: Optional[str] = None) -> SigningKey:
        """
        Generate and persist an active signing key for an owner.

        Raises:
            KeyStateError: If the owner already has an active key (rotate instead)
        """
        with _lock_for(owner_id):
            return self._create_key_locked(owner_id, controller)

    def _create_key_locked(self, owner_id: str, controller: Optional[str]) -> SigningKey:
        if self.store.get_signing_key_by_owner(owner_id) is not None:
            raise KeyStateError(f"Owner {owner_id} already has an active signing key")

        record = self._new_record(owner_id, controller or self.settings.controller_for(owner_id))
        key = self.store.insert_signing_key(record)
        logger.info(f"Created signing key {key.id} for owner {owner_id}")
        return key

    def ensure_key_exists(self, owner_id: str, controller: Optional[str] = None) -> SigningKey:
        """Return the owner's active key, creating one on first use."""
        with _lock_for(owner_id):
            existing = self.store.get_signing_key_by_owner(owner_id)
            if existing is not None:
                return existing
            logger.info(f"No signing key for owner {owner_id}, provisioning one")
            return self._create_key_locked(owner_id, controller)

    def import_public_key(self, owner_id: str, public_key: str, controller: Optional[str] = None) -> SigningKey:
        """
        Register a verification-only key (no private half stored).

        Args:
            owner_id: Issuer the key belongs to
            public_key: PEM, multibase or base64 Ed25519 public key
            controller: Key controller (defaults to the owner's controller URL)

        Raises:
            InvalidKeyError: The value is not an Ed25519 public key
            KeyStateError: The owner already has an active key
        """
        try:
            loaded = load_public_key(public_key)
        except (ValueError, AttributeError) as e:
            raise InvalidKeyError(f"Cannot import public key for {owner_id}: {e}") from e

        with _lock_for(owner_id):
            if self.store.get_signing_key_by_owner(owner_id) is not None:
                raise KeyStateError(f"Owner {owner_id} already has an active signing key")
            key = self.store.insert_signing_key({
                "owner_id": owner_id,
                "public_key": public_key_to_pem(loaded),
                "encrypted_private_key": None,
                "controller": controller or self.settings.controller_for(owner_id),
                "algorithm_type": self.settings.signing_key_type,
                "status": KeyStatus.ACTIVE.value,
            })
        logger.info(f"Imported verification-only key {key.id} for owner {owner_id}")
        return key

    def export_public_key(self, key_id: str, encoding: str = "pem") -> str:
        """
        Public half of a stored key as "pem", "multibase" or "base64".

        Raises:
            KeyNotFoundError: Unknown key id
            ValueError: Unknown encoding
        """
        public_key = load_public_key(self.get_key(key_id).public_key)
        if encoding == "pem":
            return public_key_to_pem(public_key)
        if encoding == "multibase":
            return public_key_to_multibase(public_key)
        if encoding == "base64":
            return public_key_to_base64(public_key)
        raise ValueError(f"Unsupported public key encoding: {encoding!r}")

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get_key(self, key_id: str) -> SigningKey:
        """
        Get a key by id, whatever its status.

        Raises:
            KeyNotFoundError: If no such key exists
        """
        key = self.store.get_signing_key_by_id(key_id)
        if key is None:
            raise KeyNotFoundError(f"Signing key {key_id} not found")
        return key

    def get_active_key(self, owner_id: str) -> SigningKey:
        """
        Raises:
            KeyNotFoundError: If the owner has no active key
        """
        key = self.store.get_signing_key_by_owner(owner_id)
        if key is None:
            logger.warning(f"No active signing key for owner {owner_id}")
            raise KeyNotFoundError(f"No active signing key for issuer {owner_id}")
        return key

    def get_issuer_private_key(self, owner_id: str) -> str:
        """
        Decrypt and return the owner's private key (PEM).

        Raises:
            KeyNotFoundError: Owner has no key, or the key has no private half
            DecryptionIntegrityError: Stored blob failed authentication
            DecryptionError: Stored blob is malformed
        """
        return self._decrypt_private_key(self.get_active_key(owner_id))

    def _decrypt_private_key(self, key: SigningKey) -> str:
        if not key.encrypted_private_key:
            logger.warning(f"Signing key {key.id} for owner {key.owner_id} has no private key stored")
            raise KeyNotFoundError(f"Private key not found for issuer {key.owner_id}")
        return self.cipher.decrypt(key.encrypted_private_key)

    def resolve_signing_key(self, owner_id: str) -> ResolvedKey:
        """
        Load the owner's active key with its private half decrypted.

        Raises:
            KeyNotFoundError, DecryptionError, SigningError
        """
        key = self.get_active_key(owner_id)
        pem = self._decrypt_private_key(key)
        try:
            private_key = pem_to_private_key(pem)
        except ValueError as e:
            raise SigningError(f"Stored private key for {key.id} is unusable") from e
        return ResolvedKey(
            key_id=key.id,
            controller=key.controller,
            verification_method=self.verification_method_for(key),
            public_key=private_key.public_key(),
            private_key=private_key,
            owner_id=key.owner_id,
        )

    def resolve_public_key(self, key_id: str) -> ResolvedKey:
        """
        Load a key's public half only (any status).

        Raises:
            KeyNotFoundError: Unknown key id
            ValueError: Stored public key cannot be parsed
        """
        key = self.get_key(key_id)
        return ResolvedKey(
            key_id=key.id,
            controller=key.controller,
            verification_method=self.verification_method_for(key),
            public_key=load_public_key(key.public_key),
            owner_id=key.owner_id,
        )

    # ------------------------------------------------------------------
    # Rotation and revocation
    # ------------------------------------------------------------------

    def rotate_key(self, old_key_id: str) -> SigningKey:
        """
        Replace an active key with a freshly generated one.

        The old key becomes "rotated" and the new key records it as
        previous_key_id. Both writes happen in one transaction.

        Raises:
            KeyNotFoundError: Unknown key id
            KeyStateError: The key is not active (already rotated/revoked,
                or another caller rotated it first)
        """
        old = self.get_key(old_key_id)
        if old.status != KeyStatus.ACTIVE:
            raise KeyStateError(f"Cannot rotate key {old_key_id}: status is {old.status.value}")

        with _lock_for(old.owner_id):
            # Encrypt outside the transaction; the KDF is slow
            record = self._new_record(old.owner_id, old.controller, previous_key_id=old.id)

            with self.store.transaction():
                deactivated = self.store.update_signing_key_status(
                    old.id, KeyStatus.ROTATED, expected_status=KeyStatus.ACTIVE
                )
                if not deactivated:
                    raise KeyStateError(f"Key {old_key_id} was rotated or revoked concurrently")
                new_key = self.store.insert_signing_key(record)

        logger.info(f"Rotated signing key {old.id} -> {new_key.id} for owner {old.owner_id}")
        return new_key

    def revoke_key(self, key_id: str, reason: Optional[str] = None) -> None:
        """
        Mark a key revoked. The record is kept for historical verification.

        Revoking an already revoked key is a no-op.

        Raises:
            KeyNotFoundError: Unknown key id
        """
        key = self.get_key(key_id)
        if key.status == KeyStatus.REVOKED:
            logger.info(f"Signing key {key_id} already revoked")
            return

        self.store.update_signing_key_status(
            key_id,
            KeyStatus.REVOKED,
            {"revoked_at": datetime.now(timezone.utc), "revocation_reason": reason},
        )
        logger.info(f"Revoked signing key {key_id} (reason: {reason or 'not specified'})")

    def get_key_status(self, key_id: str) -> KeyStatus:
        return self.get_key(key_id).status

    def is_key_active(self, key_id: str) -> bool:
        key = self.store.get_signing_key_by_id(key_id)
        return key is not None and key.status == KeyStatus.ACTIVE

    def get_key_lineage(self, key_id: str) -> List[SigningKey]:
        """
        Walk previous_key_id back-references.

        Returns:
            [key, its predecessor, ...], stopping at a missing key or a cycle
        """
        lineage: List[SigningKey] = []
        seen = set()
        current: Optional[str] = key_id
        while current and current not in seen:
            seen.add(current)
            key = self.store.get_signing_key_by_id(current)
            if key is None:
                break
            lineage.append(key)
            current = key.previous_key_id
        return lineage

    @staticmethod
    def verification_method_for(key: SigningKey) -> str:
        return f"{key.controller}#{key.id}"
