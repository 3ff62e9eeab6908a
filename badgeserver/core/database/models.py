"""
SQLAlchemy Database Models

Stores:
- Signing keys (public key, envelope-encrypted private key, lifecycle status)
- Badge assertions (credential JSON plus revocation flag)

Signing keys are never deleted. A rotated or revoked key stays in the
table so signatures it produced remain verifiable.
"""
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class KeyStatus(str, enum.Enum):
    """
    Signing key lifecycle states.

    active -> rotated (superseded by a newer key)
    active | rotated -> revoked
    """
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"


class SigningKeyRecord(Base):
    """One Ed25519 key belonging to an issuer."""
    __tablename__ = "signing_keys"

    id = Column(String(36), primary_key=True, default=_new_id)
    owner_id = Column(String(200), nullable=False, index=True)

    public_key = Column(Text, nullable=False)           # PEM (SPKI)
    encrypted_private_key = Column(Text)                # envelope blob; NULL for verification-only keys
    controller = Column(String(500), nullable=False)
    algorithm_type = Column(String(100), nullable=False, default="Ed25519VerificationKey2020")

    status = Column(String(20), nullable=False, default=KeyStatus.ACTIVE.value)
    previous_key_id = Column(String(36))                # rotation lineage (no FK: weak reference)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    revoked_at = Column(DateTime(timezone=True))
    revocation_reason = Column(Text)

    __table_args__ = (
        Index('ix_signing_keys_owner_status', 'owner_id', 'status'),
    )


class BadgeAssertion(Base):
    """An issued badge assertion / credential."""
    __tablename__ = "badge_assertions"

    id = Column(String(36), primary_key=True, default=_new_id)
    issuer_id = Column(String(200), nullable=False, index=True)
    badge_id = Column(String(200))
    assertion_json = Column(JSON, nullable=False)

    revoked = Column(Boolean, nullable=False, default=False)
    revocation_reason = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


@dataclass(frozen=True)
class SigningKey:
    """
    Detached view of a signing key record.

    Returned by the repository so callers never hold live ORM rows.
    """
    id: str
    owner_id: str
    public_key: str
    controller: str
    algorithm_type: str
    status: KeyStatus
    created_at: datetime
    encrypted_private_key: Optional[str] = None
    previous_key_id: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == KeyStatus.ACTIVE

    @classmethod
    def from_record(cls, record: SigningKeyRecord) -> "SigningKey":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            public_key=record.public_key,
            controller=record.controller,
            algorithm_type=record.algorithm_type,
            status=KeyStatus(record.status),
            created_at=record.created_at,
            encrypted_private_key=record.encrypted_private_key,
            previous_key_id=record.previous_key_id,
            revoked_at=record.revoked_at,
            revocation_reason=record.revocation_reason,
        )


@dataclass(frozen=True)
class AssertionRecord:
    """What the verification layer needs to know about a stored assertion."""
    id: str
    issuer_id: str
    document: dict
    revoked: bool = False
    revocation_reason: Optional[str] = None
