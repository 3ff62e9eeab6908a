"""
Database Repository - storage collaborator for the credential core.

The key manager and verifier depend only on the SigningKeyStore and
AssertionStore protocols below. SigningKeyRepository and
AssertionRepository are the SQLAlchemy implementations.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from badgeserver.core.errors import AssertionNotFoundError

from .models import (
    AssertionRecord,
    BadgeAssertion,
    KeyStatus,
    SigningKey,
    SigningKeyRecord,
)

logger = logging.getLogger(__name__)


class SigningKeyStore(Protocol):
    """Persistence operations the key lifecycle manager relies on."""

    def get_signing_key_by_owner(self, owner_id: str) -> Optional[SigningKey]: ...

    def get_signing_key_by_id(self, key_id: str) -> Optional[SigningKey]: ...

    def insert_signing_key(self, record: Dict[str, Any]) -> SigningKey: ...

    def update_signing_key_status(
        self,
        key_id: str,
        status: KeyStatus,
        fields: Optional[Dict[str, Any]] = None,
        expected_status: Optional[KeyStatus] = None,
    ) -> bool: ...

    def list_keys_for_owner(self, owner_id: str) -> List[SigningKey]: ...

    def transaction(self) -> Any: ...


class AssertionStore(Protocol):
    """Read access used by the verification orchestrator."""

    def get_assertion_by_id(self, assertion_id: str) -> Optional[AssertionRecord]: ...


class SigningKeyRepository:
    """
    Repository for signing key records.

    Writes commit immediately unless issued inside transaction(), in
    which case the whole block commits (or rolls back) together.
    """

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db
        self._tx_depth = 0

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one commit."""
        self._tx_depth += 1
        try:
            yield
            if self._tx_depth == 1:
                self.db.commit()
        except Exception:
            if self._tx_depth == 1:
                self.db.rollback()
            raise
        finally:
            self._tx_depth -= 1

    def _commit(self) -> None:
        if self._tx_depth == 0:
            self.db.commit()
        else:
            self.db.flush()

    def get_signing_key_by_owner(self, owner_id: str) -> Optional[SigningKey]:
        """
        Get the owner's active signing key.

        Returns:
            SigningKey or None if the owner has no active key
        """
        record = self.db.execute(
            select(SigningKeyRecord)
            .where(
                SigningKeyRecord.owner_id == owner_id,
                SigningKeyRecord.status == KeyStatus.ACTIVE.value,
            )
            .order_by(SigningKeyRecord.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return SigningKey.from_record(record) if record else None

    def get_signing_key_by_id(self, key_id: str) -> Optional[SigningKey]:
        record = self.db.get(SigningKeyRecord, key_id)
        return SigningKey.from_record(record) if record else None

    def list_keys_for_owner(self, owner_id: str) -> List[SigningKey]:
        """All keys ever issued to an owner, newest first (includes rotated and revoked)."""
        records = self.db.execute(
            select(SigningKeyRecord)
            .where(SigningKeyRecord.owner_id == owner_id)
            .order_by(SigningKeyRecord.created_at.desc())
        ).scalars().all()
        return [SigningKey.from_record(r) for r in records]

    def insert_signing_key(self, record: Dict[str, Any]) -> SigningKey:
        """
        Insert a new signing key.

        Args:
            record: Column values (owner_id, public_key, controller, ...)

        Returns:
            The stored key

        Raises:
            IntegrityError: On duplicate id (after rollback outside a transaction)
        """
        row = SigningKeyRecord(**record)
        self.db.add(row)
        try:
            self._commit()
        except IntegrityError:
            if self._tx_depth == 0:
                self.db.rollback()
            logger.error(f"Duplicate signing key id for owner {record.get('owner_id')}")
            raise
        logger.debug(f"Inserted signing key {row.id} for owner {row.owner_id}")
        return SigningKey.from_record(row)

    def update_signing_key_status(
        self,
        key_id: str,
        status: KeyStatus,
        fields: Optional[Dict[str, Any]] = None,
        expected_status: Optional[KeyStatus] = None,
    ) -> bool:
        """
        Change a key's status (and optional revocation fields).

        Args:
            key_id: Key to update
            status: New status
            fields: Extra columns to set (revoked_at, revocation_reason)
            expected_status: Only update if the key currently has this status

        Returns:
            True if a row was updated, False if the key is missing or the
            expected status did not match
        """
        values: Dict[str, Any] = {"status": KeyStatus(status).value}
        if fields:
            values.update(fields)

        stmt = update(SigningKeyRecord).where(SigningKeyRecord.id == key_id)
        if expected_status is not None:
            stmt = stmt.where(SigningKeyRecord.status == KeyStatus(expected_status).value)

        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session="fetch"))
        self._commit()
        return result.rowcount > 0


class AssertionRepository:
    """Repository for stored badge assertions."""

    def __init__(self, db: Session):
        self.db = db

    def get_assertion_by_id(self, assertion_id: str) -> Optional[AssertionRecord]:
        row = self.db.get(BadgeAssertion, assertion_id)
        if row is None:
            return None
        return AssertionRecord(
            id=row.id,
            issuer_id=row.issuer_id,
            document=row.assertion_json,
            revoked=bool(row.revoked),
            revocation_reason=row.revocation_reason,
        )

    def save_assertion(
        self,
        issuer_id: str,
        document: dict,
        badge_id: Optional[str] = None,
        assertion_id: Optional[str] = None,
    ) -> AssertionRecord:
        """Persist an issued assertion document."""
        row = BadgeAssertion(issuer_id=issuer_id, badge_id=badge_id, assertion_json=document)
        if assertion_id:
            row.id = assertion_id
        self.db.add(row)
        self.db.commit()
        return AssertionRecord(id=row.id, issuer_id=issuer_id, document=document)

    def mark_revoked(self, assertion_id: str, reason: Optional[str] = None) -> None:
        """
        Flag an assertion as revoked.

        Raises:
            AssertionNotFoundError: If the assertion does not exist
        """
        row = self.db.get(BadgeAssertion, assertion_id)
        if row is None:
            logger.warning(f"Cannot revoke unknown assertion {assertion_id}")
            raise AssertionNotFoundError(f"Assertion {assertion_id} not found")
        row.revoked = True
        row.revocation_reason = reason
        self.db.commit()
        logger.info(f"Assertion {assertion_id} revoked")
