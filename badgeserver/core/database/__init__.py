"""
Database layer: models, connection management, repositories and
private key envelope encryption.
"""
from badgeserver.core.database.connection import create_tables, get_db, init_db, session_scope
from badgeserver.core.database.models import (
    AssertionRecord,
    Base,
    BadgeAssertion,
    KeyStatus,
    SigningKey,
    SigningKeyRecord,
)
from badgeserver.core.database.repository import (
    AssertionRepository,
    AssertionStore,
    SigningKeyRepository,
    SigningKeyStore,
)

__all__ = [
    "init_db",
    "get_db",
    "create_tables",
    "session_scope",
    "Base",
    "BadgeAssertion",
    "SigningKeyRecord",
    "SigningKey",
    "AssertionRecord",
    "KeyStatus",
    "SigningKeyRepository",
    "AssertionRepository",
    "SigningKeyStore",
    "AssertionStore",
]
