"""
Shared fixtures: settings, envelope cipher, in-memory database and the
signing/verification services wired together.
"""
# Load .env BEFORE importing settings so a local MASTER_ENCRYPTION_KEY wins
import os
from pathlib import Path
from dotenv import load_dotenv

_repo_root = Path(__file__).parent.parent.parent
load_dotenv(_repo_root / ".env")

if not os.getenv("MASTER_ENCRYPTION_KEY"):
    os.environ["MASTER_ENCRYPTION_KEY"] = "test-master-secret-do-not-use-in-production"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from badgeserver.core.config import Settings
from badgeserver.core.database.encryption import EnvelopeCipher
from badgeserver.core.database.models import Base
from badgeserver.core.database.repository import AssertionRepository, SigningKeyRepository
from badgeserver.core.signing.key_manager import KeyManager
from badgeserver.core.signing.signer import DocumentSigner
from badgeserver.core.signing.verify import SignatureVerifier
from badgeserver.core.verification.service import VerificationService


@pytest.fixture(scope="session")
def settings():
    return Settings(
        master_encryption_key=os.environ["MASTER_ENCRYPTION_KEY"],
        database_url="sqlite:///:memory:",
        issuer_base_url="https://badges.test/issuers",
    )


@pytest.fixture(scope="session")
def cipher(settings):
    """One cipher for the whole run (PBKDF2 at full strength is slow-ish)."""
    return EnvelopeCipher.from_settings(settings)


@pytest.fixture
def db_session():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def key_store(db_session):
    return SigningKeyRepository(db_session)


@pytest.fixture
def assertion_store(db_session):
    return AssertionRepository(db_session)


@pytest.fixture
def key_manager(key_store, cipher, settings):
    return KeyManager(key_store, cipher, settings)


@pytest.fixture
def signer(key_manager, settings):
    return DocumentSigner(key_manager, settings)


@pytest.fixture
def verifier(key_manager):
    return SignatureVerifier(key_manager)


@pytest.fixture
def verification_service(verifier, assertion_store):
    return VerificationService(verifier, assertion_store)


@pytest.fixture
def issuer_key(key_manager):
    """Active key for issuer "issuer-1"."""
    return key_manager.create_key("issuer-1")


@pytest.fixture
def resolved_key(key_manager, issuer_key):
    return key_manager.resolve_signing_key("issuer-1")


@pytest.fixture
def ob3_credential():
    """Minimal complete Open Badges 3.0 credential (unsigned)."""
    return {
        "@context": [
            "https://www.w3.org/2018/credentials/v1",
            "https://purl.imsglobal.org/spec/ob/v3p0/context.json",
        ],
        "id": "urn:uuid:2f5d1f7e-6a0b-4d8a-9a51-1c2d3e4f5a6b",
        "type": ["VerifiableCredential", "OpenBadgeCredential"],
        "issuer": {"id": "https://badges.test/issuers/issuer-1", "type": "Profile", "name": "Test Issuer"},
        "issuanceDate": "2024-01-15T10:00:00Z",
        "credentialSubject": {
            "id": "mailto:learner@example.com",
            "type": "AchievementSubject",
            "achievement": {
                "id": "https://badges.test/achievements/python-101",
                "type": "Achievement",
                "name": "Python 101",
                "criteria": {"narrative": "Complete every exercise"},
            },
        },
    }


@pytest.fixture
def ob2_assertion():
    """Hosted Open Badges 2.0 assertion (no proof)."""
    return {
        "@context": "https://w3id.org/openbadges/v2",
        "id": "https://badges.test/assertions/a-1",
        "type": "Assertion",
        "recipient": {"type": "email", "hashed": False, "identity": "learner@example.com"},
        "badge": "https://badges.test/badges/python-101",
        "issuedOn": "2024-01-15T10:00:00Z",
        "verification": {"type": "hosted"},
    }
