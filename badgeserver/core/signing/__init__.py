"""
Credential Signing Module

Ed25519 issuer keys, Data Integrity proofs and compact tokens for
Open Badges 3.0 credentials.
"""

from badgeserver.core.signing.key_manager import (
    GeneratedKeyPair,
    KeyManager,
    ResolvedKey,
    key_id_from_verification_method,
)
from badgeserver.core.signing.signer import (
    CRYPTOSUITE,
    PROOF_TYPE,
    DocumentSigner,
    SigningMode,
)
from badgeserver.core.signing.verify import (
    SignatureCheck,
    SignatureFailure,
    SignatureVerifier,
)

__all__ = [
    # Keys
    "GeneratedKeyPair",
    "KeyManager",
    "ResolvedKey",
    "key_id_from_verification_method",
    # Signing
    "CRYPTOSUITE",
    "PROOF_TYPE",
    "DocumentSigner",
    "SigningMode",
    # Verification
    "SignatureCheck",
    "SignatureFailure",
    "SignatureVerifier",
]
