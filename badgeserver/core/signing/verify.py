"""
Signature Verification

Checks DataIntegrityProof signatures on credentials and EdDSA compact
tokens. Verification is a predicate: a document that does not verify
yields False (or a failed SignatureCheck), never an exception. Only
storage failures propagate.

Public keys are resolved by id through the key store. Keys in any state
(active, rotated, revoked) are accepted so signatures made before a
rotation keep verifying. A key embedded in the document is never used.

Check order:
    1. proof present and an object
    2. type == DataIntegrityProof, cryptosuite == eddsa-rdfc-2022
    3. verificationMethod and proofValue are strings
    4. verification method resolves to a stored key of the same controller
    5. that controller is the document's issuer (and, when given, the
       key belongs to the expected owner)
    6. proofValue decodes (multibase base58btc)
    7. Ed25519 signature over canonical(document + proof without proofValue)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import jwt
from cryptography.exceptions import InvalidSignature

from badgeserver.core.errors import KeyNotFoundError
from badgeserver.core.signing.canonical import multibase_decode
from badgeserver.core.signing.key_manager import (
    KeyManager,
    ResolvedKey,
    key_id_from_verification_method,
)
from badgeserver.core.signing.signer import (
    CRYPTOSUITE,
    JWT_ALGORITHM,
    PROOF_TYPE,
    proof_signing_input,
)

logger = logging.getLogger(__name__)


class SignatureFailure(Enum):
    """Why a signature check failed."""
    NOT_A_DOCUMENT = "not_a_document"
    MISSING_PROOF = "missing_proof"
    MALFORMED_PROOF = "malformed_proof"
    UNSUPPORTED_PROOF = "unsupported_proof"
    UNKNOWN_KEY = "unknown_key"
    KEY_MISMATCH = "key_mismatch"
    ISSUER_MISMATCH = "issuer_mismatch"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format"
    SIGNATURE_VERIFICATION_FAILED = "signature_verification_failed"


@dataclass
class SignatureCheck:
    """
    Result of checking one document's proof.

    Attributes:
        valid: Whether the signature verified
        failure: Failure type if it did not
        reason: Human-readable failure message
        key_id: Id of the key the proof referenced (if resolvable)
    """
    valid: bool
    failure: Optional[SignatureFailure] = None
    reason: Optional[str] = None
    key_id: Optional[str] = None

    @classmethod
    def ok(cls, key_id: str) -> "SignatureCheck":
        return cls(valid=True, key_id=key_id)

    @classmethod
    def fail(cls, failure: SignatureFailure, reason: str, key_id: Optional[str] = None) -> "SignatureCheck":
        return cls(valid=False, failure=failure, reason=reason, key_id=key_id)


def document_issuer(document: Dict[str, Any]) -> Optional[str]:
    """Issuer id of a credential ("issuer" as a string or an object with "id")."""
    issuer = document.get("issuer")
    if isinstance(issuer, dict):
        issuer = issuer.get("id")
    return issuer if isinstance(issuer, str) else None


class SignatureVerifier:
    """Verifies proofs and tokens against keys held by the KeyManager."""

    def __init__(self, key_manager: KeyManager):
        self.key_manager = key_manager

    def _resolve(self, verification_method: str) -> Optional[ResolvedKey]:
        key_id = key_id_from_verification_method(verification_method)
        try:
            return self.key_manager.resolve_public_key(key_id)
        except KeyNotFoundError:
            logger.warning(f"Verification method {verification_method} does not match a stored key")
            return None
        except ValueError as e:
            logger.error(f"Stored public key {key_id} is unreadable: {e}")
            return None

    def check_signature(self, document: Any, expected_owner: Optional[str] = None) -> SignatureCheck:
        """
        Verify a document's DataIntegrityProof.

        Args:
            document: Signed credential JSON
            expected_owner: Owner id the signing key must belong to (e.g. the
                issuer recorded for a stored assertion)

        Returns:
            SignatureCheck with the outcome and, on failure, the reason
        """
        if not isinstance(document, dict):
            return SignatureCheck.fail(SignatureFailure.NOT_A_DOCUMENT, "Document is not a JSON object")

        proof = document.get("proof")
        if proof is None:
            return SignatureCheck.fail(SignatureFailure.MISSING_PROOF, "Document has no proof")
        if not isinstance(proof, dict):
            return SignatureCheck.fail(SignatureFailure.MALFORMED_PROOF, "Proof is not an object")

        if proof.get("type") != PROOF_TYPE or proof.get("cryptosuite") != CRYPTOSUITE:
            return SignatureCheck.fail(
                SignatureFailure.UNSUPPORTED_PROOF,
                f"Unsupported proof: type={proof.get('type')!r} cryptosuite={proof.get('cryptosuite')!r}",
            )

        verification_method = proof.get("verificationMethod")
        proof_value = proof.get("proofValue")
        if not isinstance(verification_method, str) or not isinstance(proof_value, str):
            return SignatureCheck.fail(
                SignatureFailure.MALFORMED_PROOF,
                "Proof is missing verificationMethod or proofValue",
            )

        key = self._resolve(verification_method)
        if key is None:
            return SignatureCheck.fail(
                SignatureFailure.UNKNOWN_KEY,
                f"Unknown verification method: {verification_method}",
            )
        if "#" in verification_method and verification_method != key.verification_method:
            return SignatureCheck.fail(
                SignatureFailure.KEY_MISMATCH,
                f"Verification method does not belong to controller {key.controller}",
                key_id=key.key_id,
            )

        issuer = document_issuer(document)
        if issuer is not None and issuer != key.controller:
            return SignatureCheck.fail(
                SignatureFailure.ISSUER_MISMATCH,
                f"Key {key.key_id} belongs to {key.controller}, not issuer {issuer}",
                key_id=key.key_id,
            )
        if expected_owner is not None and key.owner_id != expected_owner:
            return SignatureCheck.fail(
                SignatureFailure.ISSUER_MISMATCH,
                f"Key {key.key_id} does not belong to issuer {expected_owner}",
                key_id=key.key_id,
            )

        try:
            signature = multibase_decode(proof_value)
        except ValueError as e:
            return SignatureCheck.fail(
                SignatureFailure.INVALID_SIGNATURE_FORMAT,
                f"Invalid proofValue encoding: {e}",
                key_id=key.key_id,
            )

        try:
            key.public_key.verify(signature, proof_signing_input(document, proof))
        except InvalidSignature:
            return SignatureCheck.fail(
                SignatureFailure.SIGNATURE_VERIFICATION_FAILED,
                "Signature verification failed",
                key_id=key.key_id,
            )
        except (TypeError, ValueError) as e:
            return SignatureCheck.fail(
                SignatureFailure.SIGNATURE_VERIFICATION_FAILED,
                f"Signature verification error: {e}",
                key_id=key.key_id,
            )

        return SignatureCheck.ok(key.key_id)

    def verify_signature(self, document: Any) -> bool:
        """True only if the document carries a proof that verifies."""
        check = self.check_signature(document)
        if not check.valid and check.failure is not SignatureFailure.MISSING_PROOF:
            logger.info(f"Signature check failed: {check.reason}")
        return check.valid

    def verify_compact_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify an EdDSA compact token.

        Returns:
            The claims if the signature (and exp, when present) check out,
            otherwise None
        """
        if not isinstance(token, str):
            return None
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            logger.info(f"Malformed compact token: {e}")
            return None

        kid = header.get("kid")
        if header.get("alg") != JWT_ALGORITHM or not isinstance(kid, str):
            logger.info("Compact token has an unsupported alg or no kid")
            return None

        key = self._resolve(kid)
        if key is None:
            return None
        if "#" in kid and kid != key.verification_method:
            logger.info(f"Compact token kid {kid} does not belong to controller {key.controller}")
            return None

        try:
            return jwt.decode(
                token,
                key.public_key,
                algorithms=[JWT_ALGORITHM],
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as e:
            logger.info(f"Compact token rejected: {e}")
            return None
