"""
Verification Service

Runs the per-request verification pipeline for a badge credential:

    structure   required fields for the declared shape (OB3 or OB2)
    revocation  assertion store flag, else StatusList2021 entry
    signature   only when the document carries a proof
    expiration  only when the document has expirationDate / validUntil

valid is the AND of every check that ran. A document without a proof is
treated as a hosted (OB2-style) assertion: its signature check is left
unset rather than failed.

Failures are reported in the result, never raised. Storage errors
propagate to the caller.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from badgeserver.core.database.models import AssertionRecord
from badgeserver.core.database.repository import AssertionStore
from badgeserver.core.signing.status_list import StatusListResolver, is_revoked, status_entry
from badgeserver.core.signing.verify import SignatureVerifier, document_issuer
from badgeserver.core.verification.structure import (
    expiration_of,
    parse_datetime,
    structure_errors,
)

logger = logging.getLogger(__name__)

ASSERTION_NOT_FOUND = "Assertion not found"
INVALID_SIGNATURE = "Invalid signature - verification failed"


@dataclass
class VerificationResult:
    """
    Outcome of verifying one credential.

    Attributes:
        valid: AND of all checks that ran
        checks: structure / revocation / signature / expiration (only those that ran)
        errors: One message per failed check
        warnings: Non-fatal observations (e.g. revocation not checkable)
        details: credential_id, issuer_id, verification_method, proof_type
    """
    valid: bool = False
    checks: Dict[str, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "checks": dict(self.checks),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "details": dict(self.details),
        }


class VerificationService:
    """Combines structure, revocation, signature and expiry checks."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        assertions: AssertionStore,
        status_lists: Optional[StatusListResolver] = None,
    ):
        self.verifier = verifier
        self.assertions = assertions
        self.status_lists = status_lists

    def verify_assertion(self, assertion_id: str) -> VerificationResult:
        """
        Verify a stored assertion by id.

        An unknown id gives valid=False with "Assertion not found".
        """
        record = self.assertions.get_assertion_by_id(assertion_id)
        if record is None:
            logger.info(f"Verification requested for unknown assertion {assertion_id}")
            return VerificationResult(errors=[ASSERTION_NOT_FOUND], details={"assertion_id": assertion_id})

        document = record.document
        if isinstance(document, str):
            try:
                document = json.loads(document)
            except json.JSONDecodeError:
                return VerificationResult(
                    errors=["Invalid JSON format in credential"],
                    details={"assertion_id": assertion_id},
                )

        return self._verify(document, record)

    def verify_document(self, document: Any, assertion_id: Optional[str] = None) -> VerificationResult:
        """
        Verify a credential supplied by the caller.

        Args:
            document: Credential JSON
            assertion_id: Stored assertion to take revocation state from;
                without it the credentialStatus entry is used if resolvable
        """
        record = None
        if assertion_id is not None:
            record = self.assertions.get_assertion_by_id(assertion_id)
            if record is None:
                result = self._verify(document, None, skip_revocation=True)
                result.checks["revocation"] = False
                result.errors.append(ASSERTION_NOT_FOUND)
                result.valid = False
                return result
        return self._verify(document, record)

    def _verify(
        self,
        document: Any,
        record: Optional[AssertionRecord],
        skip_revocation: bool = False,
    ) -> VerificationResult:
        result = VerificationResult()

        problems = structure_errors(document)
        result.checks["structure"] = not problems
        if problems:
            result.errors.append(f"Invalid credential structure: {'; '.join(problems)}")
        if not isinstance(document, dict):
            return result

        result.details["credential_id"] = document.get("id")
        result.details["issuer_id"] = document_issuer(document) or (record.issuer_id if record else None)

        if not skip_revocation:
            self._check_revocation(document, record, result)

        if document.get("proof") is not None:
            self._check_signature(document, record, result)

        self._check_expiration(document, result)

        result.valid = all(result.checks.values())
        logger.info(
            f"Verified credential {result.details.get('credential_id')}: "
            f"valid={result.valid} checks={result.checks}"
        )
        return result

    def _check_revocation(
        self,
        document: dict,
        record: Optional[AssertionRecord],
        result: VerificationResult,
    ) -> None:
        if record is not None:
            result.checks["revocation"] = not record.revoked
            if record.revoked:
                result.errors.append(
                    f"Credential has been revoked: {record.revocation_reason or 'Not specified'}"
                )
            return

        entry = status_entry(document)
        if entry is None or self.status_lists is None:
            result.checks["revocation"] = True
            result.warnings.append("Revocation status could not be checked")
            return

        encoded = self.status_lists(str(entry.get("statusListCredential")))
        if encoded is None:
            result.checks["revocation"] = True
            result.warnings.append("Referenced status list not found")
            return

        try:
            revoked = is_revoked(encoded, int(entry.get("statusListIndex")))
        except (TypeError, ValueError) as e:
            result.checks["revocation"] = True
            result.warnings.append(f"Status list format is invalid: {e}")
            return

        result.checks["revocation"] = not revoked
        if revoked:
            result.errors.append("Credential has been revoked: Listed in status list")

    def _check_signature(
        self,
        document: dict,
        record: Optional[AssertionRecord],
        result: VerificationResult,
    ) -> None:
        proof = document["proof"]
        if isinstance(proof, dict):
            result.details["verification_method"] = proof.get("verificationMethod")
            result.details["proof_type"] = proof.get("type")

        check = self.verifier.check_signature(
            document, expected_owner=record.issuer_id if record is not None else None
        )
        result.checks["signature"] = check.valid
        if not check.valid:
            result.errors.append(INVALID_SIGNATURE)
            result.details["signature_failure"] = check.reason

    def _check_expiration(self, document: dict, result: VerificationResult) -> None:
        raw = expiration_of(document)
        if raw is None:
            return
        try:
            expires = parse_datetime(raw)
        except ValueError:
            result.checks["expiration"] = False
            result.errors.append(f"Invalid expiration date: {raw!r}")
            return

        result.checks["expiration"] = datetime.now(timezone.utc) <= expires
        if not result.checks["expiration"]:
            result.errors.append(f"Credential expired on {expires.isoformat()}")
