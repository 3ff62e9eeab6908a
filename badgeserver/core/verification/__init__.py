"""Credential verification pipeline."""

from badgeserver.core.verification.service import VerificationResult, VerificationService
from badgeserver.core.verification.structure import is_ob2, is_ob3, structure_errors

__all__ = [
    "VerificationResult",
    "VerificationService",
    "is_ob2",
    "is_ob3",
    "structure_errors",
]
