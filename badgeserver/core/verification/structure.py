"""
Credential shape checks.

Two shapes are recognised:

    OB3  type list with VerifiableCredential or OpenBadgeCredential,
         plus issuer and credentialSubject.achievement
    OB2  type "Assertion", plus recipient and badge

Both need "id" and "type".
"""
from datetime import datetime, timezone
from typing import Any, List, Optional

OB3_TYPES = {"VerifiableCredential", "OpenBadgeCredential", "AchievementCredential"}
OB2_TYPE = "Assertion"


def _types(document: dict) -> List[str]:
    value = document.get("type")
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [t for t in value if isinstance(t, str)]
    return []


def is_ob3(document: dict) -> bool:
    return bool(OB3_TYPES.intersection(_types(document)))


def is_ob2(document: dict) -> bool:
    return OB2_TYPE in _types(document)


def structure_errors(document: Any) -> List[str]:
    """
    List what is missing from a credential.

    Returns:
        Empty list if the document has a recognised, complete shape
    """
    if not isinstance(document, dict):
        return ["document is not a JSON object"]

    problems = []
    if not document.get("id"):
        problems.append("missing id")
    if not document.get("type"):
        problems.append("missing type")
        return problems

    if is_ob3(document):
        if not document.get("issuer"):
            problems.append("missing issuer")
        subject = document.get("credentialSubject")
        if not isinstance(subject, dict):
            problems.append("missing credentialSubject")
        elif not subject.get("achievement"):
            problems.append("missing credentialSubject.achievement")
    elif is_ob2(document):
        if not document.get("recipient"):
            problems.append("missing recipient")
        if not document.get("badge"):
            problems.append("missing badge")
    else:
        problems.append(f"unrecognised credential type {document.get('type')!r}")

    return problems


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO 8601 timestamp ("Z" suffix allowed). Naive values are UTC.

    Raises:
        ValueError: If the value is not a timestamp
    """
    if not isinstance(value, str):
        raise ValueError(f"Not a timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def expiration_of(document: dict) -> Optional[str]:
    """Raw expirationDate (VC 1.1) or validUntil (VC 2.0) value."""
    return document.get("expirationDate") or document.get("validUntil")
