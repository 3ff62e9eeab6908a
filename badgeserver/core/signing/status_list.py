"""
Status List 2021 bitstrings.

A status list is a GZIP-compressed bitstring, base64-encoded. Bit i is
the revocation flag for the credential whose credentialStatus entry has
statusListIndex i (1 = revoked). Bit 0 is the most significant bit of
the first byte.
"""
import base64
import binascii
import gzip
import zlib
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

DEFAULT_LIST_SIZE = 16384  # entries, not bytes

STATUS_LIST_ENTRY_TYPE = "StatusList2021Entry"

# statusListCredential URL -> encodedList (None if it cannot be fetched)
StatusListResolver = Callable[[str], Optional[str]]


def _decode(encoded: str) -> bytearray:
    try:
        return bytearray(gzip.decompress(base64.b64decode(encoded, validate=True)))
    except (binascii.Error, OSError, EOFError, zlib.error) as e:
        raise ValueError(f"Invalid encoded status list: {e}") from e


def _encode(bits: bytes) -> str:
    # mtime=0 keeps the encoding stable for identical bitstrings
    return base64.b64encode(gzip.compress(bytes(bits), mtime=0)).decode("ascii")


def _locate(bits: bytearray, index: int):
    if not isinstance(index, int) or index < 0 or index >= len(bits) * 8:
        raise ValueError(f"Status list index {index!r} out of range (0..{len(bits) * 8 - 1})")
    return index // 8, 0x80 >> (index % 8)


def create_encoded_list(size: int = DEFAULT_LIST_SIZE) -> str:
    """All-zero (nothing revoked) list able to track *size* credentials."""
    if size <= 0:
        raise ValueError("Status list size must be positive")
    return _encode(bytes((size + 7) // 8))


def set_status(encoded: str, index: int, revoked: bool) -> str:
    """Return a new encoded list with bit *index* set to *revoked*."""
    bits = _decode(encoded)
    byte, mask = _locate(bits, index)
    if revoked:
        bits[byte] |= mask
    else:
        bits[byte] &= ~mask & 0xFF
    return _encode(bits)


def is_revoked(encoded: str, index: int) -> bool:
    bits = _decode(encoded)
    byte, mask = _locate(bits, index)
    return bool(bits[byte] & mask)


def index_from_uuid(value: str, size: int = DEFAULT_LIST_SIZE) -> int:
    """
    Map a UUID to a list index using its first 32 bits.

    Different UUIDs can collide; store the assigned index with the
    credential rather than recomputing it.
    """
    return int(value.replace("-", "")[:8], 16) % size


def create_status_list_credential(
    issuer: Union[str, Dict[str, Any]],
    list_id: str,
    purpose: str = "revocation",
    size: int = DEFAULT_LIST_SIZE,
) -> Dict[str, Any]:
    """Unsigned StatusList2021Credential with an empty list."""
    return {
        "@context": [
            "https://www.w3.org/2018/credentials/v1",
            "https://w3id.org/vc/status-list/2021/v1",
        ],
        "id": list_id,
        "type": ["VerifiableCredential", "StatusList2021Credential"],
        "issuer": issuer,
        "issuanceDate": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "credentialSubject": {
            "id": f"{list_id}#list",
            "type": "StatusList2021",
            "statusPurpose": purpose,
            "encodedList": create_encoded_list(size),
        },
    }


def status_entry(document: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The document's StatusList2021Entry, if it has one."""
    entry = document.get("credentialStatus")
    if isinstance(entry, dict) and entry.get("type") == STATUS_LIST_ENTRY_TYPE:
        return entry
    return None
