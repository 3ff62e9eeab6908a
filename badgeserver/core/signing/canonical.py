"""
Canonical Serialization and Encodings

canonicalize() produces the exact bytes that get signed. Two documents
that differ only in object key order (at any depth) serialize to the
same bytes; any change to a key, value or array order changes them.

Rules:
    - object keys sorted by Unicode code point, recursively
    - no insignificant whitespace
    - UTF-8, non-ASCII characters emitted literally
    - NaN / Infinity rejected

Interop: proofs carry the eddsa-rdfc-2022 cryptosuite label but are
computed over this JSON form, not over an RDF Dataset Canonicalization
(URDNA2015) of the expanded JSON-LD. A verifier that canonicalizes with
RDFC (e.g. pyld-based tooling) will reject them; verify with
SignatureVerifier or another verifier using the same JSON rules.
"""
import base64
import json
from typing import Any

import base58


def canonicalize(document: Any) -> bytes:
    """
    Serialize a JSON value to its canonical byte form.

    Raises:
        ValueError: If the value contains NaN/Infinity
        TypeError: If the value is not JSON-serializable
    """
    return json.dumps(
        document,
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")


def b64url_encode(data: bytes) -> str:
    """Encode *data* as base64url without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(encoded: str) -> bytes:
    """Decode a base64url string (with or without padding)."""
    padding = -len(encoded) % 4
    return base64.urlsafe_b64decode(encoded + "=" * padding)


def multibase_encode(data: bytes) -> str:
    """Multibase base58btc ('z' prefix)."""
    return "z" + base58.b58encode(data).decode("ascii")


def multibase_decode(value: str) -> bytes:
    """
    Decode a multibase base58btc value.

    Raises:
        ValueError: On an unsupported prefix or invalid base58
    """
    if not value or value[0] != "z":
        raise ValueError(f"Unsupported multibase prefix: {value[:1]!r}")
    return base58.b58decode(value[1:])
