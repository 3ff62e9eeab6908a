"""
Document Signer

Two signing modes, chosen by the caller:

    SigningMode.COMPACT_TOKEN   header.payload.signature (JWT, EdDSA)
    SigningMode.DATA_INTEGRITY  document with an attached DataIntegrityProof

Data Integrity signing procedure:
    1. Drop any existing "proof" from the document
    2. Build the proof configuration (everything except proofValue)
    3. canonicalize({...document, "proof": config})
    4. Ed25519-sign those bytes
    5. proof = {...config, "proofValue": multibase(signature)}

The signer never creates keys. Call KeyManager.ensure_key_exists() first
when an issuer might not have one yet.
"""
import copy
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import jwt

from badgeserver.core.config import Settings, get_settings
from badgeserver.core.errors import SigningError
from badgeserver.core.signing.canonical import canonicalize, multibase_encode
from badgeserver.core.signing.key_manager import KeyManager, ResolvedKey

logger = logging.getLogger(__name__)

PROOF_TYPE = "DataIntegrityProof"
CRYPTOSUITE = "eddsa-rdfc-2022"
PROOF_PURPOSE = "assertionMethod"
JWT_ALGORITHM = "EdDSA"


class SigningMode(str, enum.Enum):
    COMPACT_TOKEN = "compact_token"
    DATA_INTEGRITY = "data_integrity"


def format_timestamp(moment: datetime) -> str:
    """XSD dateTime in UTC with a Z suffix, second precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_proof_config(verification_method: str, created: Optional[datetime] = None) -> Dict[str, str]:
    return {
        "type": PROOF_TYPE,
        "cryptosuite": CRYPTOSUITE,
        "created": format_timestamp(created or datetime.now(timezone.utc)),
        "verificationMethod": verification_method,
        "proofPurpose": PROOF_PURPOSE,
    }


def proof_signing_input(document: Dict[str, Any], proof_config: Dict[str, Any]) -> bytes:
    """
    Bytes covered by a Data Integrity signature.

    Shared with the verifier so both sides canonicalize identically.
    """
    unsigned = {k: v for k, v in document.items() if k != "proof"}
    unsigned["proof"] = {k: v for k, v in proof_config.items() if k != "proofValue"}
    return canonicalize(unsigned)


class DocumentSigner:
    """Signs credentials and claims with an issuer's resolved key."""

    def __init__(self, key_manager: Optional[KeyManager] = None, settings: Optional[Settings] = None):
        self.key_manager = key_manager
        self.settings = settings or get_settings()

    def sign(self, mode: SigningMode, payload: Dict[str, Any], key: ResolvedKey) -> Union[str, Dict[str, Any]]:
        """
        Sign *payload* in the requested mode.

        Returns:
            Token string for COMPACT_TOKEN, signed document for DATA_INTEGRITY
        """
        mode = SigningMode(mode)
        if mode is SigningMode.COMPACT_TOKEN:
            return self.sign_compact_token(payload, key)
        return self.sign_document(payload, key)

    def sign_compact_token(
        self,
        claims: Dict[str, Any],
        key: ResolvedKey,
        add_timestamps: bool = False,
    ) -> str:
        """
        Encode *claims* as an EdDSA-signed JWT.

        The header carries the verification method as "kid". "iss"
        defaults to the key's controller. With add_timestamps the token
        gets iat/exp (compact_token_ttl_seconds); without them the
        output is deterministic for the same claims and key.
        """
        if key.private_key is None:
            raise SigningError(f"Key {key.key_id} has no private key loaded")

        payload = dict(claims)
        payload.setdefault("iss", key.controller)
        if add_timestamps:
            now = int(datetime.now(timezone.utc).timestamp())
            payload.setdefault("iat", now)
            payload.setdefault("exp", now + self.settings.compact_token_ttl_seconds)

        try:
            token = jwt.encode(
                payload,
                key.private_key,
                algorithm=JWT_ALGORITHM,
                headers={"kid": key.verification_method},
            )
        except (TypeError, ValueError) as e:
            raise SigningError(f"Claims cannot be encoded: {e}") from e

        logger.debug(f"Signed compact token with key {key.key_id}")
        return token

    def sign_document(
        self,
        document: Dict[str, Any],
        key: ResolvedKey,
        created: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Attach a DataIntegrityProof to a copy of *document*.

        Args:
            document: Credential JSON (not modified)
            key: Resolved signing key
            created: Proof timestamp (defaults to now)

        Raises:
            SigningError: No private key, or the document is not canonicalizable
        """
        if key.private_key is None:
            raise SigningError(f"Key {key.key_id} has no private key loaded")

        signed = copy.deepcopy(document)
        signed.pop("proof", None)
        proof = build_proof_config(key.verification_method, created)

        try:
            signing_input = proof_signing_input(signed, proof)
        except (TypeError, ValueError) as e:
            raise SigningError(f"Document cannot be canonicalized: {e}") from e

        proof["proofValue"] = multibase_encode(key.private_key.sign(signing_input))
        signed["proof"] = proof

        logger.info(f"Signed document {signed.get('id', '<no id>')} with key {key.key_id}")
        return signed

    def sign_for_owner(
        self,
        owner_id: str,
        payload: Dict[str, Any],
        mode: SigningMode = SigningMode.DATA_INTEGRITY,
    ) -> Union[str, Dict[str, Any]]:
        """
        Sign with the owner's active key.

        Raises:
            KeyNotFoundError: The owner has no active key
        """
        if self.key_manager is None:
            raise SigningError("DocumentSigner was created without a key manager")
        key = self.key_manager.resolve_signing_key(owner_id)
        return self.sign(mode, payload, key)
