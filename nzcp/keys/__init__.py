"""Verification key resolution for pass signatures.

Keys are resolved from the issuer's ``did:web`` DID document and cached
per ``"{issuer}#{key_id}"`` reference.
"""

from .cache import KeyCache, get_key_cache, reset_key_cache
from .did import DidDocument, DidDocumentRetriever, HttpDidDocumentRetriever, VerificationMethod
from .provider import VerificationKeyProvider, key_reference
from .signature import (
    SIGNATURE_ALGORITHMS,
    EcdsaP256VerificationKey,
    VerificationKey,
    key_from_jwk,
    verify_signature,
)

__all__ = [
    "DidDocument",
    "DidDocumentRetriever",
    "EcdsaP256VerificationKey",
    "HttpDidDocumentRetriever",
    "KeyCache",
    "SIGNATURE_ALGORITHMS",
    "VerificationKey",
    "VerificationKeyProvider",
    "VerificationMethod",
    "get_key_cache",
    "key_from_jwk",
    "key_reference",
    "reset_key_cache",
    "verify_signature",
]
