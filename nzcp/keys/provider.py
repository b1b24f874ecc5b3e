# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Verification key resolution from issuer DID documents.

Given an issuer and key ID from a CWT, the provider builds the key
reference ``"{issuer}#{key_id}"`` and:

1. Returns the key from the cache if present and not expired.
2. Otherwise retrieves the issuer's DID document.
3. Requires the reference to be listed in ``assertionMethod``.
4. Requires a ``verificationMethod`` with that id, of type
   ``JsonWebKey2020``, carrying a usable ``publicKeyJwk``.
5. Caches the key with an absolute TTL and returns it.

Every failure raises :class:`VerificationKeyNotFoundError`; the
underlying cause is logged but not exposed.

References
----------
- nzcp.covid19.health.nz — Steps to verify a New Zealand COVID Pass
"""

from __future__ import annotations

import logging
from typing import Optional

from nzcp.config import KEY_CACHE_TTL_SECONDS, VALID_VERIFICATION_METHOD_TYPE
from nzcp.exceptions import UnsupportedKeyError, VerificationKeyNotFoundError
from nzcp.keys.cache import KeyCache, get_key_cache
from nzcp.keys.did import DidDocument, DidDocumentRetriever
from nzcp.keys.signature import VerificationKey, key_from_jwk

logger = logging.getLogger("nzcp.keys.provider")

__all__ = ["VerificationKeyProvider", "key_reference"]


def key_reference(issuer: str, key_id: str) -> str:
    return f"{issuer}#{key_id}"


class VerificationKeyProvider:
    """Resolves signing keys for ``(issuer, key_id)`` pairs.

    Parameters
    ----------
    retriever : DidDocumentRetriever
        Source of issuer DID documents.
    cache : KeyCache, optional
        Key cache; defaults to the process-wide cache.
    ttl_seconds : float
        Lifetime of a cached key.
    """

    def __init__(
        self,
        retriever: DidDocumentRetriever,
        cache: Optional[KeyCache] = None,
        ttl_seconds: float = KEY_CACHE_TTL_SECONDS,
    ) -> None:
        self._retriever = retriever
        self._cache = cache if cache is not None else get_key_cache()
        self._ttl_seconds = ttl_seconds

    @property
    def cache(self) -> KeyCache:
        return self._cache

    async def get_key(self, issuer: str, key_id: str) -> VerificationKey:
        """Resolve the verification key for *issuer* and *key_id*.

        Raises
        ------
        VerificationKeyNotFoundError
            If the DID document cannot be retrieved or does not authorise
            a usable key under the reference.
        """
        reference = key_reference(issuer, key_id)

        cached = await self._cache.get(reference)
        if cached is not None:
            logger.debug("Obtained key with ID '%s' for issuer '%s' from cache", key_id, issuer)
            return cached

        logger.debug("Retrieving key with ID '%s' for issuer '%s'", key_id, issuer)

        document = await self._get_document(issuer)
        key = self._key_from_document(document, reference)

        await self._cache.put(reference, key, ttl_seconds=self._ttl_seconds)
        return key

    async def _get_document(self, issuer: str) -> DidDocument:
        try:
            return await self._retriever.get_document(issuer)
        except Exception as exc:
            logger.error("Failed to retrieve DID document for issuer '%s': %s", issuer, exc)
            raise VerificationKeyNotFoundError.issuer_unreachable(issuer) from exc

    @staticmethod
    def _key_from_document(document: DidDocument, reference: str) -> VerificationKey:
        if reference not in document.assertion_method:
            logger.error("Key reference '%s' not found in assertion methods", reference)
            raise VerificationKeyNotFoundError.not_found(reference)

        method = document.find_verification_method(reference)
        if (
            method is None
            or method.type != VALID_VERIFICATION_METHOD_TYPE
            or method.public_key_jwk is None
        ):
            logger.error("Key reference '%s' not found in verification methods", reference)
            raise VerificationKeyNotFoundError.not_found(reference)

        try:
            return key_from_jwk(method.public_key_jwk, key_id=reference)
        except UnsupportedKeyError as exc:
            logger.error("Key reference '%s' has an unusable public key: %s", reference, exc.message)
            raise VerificationKeyNotFoundError.not_found(reference) from exc
