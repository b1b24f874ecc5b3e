# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""DID documents and their retrieval over HTTPS.

Pass issuers are ``did:web`` identifiers.  The issuer's DID document
lists the keys it may sign with (``verificationMethod``) and which of
them are authorised for assertions (``assertionMethod``).

:class:`HttpDidDocumentRetriever` resolves an issuer to its document:

- ``did:web:nzcp.identity.health.nz`` →
  ``https://nzcp.identity.health.nz/.well-known/did.json``
- ``did:web:example.com:issuers:1`` →
  ``https://example.com/issuers/1/did.json``

References
----------
- W3C DID Core §5 — DID documents
- did:web method §3.2 — Read (resolve)
- nzcp.covid19.health.nz — Resolving an issuer's identifier
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nzcp.config import (
    DID_DOCUMENT_MAX_SIZE_BYTES,
    DID_DOCUMENT_PATH,
    DID_FETCH_TIMEOUT_SECONDS,
    DID_WEB_PREFIX,
)
from nzcp.exceptions import DidDocumentFetchError

logger = logging.getLogger("nzcp.keys.did")

__all__ = [
    "DidDocument",
    "DidDocumentRetriever",
    "HttpDidDocumentRetriever",
    "VerificationMethod",
    "close_shared_client",
    "did_web_url",
    "get_shared_client",
]


# ======================================================================
# Document model
# ======================================================================


class VerificationMethod(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    type: str
    controller: Optional[str] = None
    public_key_jwk: Optional[Dict[str, Any]] = Field(default=None, alias="publicKeyJwk")


class DidDocument(BaseModel):
    """The subset of a DID document used to resolve verification keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    context: List[str] = Field(default_factory=list, alias="@context")
    verification_method: List[VerificationMethod] = Field(
        default_factory=list, alias="verificationMethod"
    )
    assertion_method: List[str] = Field(default_factory=list, alias="assertionMethod")

    @field_validator("context", mode="before")
    @classmethod
    def _normalise_context(cls, value: Any) -> Any:
        # "@context" may be a single URI, or a list mixing URIs and objects.
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [item for item in value if isinstance(item, str)]
        return value

    @field_validator("assertion_method", mode="before")
    @classmethod
    def _normalise_assertion_method(cls, value: Any) -> Any:
        # Embedded methods are referenced by their id.
        if isinstance(value, list):
            return [
                item.get("id") if isinstance(item, dict) else item
                for item in value
            ]
        return value

    def find_verification_method(self, method_id: str) -> Optional[VerificationMethod]:
        for method in self.verification_method:
            if method.id == method_id:
                return method
        return None

    def __str__(self) -> str:
        return f"DidDocument(id={self.id})"


# ======================================================================
# Shared HTTP client
# ======================================================================

_POOL_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=5,
    keepalive_expiry=30.0,
)

_shared_client: Optional[httpx.AsyncClient] = None


def get_shared_client() -> httpx.AsyncClient:
    """Get or lazily create the pooled client used for DID lookups.

    Redirects are not followed: the document must be served at the
    address derived from the issuer.
    """
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(limits=_POOL_LIMITS, follow_redirects=False)
        logger.info("Created shared httpx.AsyncClient for DID document retrieval")
    return _shared_client


async def close_shared_client() -> None:
    """Close the shared client. Call on application shutdown."""
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
        logger.info("Closed shared httpx.AsyncClient")
    _shared_client = None


# ======================================================================
# Retrieval
# ======================================================================


def did_web_url(issuer: str) -> str:
    """Derive the HTTPS address of the DID document for a ``did:web`` issuer.

    Raises
    ------
    DidDocumentFetchError
        If *issuer* is not a ``did:web`` identifier or has no host.
    """
    if not issuer.startswith(DID_WEB_PREFIX):
        raise DidDocumentFetchError.fetch_failed(issuer, "issuer is not a did:web identifier")

    segments = issuer[len(DID_WEB_PREFIX):].split(":")
    host = unquote(segments[0])
    if not host or "/" in host:
        raise DidDocumentFetchError.fetch_failed(issuer, "issuer has no valid host")

    if len(segments) == 1:
        return f"https://{host}/{DID_DOCUMENT_PATH}"
    path = "/".join(unquote(segment) for segment in segments[1:])
    return f"https://{host}/{path}/did.json"


class DidDocumentRetriever(ABC):
    """Source of DID documents for issuers."""

    @abstractmethod
    async def get_document(self, issuer: str) -> DidDocument:
        """Return the DID document of *issuer*, raising on any failure."""


class HttpDidDocumentRetriever(DidDocumentRetriever):
    """Fetches ``did:web`` documents with httpx.

    Parameters
    ----------
    client : httpx.AsyncClient, optional
        Client to use.  Defaults to the module's shared pooled client.
    timeout : float
        Request timeout in seconds.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DID_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._timeout = timeout

    async def get_document(self, issuer: str) -> DidDocument:
        """Fetch and parse the DID document of *issuer*.

        Raises
        ------
        DidDocumentFetchError
            On network errors, timeouts, non-2xx status codes, oversize
            bodies, or a body that is not a DID document.
        """
        url = did_web_url(issuer)
        client = self._client or get_shared_client()

        logger.debug("Retrieving DID document at address '%s'", url)

        try:
            response = await client.get(url, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise DidDocumentFetchError.fetch_failed(
                url, f"timed out after {self._timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise DidDocumentFetchError.fetch_failed(url, str(exc) or type(exc).__name__) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise DidDocumentFetchError.fetch_failed(url, f"HTTP {response.status_code}")

        body = response.content
        if len(body) > DID_DOCUMENT_MAX_SIZE_BYTES:
            raise DidDocumentFetchError.fetch_failed(
                url, f"response exceeds {DID_DOCUMENT_MAX_SIZE_BYTES} bytes"
            )

        try:
            document = DidDocument.model_validate_json(body)
        except ValidationError as exc:
            raise DidDocumentFetchError.parse_failed(url, str(exc)) from exc

        logger.debug("Successfully retrieved DID document '%s'", document)
        return document
