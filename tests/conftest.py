# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Shared test fixtures for the NZ COVID Pass verifier test suite.

Provides reusable fixtures for generating P-256 keypairs, signed
COSE_Sign1 pass tokens, and issuer DID documents.  Tokens are built
with ``cbor2`` so that the package's own decoder is exercised against an
independent encoder, and signed with real ECDSA key material.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Dict, List, Optional, Union

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from nzcp.config import PassVerifierOptions
from nzcp.keys.cache import KeyCache, reset_key_cache

from tests.helpers import (
    ISSUER,
    KEY_ID,
    NOW_TS,
    FakeClock,
    FakeRetriever,
    b32_body,
    default_credential,
    jwk_coordinate,
    sign_es256,
)

_OMIT = object()


# =========================================================================
# P-256 Keypair
# =========================================================================

@pytest.fixture
def signing_key() -> ec.EllipticCurvePrivateKey:
    """Generate a fresh P-256 private key for signing test tokens."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def public_jwk(signing_key: ec.EllipticCurvePrivateKey) -> Dict[str, str]:
    """Public JWK of the ``signing_key`` fixture."""
    numbers = signing_key.public_key().public_numbers()
    return {
        "kty": "EC",
        "crv": "P-256",
        "x": jwk_coordinate(numbers.x),
        "y": jwk_coordinate(numbers.y),
    }


# =========================================================================
# CWT Factory
# =========================================================================

@pytest.fixture
def make_token_bytes(signing_key: ec.EllipticCurvePrivateKey) -> Callable[..., bytes]:
    """Factory fixture: create a signed, tagged COSE_Sign1 message.

    Keyword arguments override individual claims; pass ``None`` to omit
    a claim entirely.  Defaults produce a pass that is valid at
    ``tests.helpers.NOW`` for the default issuer and key ID.
    """

    def _make(
        kid: Optional[Union[str, bytes]] = KEY_ID,
        alg: Optional[int] = -7,
        iss: Optional[str] = ISSUER,
        nbf: Optional[int] = NOW_TS - 86400,
        exp: Optional[int] = NOW_TS + 86400 * 365,
        cti: Any = _OMIT,
        vc: Any = _OMIT,
        key: Optional[ec.EllipticCurvePrivateKey] = None,
        tag: int = 18,
        signature: Optional[bytes] = None,
    ) -> bytes:
        header: Dict[int, Any] = {}
        if alg is not None:
            header[1] = alg
        if kid is not None:
            header[4] = kid.encode("utf-8") if isinstance(kid, str) else kid

        claims: Dict[Union[int, str], Any] = {}
        if iss is not None:
            claims[1] = iss
        if exp is not None:
            claims[4] = exp
        if nbf is not None:
            claims[5] = nbf
        cti = uuid.uuid4().bytes if cti is _OMIT else cti
        if cti is not None:
            claims[7] = cti
        vc = default_credential() if vc is _OMIT else vc
        if vc is not None:
            claims["vc"] = vc

        protected = cbor2.dumps(header)
        payload = cbor2.dumps(claims)
        if signature is None:
            sig_structure = cbor2.dumps(["Signature1", protected, b"", payload])
            signature = sign_es256(key or signing_key, sig_structure)

        return cbor2.dumps(cbor2.CBORTag(tag, [protected, {}, payload, signature]))

    return _make


@pytest.fixture
def make_token_body(make_token_bytes: Callable[..., bytes]) -> Callable[..., str]:
    """Factory fixture: base-32 body (no padding) of a signed token."""

    def _make(**kwargs: Any) -> str:
        return b32_body(make_token_bytes(**kwargs))

    return _make


@pytest.fixture
def make_pass(make_token_body: Callable[..., str]) -> Callable[..., str]:
    """Factory fixture: full ``NZCP:/1/<body>`` pass payload."""

    def _make(prefix: str = "NZCP:", version: str = "1", **kwargs: Any) -> str:
        return f"{prefix}/{version}/{make_token_body(**kwargs)}"

    return _make


# =========================================================================
# DID Documents
# =========================================================================

@pytest.fixture
def make_did_document(public_jwk: Dict[str, str]) -> Callable[..., Dict[str, Any]]:
    """Factory fixture: issuer DID document as a JSON-compatible dict."""

    def _make(
        issuer: str = ISSUER,
        key_id: str = KEY_ID,
        method_type: str = "JsonWebKey2020",
        jwk: Any = _OMIT,
        assertion_method: Optional[List[Any]] = None,
    ) -> Dict[str, Any]:
        reference = f"{issuer}#{key_id}"
        method: Dict[str, Any] = {
            "id": reference,
            "controller": issuer,
            "type": method_type,
        }
        jwk = public_jwk if jwk is _OMIT else jwk
        if jwk is not None:
            method["publicKeyJwk"] = jwk
        return {
            "id": issuer,
            "@context": [
                "https://w3.org/ns/did/v1",
                "https://w3id.org/security/suites/jws-2020/v1",
            ],
            "verificationMethod": [method],
            "assertionMethod": [reference] if assertion_method is None else assertion_method,
        }

    return _make


@pytest.fixture
def retriever(make_did_document: Callable[..., Dict[str, Any]]) -> FakeRetriever:
    """Fake retriever serving the default issuer's DID document."""
    return FakeRetriever({ISSUER: make_did_document()})


# =========================================================================
# Key cache and options
# =========================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_cache(clock: FakeClock):
    """Fresh key cache on a fake clock."""
    reset_key_cache()
    yield KeyCache(ttl_seconds=60.0, clock=clock)
    reset_key_cache()


@pytest.fixture
def options() -> PassVerifierOptions:
    return PassVerifierOptions(
        prefix="NZCP:",
        version=1,
        valid_issuers={ISSUER},
        valid_algorithms={"ES256"},
        key_cache_ttl=60.0,
        did_fetch_timeout=5.0,
    )
