# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Verification keys and COSE signature checking.

A :class:`VerificationKey` is anything that can check a signature over a
byte string.  Implementations are registered per algorithm name in
:data:`SIGNATURE_ALGORITHMS`; :func:`verify_signature` refuses to use a
key for an algorithm it was not registered for.  Supporting a new
algorithm means adding one implementation and one table entry.

Only ES256 (ECDSA over P-256 with SHA-256) is used by NZ COVID Passes.
COSE carries ECDSA signatures as the fixed-width concatenation
``r || s`` rather than DER, so the signature is converted before it is
handed to ``cryptography``.

References
----------
- RFC 8152 §8.1 — ECDSA
- RFC 7518 §6.2.1 — Parameters for elliptic curve public keys (JWK)
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Type

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from nzcp.exceptions import UnsupportedKeyError

logger = logging.getLogger("nzcp.keys.signature")

__all__ = [
    "EcdsaP256VerificationKey",
    "SIGNATURE_ALGORITHMS",
    "VerificationKey",
    "key_from_jwk",
    "verify_signature",
]

# Byte length of one P-256 coordinate / signature component.
_P256_COORDINATE_LEN = 32


class VerificationKey(ABC):
    """Public key capable of verifying signatures."""

    key_id: Optional[str] = None

    @abstractmethod
    def verify(self, data: bytes, signature: bytes) -> bool:
        """Return ``True`` iff *signature* is valid for *data*."""


class EcdsaP256VerificationKey(VerificationKey):
    """ECDSA P-256 / SHA-256 key verifying COSE ``r || s`` signatures."""

    def __init__(self, public_key: ec.EllipticCurvePublicKey, key_id: Optional[str] = None):
        if not isinstance(public_key.curve, ec.SECP256R1):
            raise UnsupportedKeyError.unsupported(f"curve {public_key.curve.name} is not P-256")
        self.public_key = public_key
        self.key_id = key_id

    def __repr__(self) -> str:
        return f"EcdsaP256VerificationKey(key_id={self.key_id!r})"

    def verify(self, data: bytes, signature: bytes) -> bool:
        if len(signature) != 2 * _P256_COORDINATE_LEN:
            logger.debug("ES256 signature has wrong length %d", len(signature))
            return False

        r = int.from_bytes(signature[:_P256_COORDINATE_LEN], "big")
        s = int.from_bytes(signature[_P256_COORDINATE_LEN:], "big")

        try:
            self.public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True


# Algorithm name (as projected from the COSE header) → key implementation.
SIGNATURE_ALGORITHMS: Dict[str, Type[VerificationKey]] = {
    "ES256": EcdsaP256VerificationKey,
}


def verify_signature(
    key: VerificationKey,
    algorithm: Optional[str],
    data: bytes,
    signature: bytes,
) -> bool:
    """Verify *signature* over *data* with *key* under *algorithm*.

    Returns ``False`` when the algorithm is unknown or *key* is not an
    implementation of it, as well as when the signature does not match.
    """
    implementation = SIGNATURE_ALGORITHMS.get(algorithm or "")
    if implementation is None:
        logger.error("No signature implementation for algorithm '%s'", algorithm)
        return False
    if not isinstance(key, implementation):
        logger.error(
            "Algorithm '%s' is not supported for key type '%s'",
            algorithm, type(key).__name__,
        )
        return False
    return key.verify(data, signature)


# ---------------------------------------------------------------------------
# JWK conversion
# ---------------------------------------------------------------------------

def _b64url_coordinate(jwk: Mapping[str, Any], name: str) -> int:
    value = jwk.get(name)
    if not isinstance(value, str) or not value:
        raise UnsupportedKeyError.unsupported(f"JWK is missing '{name}'")
    try:
        raw = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except ValueError as exc:
        raise UnsupportedKeyError.unsupported(f"JWK '{name}' is not base64url") from exc
    if len(raw) != _P256_COORDINATE_LEN:
        raise UnsupportedKeyError.unsupported(
            f"JWK '{name}' must be {_P256_COORDINATE_LEN} bytes, got {len(raw)}"
        )
    return int.from_bytes(raw, "big")


def key_from_jwk(jwk: Mapping[str, Any], key_id: Optional[str] = None) -> VerificationKey:
    """Convert a public JWK to a :class:`VerificationKey`.

    Only EC keys on P-256 are supported.

    Raises
    ------
    UnsupportedKeyError
        If the JWK has another key type or curve, is missing coordinates,
        or does not describe a point on the curve.
    """
    kty = jwk.get("kty")
    crv = jwk.get("crv")
    if kty != "EC" or crv != "P-256":
        raise UnsupportedKeyError.unsupported(f"kty={kty!r}, crv={crv!r}")

    x = _b64url_coordinate(jwk, "x")
    y = _b64url_coordinate(jwk, "y")
    try:
        public_key = ec.EllipticCurvePublicNumbers(x, y, ec.SECP256R1()).public_key()
    except ValueError as exc:
        raise UnsupportedKeyError.unsupported("point is not on curve P-256") from exc

    return EcdsaP256VerificationKey(public_key, key_id=key_id)
