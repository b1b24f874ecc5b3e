# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""CBOR Web Token (CWT) claims projection.

A :class:`Token` wraps the decoded protected header and payload maps of
a COSE_Sign1 message and exposes the claims used by the NZ COVID Pass:

=============  ===========  =============================================
Claim          Key          Decoding
=============  ===========  =============================================
``kid``        header 4     byte string, UTF-8 decoded
``alg``        header 1     COSE algorithm id mapped to a name
``iss``        payload 1    text string
``cti``        payload 7    16 bytes → UUID → ``urn:uuid:<uuid>`` (jti)
``nbf``        payload 5    UNIX seconds → UTC datetime
``exp``        payload 4    UNIX seconds → UTC datetime
``vc``         payload "vc" verifiable credential map
=============  ===========  =============================================

Every accessor returns ``None`` for a missing or wrongly typed claim;
enforcing presence is the validator's job.

References
----------
- RFC 8392 §3.1 — Registered CWT claims
- RFC 8152 §3.1 — Common COSE header parameters
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from nzcp.cbor import CborMap
from nzcp.credential import (
    PublicCovidPass,
    VerifiableCredential,
    parse_public_covid_pass_credential,
)

if TYPE_CHECKING:
    from nzcp.keys.signature import VerificationKey

__all__ = ["COSE_ALGORITHMS", "RawCwt", "Token"]

# COSE algorithm identifiers → algorithm names.
COSE_ALGORITHMS: Dict[int, str] = {
    -7: "ES256",
    -16: "SHA256",
    -44: "SHA512",
}


class _HeaderKeys:
    ALG = 1
    KID = 4


class _PayloadKeys:
    ISS = 1
    EXP = 4
    NBF = 5
    CTI = 7
    VC = "vc"


@dataclass(frozen=True)
class RawCwt:
    """Byte slices taken verbatim from the COSE_Sign1 array.

    Attributes:
        header:     Protected header bytes (element 0).
        payload:    Payload bytes (element 2).
        signature:  Signature bytes (element 3).
    """

    header: bytes
    payload: bytes
    signature: bytes


def _timestamp(claims: CborMap, key: int) -> Optional[datetime.datetime]:
    value = claims.get(key)
    seconds = value.as_int() if value is not None else None
    if seconds is None:
        return None
    try:
        return datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class Token:
    """Decoded CWT with typed claim accessors.

    Parameters
    ----------
    header : CborMap
        Decoded protected header.
    payload : CborMap
        Decoded claims map.
    raw : RawCwt
        The exact header, payload and signature bytes the token was
        read from.  Signature verification uses these, never the
        decoded maps.
    """

    def __init__(self, header: CborMap, payload: CborMap, raw: RawCwt):
        self._header = header
        self._payload = payload
        self._raw = raw
        self._signing_key: Optional["VerificationKey"] = None

    def __repr__(self) -> str:
        return (
            f"Token(kid={self.key_id!r}, alg={self.algorithm!r}, "
            f"iss={self.issuer!r}, jti={self.token_id!r})"
        )

    # ------------------------------------------------------------------
    # Header claims
    # ------------------------------------------------------------------

    @property
    def key_id(self) -> Optional[str]:
        value = self._header.get(_HeaderKeys.KID)
        raw = value.as_bytes() if value is not None else None
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    @property
    def algorithm(self) -> Optional[str]:
        value = self._header.get(_HeaderKeys.ALG)
        algorithm_id = value.as_int() if value is not None else None
        if algorithm_id is None:
            return None
        return COSE_ALGORITHMS.get(algorithm_id)

    # ------------------------------------------------------------------
    # Payload claims
    # ------------------------------------------------------------------

    @property
    def issuer(self) -> Optional[str]:
        value = self._payload.get(_PayloadKeys.ISS)
        return value.as_text() if value is not None else None

    @property
    def cti(self) -> Optional[uuid.UUID]:
        value = self._payload.get(_PayloadKeys.CTI)
        raw = value.as_bytes() if value is not None else None
        if raw is None or len(raw) != 16:
            return None
        return uuid.UUID(bytes=raw)

    @property
    def token_id(self) -> Optional[str]:
        """The ``jti`` derived from ``cti`` as ``urn:uuid:<uuid>``."""
        cti = self.cti
        if cti is None or cti.int == 0:
            return None
        return f"urn:uuid:{cti}"

    @property
    def not_before(self) -> Optional[datetime.datetime]:
        return _timestamp(self._payload, _PayloadKeys.NBF)

    @property
    def expiry(self) -> Optional[datetime.datetime]:
        return _timestamp(self._payload, _PayloadKeys.EXP)

    @property
    def credential(self) -> Optional[VerifiableCredential[PublicCovidPass]]:
        return parse_public_covid_pass_credential(self._payload.get(_PayloadKeys.VC))

    # ------------------------------------------------------------------
    # Raw material
    # ------------------------------------------------------------------

    @property
    def raw(self) -> RawCwt:
        return self._raw

    @property
    def header(self) -> CborMap:
        return self._header

    @property
    def payload(self) -> CborMap:
        return self._payload

    # ------------------------------------------------------------------
    # Signing key
    # ------------------------------------------------------------------

    @property
    def signing_key(self) -> Optional["VerificationKey"]:
        """Key that verified the signature; set only after successful validation."""
        return self._signing_key

    def bind_signing_key(self, key: "VerificationKey") -> None:
        if self._signing_key is not None and self._signing_key is not key:
            raise RuntimeError("Token is already bound to a different signing key")
        self._signing_key = key
