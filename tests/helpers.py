# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Plain helpers and test doubles shared by the test modules."""

from __future__ import annotations

import base64
import datetime
from typing import Any, Dict, Iterable, List, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from nzcp.keys.did import DidDocument, DidDocumentRetriever

ISSUER = "did:web:nzcp.identity.health.nz"
KEY_ID = "key-1"
KEY_REFERENCE = f"{ISSUER}#{KEY_ID}"

BASE_CONTEXT = "https://www.w3.org/2018/credentials/v1"
PASS_CONTEXT = "https://nzcp.covid19.health.nz/contexts/v1"

# Fixed clock for lifetime checks: 2021-11-01T00:00:00Z.
NOW = datetime.datetime(2021, 11, 1, tzinfo=datetime.timezone.utc)
NOW_TS = int(NOW.timestamp())


def default_credential() -> Dict[str, Any]:
    return {
        "@context": [BASE_CONTEXT, PASS_CONTEXT],
        "version": "1.0.0",
        "type": ["VerifiableCredential", "PublicCovidPass"],
        "credentialSubject": {
            "givenName": "Jack",
            "familyName": "Sparrow",
            "dob": "1960-04-16",
        },
    }


def b32_body(data: bytes) -> str:
    """Base-32 encode *data* without padding, as carried in a pass."""
    return base64.b32encode(data).decode("ascii").rstrip("=")


def jwk_coordinate(value: int) -> str:
    return base64.urlsafe_b64encode(value.to_bytes(32, "big")).decode("ascii").rstrip("=")


def sign_es256(key: ec.EllipticCurvePrivateKey, data: bytes) -> bytes:
    """Sign *data* and return the COSE ``r || s`` signature."""
    r, s = decode_dss_signature(key.sign(data, ec.ECDSA(hashes.SHA256())))
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def fixed_now() -> datetime.datetime:
    return NOW


def codes(reasons: Iterable[Any]) -> List[str]:
    return [reason.code for reason in reasons]


class FakeRetriever(DidDocumentRetriever):
    """In-memory retriever that records every lookup."""

    def __init__(
        self,
        documents: Optional[Dict[str, Dict[str, Any]]] = None,
        error: Optional[Exception] = None,
    ):
        self.documents = documents or {}
        self.error = error
        self.calls: List[str] = []

    async def get_document(self, issuer: str) -> DidDocument:
        self.calls.append(issuer)
        if self.error is not None:
            raise self.error
        if issuer not in self.documents:
            raise LookupError(f"no document for {issuer}")
        return DidDocument.model_validate(self.documents[issuer])


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
