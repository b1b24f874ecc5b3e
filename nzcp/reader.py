# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""COSE_Sign1 / CWT reader for base-32 pass bodies.

Turns the base-32 body of a pass payload into a :class:`Token`:

1. Restore ``=`` padding and base-32 decode.
2. CBOR-decode the message, which must be ``tag(18)`` wrapping a
   4-element array ``[bstr, map, bstr, bstr]``.
3. Keep the protected header, payload and signature byte strings
   verbatim (:class:`RawCwt`).
4. CBOR-decode the header and payload byte strings, each a map.

Failures are reported as a failed :class:`Result` with one of three
reasons: invalid base-32, undecodable CBOR, or a well-formed value
that is not a COSE_Sign1 message.

References
----------
- RFC 8152 §4.2 — Signing with one signer (COSE_Sign1)
- RFC 8392 §6 — CWT tags
"""

from __future__ import annotations

import logging

from nzcp import base32, cbor
from nzcp.cbor import CborMap, CborTag, CborType
from nzcp.config import COSE_SIGN1_TAG
from nzcp.exceptions import Base32FormatError, CborDecodeError, CoseStructureError
from nzcp.models import FailureCode, FailureReason, Result, make_reason
from nzcp.token import RawCwt, Token

logger = logging.getLogger("nzcp.reader")

__all__ = [
    "TokenReader",
    "invalid_base32_payload",
    "failed_to_decode_cbor_structure",
    "invalid_cose_structure",
]

_EXPECTED_ELEMENT_TYPES = (
    CborType.BYTE_STRING,
    CborType.MAP,
    CborType.BYTE_STRING,
    CborType.BYTE_STRING,
)


# ---------------------------------------------------------------------------
# Failure reasons
# ---------------------------------------------------------------------------

def invalid_base32_payload() -> FailureReason:
    return make_reason(FailureCode.INVALID_BASE32_PAYLOAD, "Payload must be a base-32 encoded string.")


def failed_to_decode_cbor_structure() -> FailureReason:
    return make_reason(FailureCode.FAILED_TO_DECODE_CBOR_STRUCTURE, "Failed to decode CBOR structure.")


def invalid_cose_structure() -> FailureReason:
    return make_reason(FailureCode.INVALID_COSE_STRUCTURE, "Payload is not a valid COSE_Sign1 structure.")


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

def _read_cose_sign1(data: bytes) -> RawCwt:
    """Decode *data* as a tagged COSE_Sign1 array and slice its byte strings."""
    message = cbor.decode(data)

    if not isinstance(message, CborTag) or message.tag != COSE_SIGN1_TAG:
        raise CoseStructureError.invalid(f"expected tag {COSE_SIGN1_TAG}")

    array = message.value.as_array()
    if array is None:
        raise CoseStructureError.invalid("tagged value is not an array")
    if len(array) != 4:
        raise CoseStructureError.invalid(f"expected 4 elements, got {len(array)}")

    actual = tuple(item.cbor_type for item in array)
    if actual != _EXPECTED_ELEMENT_TYPES:
        raise CoseStructureError.invalid(
            "element types " + ", ".join(t.value for t in actual)
        )

    return RawCwt(
        header=array[0].as_bytes(),
        payload=array[2].as_bytes(),
        signature=array[3].as_bytes(),
    )


def _decode_claims_map(data: bytes, label: str) -> CborMap:
    claims = cbor.decode(data).as_map()
    if claims is None:
        raise CoseStructureError.invalid(f"{label} is not a CBOR map")
    return claims


class TokenReader:
    """Reads base-32 encoded CWTs into :class:`Token` instances."""

    def read(self, payload: str) -> Result[Token]:
        """Read *payload* (the base-32 body of a pass) into a token.

        Never raises for malformed input; decoding problems are returned
        as a failed :class:`Result`.
        """
        padded = base32.add_padding(payload)
        logger.debug("Decoding base-32 payload '%s'", padded)

        try:
            data = base32.decode(padded)
        except Base32FormatError as exc:
            logger.error("Failed to decode base-32 payload: %s", exc.message)
            return Result.failure([invalid_base32_payload()])

        logger.debug("Decoded base-32 payload bytes (hex) '%s'", data.hex())

        try:
            raw = _read_cose_sign1(data)
            header = _decode_claims_map(raw.header, "protected header")
            claims = _decode_claims_map(raw.payload, "payload")
        except CborDecodeError as exc:
            logger.error("Failed to decode CBOR structure: %s", exc.message)
            return Result.failure([failed_to_decode_cbor_structure()])
        except CoseStructureError as exc:
            logger.error("Failed to read COSE_Sign1 structure: %s", exc.message)
            return Result.failure([invalid_cose_structure()])

        logger.debug("Decoded CWT header %s and payload %s", header.to_python(), claims.to_python())

        return Result.success(Token(header, claims, raw))
