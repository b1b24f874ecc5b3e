# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""NZ COVID Pass verifier exceptions.

Decoding errors (base32, CBOR, COSE shape) are raised inside the token
reader and translated into failure reasons there.  Key resolution
errors cross the key provider boundary and are translated by the
token validator.  Nothing here is expected to escape
:meth:`nzcp.verifier.PassVerifier.verify`.
"""


class NzcpError(Exception):
    """Base exception for pass verification errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class Base32FormatError(NzcpError):
    """Base32 payload contains characters outside the RFC 4648 alphabet."""

    @classmethod
    def invalid_character(cls, char: str, position: int) -> "Base32FormatError":
        return cls(
            code="BASE32_INVALID",
            message=f"Invalid base-32 character {char!r} at position {position}",
        )

    @classmethod
    def misplaced_padding(cls, position: int) -> "Base32FormatError":
        return cls(
            code="BASE32_INVALID",
            message=f"Padding character found before data at position {position}",
        )


class CborDecodeError(NzcpError):
    """Malformed CBOR byte stream."""

    def __init__(self, message: str, offset: int = -1):
        self.offset = offset
        super().__init__(code="CBOR_DECODE_FAILED", message=message)

    @classmethod
    def truncated(cls, offset: int, needed: int) -> "CborDecodeError":
        return cls(f"Unexpected end of data at offset {offset} (need {needed} more bytes)", offset)

    @classmethod
    def unsupported(cls, what: str, offset: int) -> "CborDecodeError":
        return cls(f"Unsupported CBOR {what} at offset {offset}", offset)


class CoseStructureError(NzcpError):
    """Well-formed CBOR that is not a COSE_Sign1 structure."""

    @classmethod
    def invalid(cls, reason: str) -> "CoseStructureError":
        return cls(code="COSE_STRUCTURE_INVALID", message=f"Invalid COSE_Sign1 structure: {reason}")


class DidDocumentFetchError(NzcpError):
    """DID document could not be retrieved or parsed."""

    @classmethod
    def fetch_failed(cls, url: str, reason: str) -> "DidDocumentFetchError":
        return cls(code="DID_FETCH_FAILED", message=f"Failed to retrieve DID document from {url}: {reason}")

    @classmethod
    def parse_failed(cls, url: str, reason: str) -> "DidDocumentFetchError":
        return cls(code="DID_PARSE_FAILED", message=f"Failed to parse DID document from {url}: {reason}")


class UnsupportedKeyError(NzcpError):
    """Public key JWK cannot be converted to a supported verification key."""

    @classmethod
    def unsupported(cls, reason: str) -> "UnsupportedKeyError":
        return cls(code="KEY_UNSUPPORTED", message=f"Unsupported verification key: {reason}")


class VerificationKeyNotFoundError(NzcpError):
    """Verification key could not be resolved for an issuer/key ID pair."""

    @classmethod
    def not_found(cls, key_reference: str) -> "VerificationKeyNotFoundError":
        return cls(code="KEY_NOT_FOUND", message=f"Unable to retrieve key '{key_reference}'.")

    @classmethod
    def issuer_unreachable(cls, issuer: str) -> "VerificationKeyNotFoundError":
        return cls(code="KEY_NOT_FOUND", message=f"Unable to retrieve key for issuer '{issuer}'.")
