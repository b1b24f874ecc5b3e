# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Failure reasons and verification results."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Iterable, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


# =============================================================================
# Failure codes
# =============================================================================

class FailureCode(str, Enum):
    # Pass verifier
    INVALID_PASS_COMPONENTS = "InvalidPassComponents"
    PREFIX_VALIDATION_FAILED = "PrefixValidationFailed"
    VERSION_VALIDATION_FAILED = "VersionValidationFailed"
    EMPTY_PASS_PAYLOAD = "EmptyPassPayload"
    TOKEN_READ_FAILED = "TokenReadFailed"
    TOKEN_VALIDATION_FAILED = "TokenValidationFailed"
    # Token reader
    INVALID_BASE32_PAYLOAD = "InvalidBase32Payload"
    FAILED_TO_DECODE_CBOR_STRUCTURE = "FailedToDecodeCborStructure"
    INVALID_COSE_STRUCTURE = "InvalidCoseStructure"
    # Token validator
    KEY_ID_VALIDATION_FAILED = "KeyIdValidationFailed"
    ALGORITHM_VALIDATION_FAILED = "AlgorithmValidationFailed"
    TOKEN_ID_VALIDATION_FAILED = "TokenIdValidationFailed"
    ISSUER_VALIDATION_FAILED = "IssuerValidationFailed"
    LIFETIME_VALIDATION_FAILED = "LifetimeValidationFailed"
    NOT_BEFORE_VALIDATION_FAILED = "NotBeforeValidationFailed"
    EXPIRY_VALIDATION_FAILED = "ExpiryValidationFailed"
    VERIFICATION_KEY_RETRIEVAL_FAILED = "VerificationKeyRetrievalFailed"
    SIGNATURE_VALIDATION_FAILED = "SignatureValidationFailed"
    CREDENTIAL_VALIDATION_FAILED = "CredentialValidationFailed"
    CREDENTIAL_CONTEXT_VALIDATION_FAILED = "CredentialContextValidationFailed"
    CREDENTIAL_TYPE_VALIDATION_FAILED = "CredentialTypeValidationFailed"


class FailureReason(BaseModel):
    """A single reason a verification step failed."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def make_reason(code: FailureCode, message: str) -> FailureReason:
    """Create a FailureReason carrying the plain string value of *code*."""
    return FailureReason(code=code.value, message=message)


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a reader, validator or verifier call.

    Either carries a value (success) or a non-empty, ordered tuple of
    failure reasons.  Build instances through :meth:`success` and
    :meth:`failure`; a result is never changed after construction.
    """

    value: Optional[T] = None
    failure_reasons: Tuple[FailureReason, ...] = ()

    def __post_init__(self) -> None:
        if self.failure_reasons and self.value is not None:
            raise ValueError("A result cannot carry both a value and failure reasons")
        if not self.failure_reasons and self.value is None:
            raise ValueError("A successful result requires a value")

    @classmethod
    def success(cls, value: T):
        return cls(value=value)

    @classmethod
    def failure(cls, reasons: Iterable[FailureReason]):
        reasons = tuple(reasons)
        if not reasons:
            raise ValueError("A failed result requires at least one failure reason")
        return cls(failure_reasons=reasons)

    @property
    def succeeded(self) -> bool:
        return not self.failure_reasons

    @property
    def failed(self) -> bool:
        return bool(self.failure_reasons)

    @property
    def failure_codes(self) -> Tuple[str, ...]:
        return tuple(reason.code for reason in self.failure_reasons)

    def __str__(self) -> str:
        if self.succeeded:
            return f"{type(self).__name__}(succeeded=True)"
        reasons = ", ".join(str(r) for r in self.failure_reasons)
        return f"{type(self).__name__}(failed=True, reasons=[{reasons}])"
