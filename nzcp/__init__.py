"""NZ COVID Pass verification.

Reads and verifies ``NZCP:/1/...`` pass payloads: base-32 and CBOR
decoding, COSE_Sign1 signature verification against keys resolved from
the issuer's ``did:web`` document, and credential validation.
"""

from .config import PassVerifierOptions
from .credential import PublicCovidPass, VerifiableCredential
from .exceptions import NzcpError, VerificationKeyNotFoundError
from .models import FailureCode, FailureReason, Result
from .reader import TokenReader
from .token import Token
from .validator import TokenValidator
from .verifier import PassVerifier, PassVerifierResult

__all__ = [
    "FailureCode",
    "FailureReason",
    "NzcpError",
    "PassVerifier",
    "PassVerifierOptions",
    "PassVerifierResult",
    "PublicCovidPass",
    "Result",
    "Token",
    "TokenReader",
    "TokenValidator",
    "VerifiableCredential",
    "VerificationKeyNotFoundError",
]
