# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""CWT validation for NZ COVID Passes.

Applies the NZ COVID Pass verification steps to a
:class:`Token` that has already been read:

1. **Header**: ``kid`` present; ``alg`` present and accepted.
2. **Payload**: ``jti`` present; ``iss`` trusted; ``nbf``/``exp``
   consistent and bracketing the current time.
3. **Key resolution**: the issuer's DID document yields the key for
   ``"{iss}#{kid}"``.
4. **Signature**: COSE ``Sig_structure`` over the raw header and payload
   bytes verifies with the resolved key.
5. **Credential**: the ``vc`` claim carries the base and
   ``PublicCovidPass`` context and type values.

Within stages 1, 2 and 5 every check runs and every failure is
recorded.  A failure in stages 1 and 2 skips the rest; stages 3 and 4
halt on their first failure.

References
----------
- nzcp.covid19.health.nz — Steps to verify a New Zealand COVID Pass
- RFC 8152 §4.4 — Signing and verification process
"""

from __future__ import annotations

import datetime
import logging
from typing import Callable, Collection, List, Optional

from nzcp.cbor import encode_sig_structure
from nzcp.config import PassVerifierOptions
from nzcp.credential import PublicCovidPass, VerifiableCredential
from nzcp.exceptions import VerificationKeyNotFoundError
from nzcp.keys.provider import VerificationKeyProvider
from nzcp.keys.signature import VerificationKey, verify_signature
from nzcp.models import FailureCode, FailureReason, Result, make_reason
from nzcp.token import Token

logger = logging.getLogger("nzcp.validator")

__all__ = ["TokenValidator", "utc_now"]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _joined(values: Collection[str]) -> str:
    return ", ".join(sorted(values))


# ---------------------------------------------------------------------------
# Failure reasons
# ---------------------------------------------------------------------------

def key_id_validation_failed() -> FailureReason:
    return make_reason(
        FailureCode.KEY_ID_VALIDATION_FAILED,
        "Key ID (`kid`) parameter could not be found in CWT header.",
    )


def algorithm_validation_failed(valid_algorithms: Collection[str]) -> FailureReason:
    return make_reason(
        FailureCode.ALGORITHM_VALIDATION_FAILED,
        "Algorithm (`alg`) parameter could not be found in CWT header or has an "
        f"unexpected value [Valid algorithms = {_joined(valid_algorithms)}].",
    )


def token_id_validation_failed() -> FailureReason:
    return make_reason(
        FailureCode.TOKEN_ID_VALIDATION_FAILED,
        "Token ID (mapped `cti`) parameter could not be found in CWT payload.",
    )


def issuer_validation_failed(valid_issuers: Collection[str]) -> FailureReason:
    return make_reason(
        FailureCode.ISSUER_VALIDATION_FAILED,
        "Issuer (`iss`) parameter could not be found in CWT payload or has an "
        f"unexpected value [Valid issuers = {_joined(valid_issuers)}].",
    )


def lifetime_validation_failed() -> FailureReason:
    return make_reason(
        FailureCode.LIFETIME_VALIDATION_FAILED,
        "Lifetime validation failed due to an inconsistency between not before "
        "parameter (`nbf`) and expiry parameter (`exp`).",
    )


def not_before_validation_failed() -> FailureReason:
    return make_reason(
        FailureCode.NOT_BEFORE_VALIDATION_FAILED,
        "Not before (`nbf`) parameter could not be found in CWT payload or has an unexpected value.",
    )


def expiry_validation_failed() -> FailureReason:
    return make_reason(
        FailureCode.EXPIRY_VALIDATION_FAILED,
        "Expiry (`exp`) parameter could not be found in CWT payload or has an unexpected value.",
    )


def verification_key_retrieval_failed() -> FailureReason:
    return make_reason(
        FailureCode.VERIFICATION_KEY_RETRIEVAL_FAILED,
        "Verification key retrieval failed. This could be caused by DID document "
        "resolution failing due to a network error/invalid URL or the retrieved "
        "document not containing the expected assertion/verification method.",
    )


def signature_validation_failed() -> FailureReason:
    return make_reason(FailureCode.SIGNATURE_VALIDATION_FAILED, "Signature validation failed.")


def credential_validation_failed() -> FailureReason:
    return make_reason(FailureCode.CREDENTIAL_VALIDATION_FAILED, "Credential validation failed.")


def credential_context_validation_failed(base_context: str, subject_context: str) -> FailureReason:
    return make_reason(
        FailureCode.CREDENTIAL_CONTEXT_VALIDATION_FAILED,
        "Credential context is missing an expected value "
        f"[Base context = {base_context}, Credential context = {subject_context}]",
    )


def credential_type_validation_failed(base_type: str, subject_type: str) -> FailureReason:
    return make_reason(
        FailureCode.CREDENTIAL_TYPE_VALIDATION_FAILED,
        "Credential type is missing an expected value "
        f"[Base type = {base_type}, Credential type = {subject_type}]",
    )


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class TokenValidator:
    """Validates read tokens against the pass verification rules.

    Parameters
    ----------
    options : PassVerifierOptions
        Accepted issuers and algorithms.
    key_provider : VerificationKeyProvider
        Resolves the issuer's signing key.
    now : callable, optional
        Returns the current time as an aware UTC datetime.
    """

    def __init__(
        self,
        options: PassVerifierOptions,
        key_provider: VerificationKeyProvider,
        now: Callable[[], datetime.datetime] = utc_now,
    ) -> None:
        self._options = options
        self._key_provider = key_provider
        self._now = now

    async def validate(self, token: Token) -> Result[Token]:
        """Validate *token*, binding its signing key on success."""
        reasons: List[FailureReason] = []

        logger.debug("Validating token header")
        self._validate_header(token, reasons)
        logger.debug("Validating token payload")
        self._validate_payload(token, reasons)

        if reasons:
            logger.error("Token claims are not valid")
            return Result.failure(reasons)

        key = await self._get_verification_key(token)
        if key is None:
            return Result.failure([verification_key_retrieval_failed()])

        if not self._validate_signature(token, key):
            logger.error("Token signature is not valid")
            return Result.failure([signature_validation_failed()])

        logger.debug("Validating token credential")
        self._validate_credential(token.credential, reasons)
        if reasons:
            logger.error("Token credential is not valid")
            return Result.failure(reasons)

        token.bind_signing_key(key)
        return Result.success(token)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def _validate_header(self, token: Token, reasons: List[FailureReason]) -> None:
        if not token.key_id:
            logger.error("Key ID validation failed")
            reasons.append(key_id_validation_failed())

        algorithm = token.algorithm
        valid_algorithms = self._options.valid_algorithms
        if not algorithm or algorithm not in valid_algorithms:
            logger.error(
                "Algorithm validation failed [Algorithm '%s' is not in the valid algorithms set {%s}]",
                algorithm, _joined(valid_algorithms),
            )
            reasons.append(algorithm_validation_failed(valid_algorithms))

    def _validate_payload(self, token: Token, reasons: List[FailureReason]) -> None:
        if not token.token_id:
            logger.error("Token ID validation failed")
            reasons.append(token_id_validation_failed())

        issuer = token.issuer
        valid_issuers = self._options.valid_issuers
        if not issuer or issuer not in valid_issuers:
            logger.error(
                "Issuer validation failed [Issuer '%s' is not in the valid issuers set {%s}]",
                issuer, _joined(valid_issuers),
            )
            reasons.append(issuer_validation_failed(valid_issuers))

        self._validate_lifetime(token, reasons)

    def _validate_lifetime(self, token: Token, reasons: List[FailureReason]) -> None:
        not_before = token.not_before
        expiry = token.expiry
        now = self._now()

        if not_before is not None and expiry is not None and not_before > expiry:
            logger.error(
                "Lifetime validation failed [Not before '%s' is after expiry '%s']",
                not_before, expiry,
            )
            reasons.append(lifetime_validation_failed())

        if not_before is None or not_before > now:
            logger.error("Not before validation failed [Not before '%s' is missing or in the future]", not_before)
            reasons.append(not_before_validation_failed())

        if expiry is None or expiry < now:
            logger.error("Expiry validation failed [Expiry '%s' is missing or in the past]", expiry)
            reasons.append(expiry_validation_failed())

    # ------------------------------------------------------------------
    # Key and signature
    # ------------------------------------------------------------------

    async def _get_verification_key(self, token: Token) -> Optional[VerificationKey]:
        try:
            return await self._key_provider.get_key(token.issuer, token.key_id)
        except VerificationKeyNotFoundError as exc:
            logger.error("Failed to retrieve verification key: %s", exc.message)
            return None

    @staticmethod
    def _validate_signature(token: Token, key: VerificationKey) -> bool:
        logger.debug("Validating token signature")
        raw = token.raw
        sig_structure = encode_sig_structure(raw.header, raw.payload)

        if not verify_signature(key, token.algorithm, sig_structure, raw.signature):
            logger.error(
                "Signature validation failed [Signature computed using %s and %s "
                "is not consistent with the provided signature]",
                token.algorithm, type(key).__name__,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Credential
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_credential(
        credential: Optional[VerifiableCredential[PublicCovidPass]],
        reasons: List[FailureReason],
    ) -> None:
        if credential is None:
            logger.error("Credential validation failed")
            reasons.append(credential_validation_failed())
            return

        base_context = VerifiableCredential.BASE_CONTEXT
        subject_context = credential.credential_subject.context
        if base_context not in credential.context or subject_context not in credential.context:
            logger.error(
                "Credential validation failed [Missing expected base context '%s' "
                "or credential subject context '%s']",
                base_context, subject_context,
            )
            reasons.append(credential_context_validation_failed(base_context, subject_context))

        base_type = VerifiableCredential.BASE_TYPE
        subject_type = credential.credential_subject.type
        if base_type not in credential.type or subject_type not in credential.type:
            logger.error(
                "Credential validation failed [Missing expected base credential type '%s' "
                "or credential subject type '%s']",
                base_type, subject_type,
            )
            reasons.append(credential_type_validation_failed(base_type, subject_type))
