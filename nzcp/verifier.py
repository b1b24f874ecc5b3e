# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""Top-level NZ COVID Pass verification.

A pass payload has three ``/``-separated components::

    NZCP:/1/2KCEVIQEIVVWK6JNGEASNICZAEP2KALYDZSGSZB2O5SWEOTOPJRXALTD...

1. Split the payload and validate prefix, version and body.
2. Read the body into a :class:`Token` (base-32, CBOR, COSE_Sign1).
3. Validate the token's claims, signature and credential.

Each step only runs when every earlier step succeeded.  A failed result
carries the reasons of the step that failed followed by a marker
reason (``TokenReadFailed`` / ``TokenValidationFailed``) naming it.

Example::

    verifier = PassVerifier.create()
    result = await verifier.verify(payload)
    if result.succeeded:
        print(result.credential_subject.given_name)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from nzcp.config import PassVerifierOptions
from nzcp.credential import PublicCovidPass
from nzcp.keys.cache import KeyCache
from nzcp.keys.did import DidDocumentRetriever, HttpDidDocumentRetriever
from nzcp.keys.provider import VerificationKeyProvider
from nzcp.models import FailureCode, FailureReason, Result, make_reason
from nzcp.reader import TokenReader
from nzcp.token import Token
from nzcp.validator import TokenValidator

logger = logging.getLogger("nzcp.verifier")

__all__ = ["PassVerifier", "PassVerifierResult"]

_PASS_COMPONENT_COUNT = 3


# ---------------------------------------------------------------------------
# Failure reasons
# ---------------------------------------------------------------------------

def invalid_pass_components() -> FailureReason:
    return make_reason(
        FailureCode.INVALID_PASS_COMPONENTS,
        "Pass payload must be in the form '<prefix>:/<version>/<base32-encoded-CWT>'.",
    )


def prefix_validation_failed(prefix: str) -> FailureReason:
    return make_reason(
        FailureCode.PREFIX_VALIDATION_FAILED,
        f"Prefix validation failed [Required prefix = {prefix}].",
    )


def version_validation_failed(version: int) -> FailureReason:
    return make_reason(
        FailureCode.VERSION_VALIDATION_FAILED,
        f"Version validation failed [Required version = {version}].",
    )


def empty_pass_payload() -> FailureReason:
    return make_reason(FailureCode.EMPTY_PASS_PAYLOAD, "Pass payload must not be empty.")


def token_read_failed() -> FailureReason:
    return make_reason(FailureCode.TOKEN_READ_FAILED, "Token read failed.")


def token_validation_failed() -> FailureReason:
    return make_reason(FailureCode.TOKEN_VALIDATION_FAILED, "Token validation failed.")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PassVerifierResult(Result[Token]):
    """Outcome of :meth:`PassVerifier.verify`."""

    @property
    def token(self) -> Token:
        if self.failed:
            raise RuntimeError(f"Pass verification failed: {self}")
        return self.value

    @property
    def credential_subject(self) -> PublicCovidPass:
        # A validated token always carries a credential.
        return self.token.credential.credential_subject


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------

class PassVerifier:
    """Verifies NZ COVID Pass payloads.

    Parameters
    ----------
    options : PassVerifierOptions
        Required prefix and version.
    reader : TokenReader
        Reads the base-32 body into a token.
    validator : TokenValidator
        Validates the token.
    """

    def __init__(
        self,
        options: PassVerifierOptions,
        reader: TokenReader,
        validator: TokenValidator,
    ) -> None:
        self._options = options
        self._reader = reader
        self._validator = validator

    @classmethod
    def create(
        cls,
        options: Optional[PassVerifierOptions] = None,
        retriever: Optional[DidDocumentRetriever] = None,
        cache: Optional[KeyCache] = None,
    ) -> "PassVerifier":
        """Build a verifier wired with the default collaborators.

        Keys are fetched over HTTPS with :class:`HttpDidDocumentRetriever`
        unless *retriever* is given, and cached in the process-wide key
        cache unless *cache* is given.
        """
        options = options or PassVerifierOptions()
        retriever = retriever or HttpDidDocumentRetriever(timeout=options.did_fetch_timeout)
        provider = VerificationKeyProvider(
            retriever, cache=cache, ttl_seconds=options.key_cache_ttl
        )
        return cls(options, TokenReader(), TokenValidator(options, provider))

    @property
    def options(self) -> PassVerifierOptions:
        return self._options

    async def verify(self, payload: str) -> PassVerifierResult:
        """Verify *payload*; never raises for a malformed or invalid pass."""
        logger.debug("Verifying pass payload '%s'", payload)

        components = payload.split("/")
        if len(components) != _PASS_COMPONENT_COUNT:
            logger.error(
                "Expected %d components separated by '/' in pass payload, got %d",
                _PASS_COMPONENT_COUNT, len(components),
            )
            return PassVerifierResult.failure([invalid_pass_components()])

        prefix, version, body = components

        reasons = self._validate_components(prefix, version, body)
        if reasons:
            return PassVerifierResult.failure(reasons)

        read_result = self._reader.read(body)
        if read_result.failed:
            logger.error("Token read failed")
            return PassVerifierResult.failure(
                list(read_result.failure_reasons) + [token_read_failed()]
            )

        validation_result = await self._validator.validate(read_result.value)
        if validation_result.failed:
            logger.error("Token validation failed")
            return PassVerifierResult.failure(
                list(validation_result.failure_reasons) + [token_validation_failed()]
            )

        logger.info("Pass verified [jti = '%s']", validation_result.value.token_id)
        return PassVerifierResult.success(validation_result.value)

    def _validate_components(self, prefix: str, version: str, body: str) -> List[FailureReason]:
        reasons: List[FailureReason] = []
        options = self._options

        if prefix != options.prefix:
            logger.error(
                "Prefix validation failed [Expected = '%s', Actual = '%s']",
                options.prefix, prefix,
            )
            reasons.append(prefix_validation_failed(options.prefix))

        if not (version.isascii() and version.isdigit()) or int(version) != options.version:
            logger.error(
                "Version validation failed [Expected = '%s', Actual = '%s']",
                options.version, version,
            )
            reasons.append(version_validation_failed(options.version))

        if not body.strip():
            logger.error("Pass payload is empty")
            reasons.append(empty_pass_payload())

        return reasons
