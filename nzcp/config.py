# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""NZ COVID Pass verifier configuration.

Normative constants are fixed by the NZCP and W3C Verifiable Credentials documents.
Configurable defaults may be overridden via environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

# =============================================================================
# NORMATIVE CONSTANTS (fixed by NZCP)
# =============================================================================

BASE_CREDENTIAL_CONTEXT: str = "https://www.w3.org/2018/credentials/v1"
BASE_CREDENTIAL_TYPE: str = "VerifiableCredential"
COSE_SIGN1_TAG: int = 18
DID_WEB_PREFIX: str = "did:web:"
DID_DOCUMENT_PATH: str = ".well-known/did.json"
VALID_VERIFICATION_METHOD_TYPE: str = "JsonWebKey2020"

# =============================================================================
# CONFIGURABLE DEFAULTS (may be overridden)
# =============================================================================


def _parse_csv(name: str, default: str) -> frozenset[str]:
    env_value = os.getenv(name, default)
    return frozenset(item.strip() for item in env_value.split(",") if item.strip())


PASS_PREFIX: str = os.getenv("NZCP_PREFIX", "NZCP:")
PASS_VERSION: int = int(os.getenv("NZCP_VERSION", "1"))
VALID_ISSUERS: frozenset[str] = _parse_csv(
    "NZCP_VALID_ISSUERS", "did:web:nzcp.identity.health.nz"
)
VALID_ALGORITHMS: frozenset[str] = _parse_csv("NZCP_VALID_ALGORITHMS", "ES256")

# =============================================================================
# KEY RESOLUTION
# =============================================================================

KEY_CACHE_TTL_SECONDS: float = float(os.getenv("NZCP_KEY_CACHE_TTL", "86400"))
DID_FETCH_TIMEOUT_SECONDS: float = float(os.getenv("NZCP_DID_FETCH_TIMEOUT", "5.0"))
DID_DOCUMENT_MAX_SIZE_BYTES: int = int(os.getenv("NZCP_DID_DOCUMENT_MAX_SIZE_BYTES", "65536"))

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL: str = os.getenv("NZCP_LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv("NZCP_LOG_FORMAT", "json")


# =============================================================================
# VERIFIER OPTIONS
# =============================================================================

@dataclass(frozen=True)
class PassVerifierOptions:
    """Options controlling pass verification.

    Attributes:
        prefix:            Required pass prefix (e.g. ``"NZCP:"``).
        version:           Required pass version identifier.
        valid_issuers:     DID identifiers trusted to issue passes.
        valid_algorithms:  Signature algorithm names accepted in the
                           CWT header.
        key_cache_ttl:     Seconds a resolved verification key stays cached.
        did_fetch_timeout: Timeout in seconds for DID document retrieval.
    """

    prefix: str = PASS_PREFIX
    version: int = PASS_VERSION
    valid_issuers: frozenset[str] = field(default_factory=lambda: VALID_ISSUERS)
    valid_algorithms: frozenset[str] = field(default_factory=lambda: VALID_ALGORITHMS)
    key_cache_ttl: float = KEY_CACHE_TTL_SECONDS
    did_fetch_timeout: float = DID_FETCH_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        object.__setattr__(self, "valid_issuers", frozenset(self.valid_issuers))
        object.__setattr__(self, "valid_algorithms", frozenset(self.valid_algorithms))

    @classmethod
    def from_env(cls) -> "PassVerifierOptions":
        """Build options from the current environment, re-reading variables."""
        return cls(
            prefix=os.getenv("NZCP_PREFIX", "NZCP:"),
            version=int(os.getenv("NZCP_VERSION", "1")),
            valid_issuers=_parse_csv("NZCP_VALID_ISSUERS", "did:web:nzcp.identity.health.nz"),
            valid_algorithms=_parse_csv("NZCP_VALID_ALGORITHMS", "ES256"),
            key_cache_ttl=float(os.getenv("NZCP_KEY_CACHE_TTL", "86400")),
            did_fetch_timeout=float(os.getenv("NZCP_DID_FETCH_TIMEOUT", "5.0")),
        )
