# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""W3C Verifiable Credential models carried in the CWT ``vc`` claim.

The NZ COVID Pass embeds a credential of type ``PublicCovidPass``::

    {
        "@context": ["https://www.w3.org/2018/credentials/v1",
                     "https://nzcp.covid19.health.nz/contexts/v1"],
        "version": "1.0.0",
        "type": ["VerifiableCredential", "PublicCovidPass"],
        "credentialSubject": {"givenName": "Jack", "familyName": "Sparrow",
                              "dob": "1960-04-16"}
    }

References
----------
- W3C Verifiable Credentials Data Model v1.1 §4
- nzcp.covid19.health.nz — PublicCovidPass credential type
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import ClassVar, Generic, List, Optional, Tuple, TypeVar

from nzcp.cbor import CborMap, CborValue
from nzcp.config import BASE_CREDENTIAL_CONTEXT, BASE_CREDENTIAL_TYPE

logger = logging.getLogger("nzcp.credential")

__all__ = [
    "PublicCovidPass",
    "VerifiableCredential",
    "parse_public_covid_pass_credential",
]

S = TypeVar("S")


@dataclass(frozen=True)
class PublicCovidPass:
    """Credential subject of a public COVID pass.

    Attributes:
        given_name:     Subject given name.
        family_name:    Subject family name (optional in the pass).
        date_of_birth:  ISO 8601 date string (``YYYY-MM-DD``).
    """

    CONTEXT: ClassVar[str] = "https://nzcp.covid19.health.nz/contexts/v1"
    TYPE: ClassVar[str] = "PublicCovidPass"

    given_name: str
    family_name: Optional[str]
    date_of_birth: str

    @property
    def context(self) -> str:
        return self.CONTEXT

    @property
    def type(self) -> str:
        return self.TYPE

    @property
    def dob(self) -> Optional[datetime.date]:
        """Date of birth as a :class:`datetime.date`, or ``None`` if malformed."""
        try:
            return datetime.date.fromisoformat(self.date_of_birth)
        except ValueError:
            return None


@dataclass(frozen=True)
class VerifiableCredential(Generic[S]):
    """Verifiable credential envelope around a typed credential subject."""

    BASE_CONTEXT: ClassVar[str] = BASE_CREDENTIAL_CONTEXT
    BASE_TYPE: ClassVar[str] = BASE_CREDENTIAL_TYPE

    version: str
    context: Tuple[str, ...]
    type: Tuple[str, ...]
    credential_subject: S


def _text_list(value: Optional[CborValue], allow_single: bool) -> Optional[List[str]]:
    """Read a list of text strings; a bare string is accepted if *allow_single*."""
    if value is None:
        return None
    single = value.as_text()
    if single is not None:
        return [single] if allow_single else None
    array = value.as_array()
    if array is None:
        return None
    items = [item.as_text() for item in array]
    if any(item is None for item in items):
        return None
    return items


def _text(claims: CborMap, key: str) -> Optional[str]:
    value = claims.get(key)
    return value.as_text() if value is not None else None


def parse_public_covid_pass_credential(
    value: Optional[CborValue],
) -> Optional[VerifiableCredential[PublicCovidPass]]:
    """Project the ``vc`` claim onto a :class:`VerifiableCredential`.

    ``@context`` may be a single string or an array of strings; it is
    always normalised to a tuple.  Any missing or wrongly typed member
    yields ``None``: whether the credential is acceptable is decided by
    the token validator, not here.
    """
    vc = value.as_map() if value is not None else None
    if vc is None:
        return None

    version = _text(vc, "version")
    context = _text_list(vc.get("@context"), allow_single=True)
    types = _text_list(vc.get("type"), allow_single=False)
    subject_value = vc.get("credentialSubject")
    subject = subject_value.as_map() if subject_value is not None else None

    if version is None or context is None or types is None or subject is None:
        logger.debug(
            "Credential claim is incomplete (version=%s, context=%s, type=%s, subject=%s)",
            version, context, types, subject is not None,
        )
        return None

    given_name = _text(subject, "givenName")
    date_of_birth = _text(subject, "dob")
    if given_name is None or date_of_birth is None:
        logger.debug("Credential subject is missing givenName or dob")
        return None

    return VerifiableCredential(
        version=version,
        context=tuple(context),
        type=tuple(types),
        credential_subject=PublicCovidPass(
            given_name=given_name,
            family_name=_text(subject, "familyName"),
            date_of_birth=date_of_birth,
        ),
    )
