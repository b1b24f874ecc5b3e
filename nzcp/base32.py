# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""RFC 4648 base-32 decoding for QR code pass bodies.

Pass bodies are carried without ``=`` padding so that they fit the QR
alphanumeric mode.  :func:`add_padding` restores the padding and
:func:`decode` accumulates 5-bit symbols into bytes.

References
----------
- RFC 4648 §6 — Base 32 Encoding
"""

from __future__ import annotations

from typing import Dict

from nzcp.exceptions import Base32FormatError

__all__ = ["add_padding", "decode"]

_BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_BASE32_LOOKUP: Dict[str, int] = {ch: idx for idx, ch in enumerate(_BASE32_ALPHABET)}

_PAD = "="


def add_padding(data: str) -> str:
    """Pad *data* with ``=`` to a multiple of 8 characters."""
    return data + _PAD * (-len(data) % 8)


def decode(data: str) -> bytes:
    """Decode a base-32 string to bytes.

    Padding characters are ignored while accumulating; any trailing bits
    that do not complete a byte are discarded.

    Parameters
    ----------
    data : str
        Base-32 text, padded or unpadded.

    Returns
    -------
    bytes
        The decoded bytes.

    Raises
    ------
    Base32FormatError
        If a character is outside the RFC 4648 alphabet, or a data
        character follows padding.
    """
    out = bytearray()
    buffer = 0
    bits = 0
    padding_seen = False

    for position, ch in enumerate(data):
        if ch == _PAD:
            padding_seen = True
            continue

        value = _BASE32_LOOKUP.get(ch)
        if value is None:
            raise Base32FormatError.invalid_character(ch, position)
        if padding_seen:
            raise Base32FormatError.misplaced_padding(position)

        buffer = ((buffer << 5) | value) & 0xFFF
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)

    return bytes(out)
