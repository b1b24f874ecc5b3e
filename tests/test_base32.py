# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Tests for base-32 decoding (nzcp.base32).

References:
    - RFC 4648 §6 — Base 32 Encoding
"""

from __future__ import annotations

import base64

import pytest

from nzcp import base32
from nzcp.exceptions import Base32FormatError


class TestAddPadding:
    """Test restoration of ``=`` padding."""

    @pytest.mark.parametrize("length", range(0, 17))
    def test_pads_to_multiple_of_eight(self, length):
        padded = base32.add_padding("A" * length)
        assert len(padded) % 8 == 0
        assert padded.startswith("A" * length)
        assert len(padded) - length < 8

    def test_already_aligned_unchanged(self):
        assert base32.add_padding("ABCDEFGH") == "ABCDEFGH"


class TestDecode:
    """Test decoding against the standard library encoder."""

    @pytest.mark.parametrize("data", [b"", b"f", b"fo", b"foo", b"foob", b"fooba", b"foobar"])
    def test_rfc4648_vectors(self, data):
        encoded = base64.b32encode(data).decode("ascii")
        assert base32.decode(encoded) == data

    def test_unpadded_after_add_padding(self):
        data = bytes(range(256))
        encoded = base64.b32encode(data).decode("ascii").rstrip("=")
        assert base32.decode(base32.add_padding(encoded)) == data

    def test_unpadded_input_decodes(self):
        """Padding is optional; leftover bits are discarded."""
        assert base32.decode("MZXW6") == b"foo"


class TestDecodeErrors:
    """Test rejection of invalid input."""

    @pytest.mark.parametrize("char", ["1", "8", "0", "a", "!", " "])
    def test_invalid_character(self, char):
        with pytest.raises(Base32FormatError) as exc_info:
            base32.decode("MZXW" + char + "===")
        assert exc_info.value.code == "BASE32_INVALID"
        assert "position 4" in exc_info.value.message

    def test_data_after_padding(self):
        with pytest.raises(Base32FormatError, match="Padding"):
            base32.decode("MY==MZXW")
