# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.

"""CBOR (Concise Binary Object Representation) codec subset.

Implements only the data items required to read an NZ COVID Pass:

- **Major types 0/1**: unsigned and negative integers, surfaced as one
  signed :class:`CborInteger`.
- **Major types 2/3**: byte and text strings.
- **Major types 4/5**: definite-length arrays and maps (map keys must
  be integers or text strings).
- **Major type 6**: tags (the pass only uses tag 18, COSE_Sign1).
- **Major type 7**: ``false``, ``true`` and ``null``.

This is intentionally *not* a full CBOR codec.  Indefinite-length items,
floating point values, ``undefined`` and other simple values are
rejected with :class:`CborDecodeError`.

The encoder covers the same subset and always writes the shortest
(canonical) head.  Its main job is :func:`encode_sig_structure`, which
rebuilds the COSE ``Sig_structure`` that the issuer signed.

References
----------
- RFC 8949 §3 — CBOR encoding
- RFC 8152 §4.4 — Signing and verification process (Sig_structure)
"""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple, Union

from nzcp.exceptions import CborDecodeError

__all__ = [
    "CborArray",
    "CborBoolean",
    "CborByteString",
    "CborInteger",
    "CborMap",
    "CborNull",
    "CborTag",
    "CborTextString",
    "CborType",
    "CborValue",
    "decode",
    "encode",
    "encode_sig_structure",
]

# Major types (high 3 bits of the initial byte).
_MT_UNSIGNED = 0
_MT_NEGATIVE = 1
_MT_BYTES = 2
_MT_TEXT = 3
_MT_ARRAY = 4
_MT_MAP = 5
_MT_TAG = 6
_MT_SIMPLE = 7

# Simple values (major type 7).
_SIMPLE_FALSE = 20
_SIMPLE_TRUE = 21
_SIMPLE_NULL = 22

_INDEFINITE = 31
_MAX_DEPTH = 64
_MAX_UINT64 = 2**64 - 1

MapKey = Union[int, str]


# ---------------------------------------------------------------------------
# Value model
# ---------------------------------------------------------------------------

class CborType(str, Enum):
    INTEGER = "integer"
    BYTE_STRING = "byte_string"
    TEXT_STRING = "text_string"
    ARRAY = "array"
    MAP = "map"
    TAG = "tag"
    BOOLEAN = "boolean"
    NULL = "null"


@dataclass(frozen=True)
class CborValue(ABC):
    """Base class of the decoded CBOR value union.

    The ``as_*`` accessors return ``None`` when the value is of a
    different type, so callers can project claims without isinstance
    checks scattered through their code.
    """

    cbor_type: ClassVar[CborType]

    def as_int(self) -> Optional[int]:
        return None

    def as_bytes(self) -> Optional[bytes]:
        return None

    def as_text(self) -> Optional[str]:
        return None

    def as_bool(self) -> Optional[bool]:
        return None

    def as_array(self) -> Optional["CborArray"]:
        return None

    def as_map(self) -> Optional["CborMap"]:
        return None

    @abstractmethod
    def to_python(self) -> Any:
        """Convert to plain Python objects (for logging and debugging)."""


@dataclass(frozen=True)
class CborInteger(CborValue):
    value: int
    cbor_type: ClassVar[CborType] = CborType.INTEGER

    def as_int(self) -> Optional[int]:
        return self.value

    def to_python(self) -> Any:
        return self.value


@dataclass(frozen=True)
class CborByteString(CborValue):
    value: bytes
    cbor_type: ClassVar[CborType] = CborType.BYTE_STRING

    def as_bytes(self) -> Optional[bytes]:
        return self.value

    def to_python(self) -> Any:
        return self.value


@dataclass(frozen=True)
class CborTextString(CborValue):
    value: str
    cbor_type: ClassVar[CborType] = CborType.TEXT_STRING

    def as_text(self) -> Optional[str]:
        return self.value

    def to_python(self) -> Any:
        return self.value


@dataclass(frozen=True)
class CborBoolean(CborValue):
    value: bool
    cbor_type: ClassVar[CborType] = CborType.BOOLEAN

    def as_bool(self) -> Optional[bool]:
        return self.value

    def to_python(self) -> Any:
        return self.value


@dataclass(frozen=True)
class CborNull(CborValue):
    cbor_type: ClassVar[CborType] = CborType.NULL

    def to_python(self) -> Any:
        return None


@dataclass(frozen=True)
class CborArray(CborValue):
    items: Tuple[CborValue, ...] = ()
    cbor_type: ClassVar[CborType] = CborType.ARRAY

    def as_array(self) -> Optional["CborArray"]:
        return self

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> CborValue:
        return self.items[index]

    def __iter__(self) -> Iterator[CborValue]:
        return iter(self.items)

    def to_python(self) -> Any:
        return [item.to_python() for item in self.items]


@dataclass(frozen=True)
class CborMap(CborValue):
    """Map whose keys are integers or text strings, in wire order."""

    entries: Dict[MapKey, CborValue] = field(default_factory=dict, hash=False)
    cbor_type: ClassVar[CborType] = CborType.MAP

    def as_map(self) -> Optional["CborMap"]:
        return self

    def get(self, key: MapKey) -> Optional[CborValue]:
        return self.entries.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def to_python(self) -> Any:
        return {key: value.to_python() for key, value in self.entries.items()}


@dataclass(frozen=True)
class CborTag(CborValue):
    tag: int
    value: CborValue
    cbor_type: ClassVar[CborType] = CborType.TAG

    def to_python(self) -> Any:
        return {"tag": self.tag, "value": self.value.to_python()}


NULL = CborNull()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

class _Decoder:
    """Single-pass recursive decoder over an immutable byte buffer."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def _take(self, count: int) -> bytes:
        if count > self.remaining:
            raise CborDecodeError.truncated(self._pos, count - self.remaining)
        chunk = self._data[self._pos:self._pos + count]
        self._pos += count
        return chunk

    def _read_argument(self, info: int, offset: int) -> int:
        if info < 24:
            return info
        if info == 24:
            return self._take(1)[0]
        if info == 25:
            return struct.unpack(">H", self._take(2))[0]
        if info == 26:
            return struct.unpack(">I", self._take(4))[0]
        if info == 27:
            return struct.unpack(">Q", self._take(8))[0]
        if info == _INDEFINITE:
            raise CborDecodeError.unsupported("indefinite-length item", offset)
        raise CborDecodeError(f"Reserved additional information {info} at offset {offset}", offset)

    def _check_count(self, count: int, per_item: int, offset: int) -> None:
        # Every item takes at least one byte; reject impossible lengths before
        # allocating anything for them.
        if count * per_item > self.remaining:
            raise CborDecodeError(
                f"Declared length {count} exceeds remaining data at offset {offset}",
                offset,
            )

    def read_value(self, depth: int = 0) -> CborValue:
        if depth > _MAX_DEPTH:
            raise CborDecodeError(f"Nesting deeper than {_MAX_DEPTH} levels", self._pos)

        offset = self._pos
        initial = self._take(1)[0]
        major = initial >> 5
        info = initial & 0x1F

        if major == _MT_SIMPLE:
            return self._read_simple(info, offset)

        argument = self._read_argument(info, offset)

        if major == _MT_UNSIGNED:
            return CborInteger(argument)

        if major == _MT_NEGATIVE:
            return CborInteger(-1 - argument)

        if major == _MT_BYTES:
            return CborByteString(self._take(argument))

        if major == _MT_TEXT:
            raw = self._take(argument)
            try:
                return CborTextString(raw.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise CborDecodeError(f"Invalid UTF-8 in text string at offset {offset}", offset) from exc

        if major == _MT_ARRAY:
            self._check_count(argument, 1, offset)
            return CborArray(tuple(self.read_value(depth + 1) for _ in range(argument)))

        if major == _MT_MAP:
            self._check_count(argument, 2, offset)
            entries: Dict[MapKey, CborValue] = {}
            for _ in range(argument):
                key_offset = self._pos
                key = self.read_value(depth + 1)
                if isinstance(key, (CborInteger, CborTextString)):
                    plain_key: MapKey = key.value
                else:
                    raise CborDecodeError.unsupported(f"map key type '{key.cbor_type.value}'", key_offset)
                if plain_key in entries:
                    raise CborDecodeError(f"Duplicate map key {plain_key!r} at offset {key_offset}", key_offset)
                entries[plain_key] = self.read_value(depth + 1)
            return CborMap(entries)

        # Only _MT_TAG is left.
        return CborTag(argument, self.read_value(depth + 1))

    def _read_simple(self, info: int, offset: int) -> CborValue:
        if info == _SIMPLE_FALSE:
            return CborBoolean(False)
        if info == _SIMPLE_TRUE:
            return CborBoolean(True)
        if info == _SIMPLE_NULL:
            return NULL
        if info in (25, 26, 27):
            raise CborDecodeError.unsupported("floating point value", offset)
        raise CborDecodeError.unsupported(f"simple value {info}", offset)


def decode(data: bytes) -> CborValue:
    """Decode exactly one CBOR data item from *data*.

    Parameters
    ----------
    data : bytes
        The encoded item.  Trailing bytes after the item are rejected.

    Returns
    -------
    CborValue
        The decoded value tree.

    Raises
    ------
    CborDecodeError
        If the data is truncated, malformed, or uses an item outside the
        supported subset.
    """
    if not data:
        raise CborDecodeError("Empty CBOR input", 0)

    decoder = _Decoder(bytes(data))
    value = decoder.read_value()
    if decoder.remaining:
        raise CborDecodeError(
            f"{decoder.remaining} trailing bytes after top-level item",
            len(data) - decoder.remaining,
        )
    return value


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _encode_head(major: int, argument: int) -> bytes:
    """Encode a major type and argument using the shortest form."""
    if argument < 0 or argument > _MAX_UINT64:
        raise ValueError(f"CBOR argument out of range: {argument}")
    if argument < 24:
        return bytes([(major << 5) | argument])
    if argument <= 0xFF:
        return bytes([(major << 5) | 24, argument])
    if argument <= 0xFFFF:
        return bytes([(major << 5) | 25]) + struct.pack(">H", argument)
    if argument <= 0xFFFFFFFF:
        return bytes([(major << 5) | 26]) + struct.pack(">I", argument)
    return bytes([(major << 5) | 27]) + struct.pack(">Q", argument)


def _encode_into(value: CborValue, out: bytearray) -> None:
    if isinstance(value, CborInteger):
        if value.value >= 0:
            out += _encode_head(_MT_UNSIGNED, value.value)
        else:
            out += _encode_head(_MT_NEGATIVE, -1 - value.value)
    elif isinstance(value, CborByteString):
        out += _encode_head(_MT_BYTES, len(value.value))
        out += value.value
    elif isinstance(value, CborTextString):
        encoded = value.value.encode("utf-8")
        out += _encode_head(_MT_TEXT, len(encoded))
        out += encoded
    elif isinstance(value, CborArray):
        out += _encode_head(_MT_ARRAY, len(value.items))
        for item in value.items:
            _encode_into(item, out)
    elif isinstance(value, CborMap):
        out += _encode_head(_MT_MAP, len(value.entries))
        for key, item in value.entries.items():
            _encode_into(CborTextString(key) if isinstance(key, str) else CborInteger(key), out)
            _encode_into(item, out)
    elif isinstance(value, CborTag):
        out += _encode_head(_MT_TAG, value.tag)
        _encode_into(value.value, out)
    elif isinstance(value, CborBoolean):
        out.append(0xF5 if value.value else 0xF4)
    elif isinstance(value, CborNull):
        out.append(0xF6)
    else:
        raise TypeError(f"Cannot encode {type(value).__name__} as CBOR")


def encode(value: CborValue) -> bytes:
    """Encode *value* using canonical (shortest-form) heads."""
    out = bytearray()
    _encode_into(value, out)
    return bytes(out)


def encode_sig_structure(
    protected: bytes,
    payload: bytes,
    external_aad: bytes = b"",
) -> bytes:
    """Build the COSE_Sign1 ``Sig_structure`` to be signed or verified.

    Per RFC 8152 §4.4 the structure is the array
    ``["Signature1", body_protected, external_aad, payload]``.  Both
    *protected* and *payload* must be the exact byte strings carried in
    the COSE message; re-encoding a parsed header or payload would not
    reproduce the signed bytes.
    """
    return encode(
        CborArray((
            CborTextString("Signature1"),
            CborByteString(bytes(protected)),
            CborByteString(bytes(external_aad)),
            CborByteString(bytes(payload)),
        ))
    )
