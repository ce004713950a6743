"""Introspection field masks and their compilation into frame query strings."""

from __future__ import annotations

from enum import IntFlag
from functools import lru_cache
from typing import Final

from .errors import FieldEncodingError


class InfoField(IntFlag):
    """Fields a frame query can request.

    Bit values are arbitrary; the query order comes from the code table below.
    """

    NONE = 0
    NAME = 1 << 0
    SOURCE = 1 << 1
    CURRENT_LINE = 1 << 2
    TAIL_CALL = 1 << 3
    UPVALUES = 1 << 4
    FUNCTION = 1 << 5
    LINE_TABLE = 1 << 6
    TRANSFER = 1 << 7
    FROM_STACK = 1 << 8


# canonical query order
_FIELD_CODES: Final[tuple[tuple[InfoField, str], ...]] = (
    (InfoField.FROM_STACK, ">"),
    (InfoField.FUNCTION, "f"),
    (InfoField.CURRENT_LINE, "l"),
    (InfoField.NAME, "n"),
    (InfoField.TRANSFER, "r"),
    (InfoField.SOURCE, "S"),
    (InfoField.TAIL_CALL, "t"),
    (InfoField.UPVALUES, "u"),
    (InfoField.LINE_TABLE, "L"),
)
_CODE_FIELDS: Final[dict[str, InfoField]] = {code: flag for flag, code in _FIELD_CODES}
_MAPPED_BITS: Final[int] = sum(int(flag) for flag, _ in _FIELD_CODES)

FIELD_QUERY_CAPACITY: Final[int] = len(_FIELD_CODES) + 1

ALL_FIELDS: Final[InfoField] = InfoField(_MAPPED_BITS) & ~InfoField.FROM_STACK


def field_code(flag: InfoField) -> str:
    """Query character of a single flag."""
    for candidate, code in _FIELD_CODES:
        if int(candidate) == int(flag):
            return code
    raise FieldEncodingError(f"no query character for field value {int(flag):#x}")


def _mask_bits(mask: InfoField | int) -> int:
    bits = int(mask)
    if bits < 0:
        # complements of a declared flag are taken within the declared set
        bits &= _MAPPED_BITS
    return bits


@lru_cache(maxsize=None)
def _fill(bits: int) -> bytes:
    unmapped = bits & ~_MAPPED_BITS
    if unmapped:
        raise FieldEncodingError(f"no query character for field value {unmapped:#x}")
    buffer = bytearray(FIELD_QUERY_CAPACITY)
    pos = 0
    for flag, code in _FIELD_CODES:
        if not bits & int(flag):
            continue
        if pos >= FIELD_QUERY_CAPACITY - 1:
            raise FieldEncodingError("field query buffer overflow")
        buffer[pos] = ord(code)
        pos += 1
    return bytes(buffer)


def query_buffer(mask: InfoField | int) -> bytearray:
    """Zero-terminated, fixed-capacity query buffer for ``mask``."""
    return bytearray(_fill(_mask_bits(mask)))


def encode_fields(mask: InfoField | int) -> str:
    """Query string for ``mask``, in canonical order whatever order the bits were combined in."""
    raw = _fill(_mask_bits(mask))
    return raw[: raw.index(0)].decode("ascii")


def decode_fields(query: str) -> InfoField:
    mask = InfoField.NONE
    for code in query.split("\x00", 1)[0]:
        flag = _CODE_FIELDS.get(code)
        if flag is None:
            raise FieldEncodingError(f"unknown query character {code!r}")
        mask |= flag
    return mask
