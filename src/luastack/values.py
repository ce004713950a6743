"""Runtime value model: kinds, sentinels, tables, closures and numeric coercions."""

from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Final

import jax
import jax.numpy as jnp

from .errors import LuaStackError

_ENABLE_X64: Final[bool] = os.environ.get("LUASTACK_DISABLE_X64", "0") != "1"

if _ENABLE_X64:
    jax.config.update("jax_enable_x64", True)

INTEGER_BITS: Final[int] = 64
MULTRET: Final[int] = -1
MAXUPVAL: Final[int] = 255
MAXSTACK: Final[int] = max(64, int(os.environ.get("LUASTACK_MAXSTACK", "1000000")))
REGISTRYINDEX: Final[int] = -MAXSTACK - 1000
RIDX_GLOBALS: Final[int] = 2

_INT_MIN: Final[int] = -(1 << (INTEGER_BITS - 1))
_INT_MAX: Final[int] = (1 << (INTEGER_BITS - 1)) - 1


class LuaType(IntEnum):
    NONE = -1
    NIL = 0
    BOOLEAN = 1
    LIGHTUSERDATA = 2
    NUMBER = 3
    STRING = 4
    TABLE = 5
    FUNCTION = 6
    USERDATA = 7
    THREAD = 8

    @property
    def type_name(self) -> str:
        if self is LuaType.NONE:
            return "no value"
        if self is LuaType.LIGHTUSERDATA:
            return "userdata"
        return self.name.lower()


class StatusCode(IntEnum):
    OK = 0
    YIELD = 1
    ERRRUN = 2
    ERRSYNTAX = 3
    ERRMEM = 4
    ERRERR = 5
    ERRFILE = 6

    @property
    def is_error(self) -> bool:
        return self not in (StatusCode.OK, StatusCode.YIELD)


class NilType:
    """Host-side nil sentinel; pushing it leaves a nil slot."""

    _instance: NilType | None = None

    def __new__(cls) -> NilType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "nil"

    def __bool__(self) -> bool:
        return False


class FailType:
    """Host-side soft-failure sentinel; pushes a value distinct from nil."""

    _instance: FailType | None = None

    def __new__(cls) -> FailType:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "fail"

    def __bool__(self) -> bool:
        return False


nil: Final = NilType()
fail: Final = FailType()


@dataclass(eq=False)
class NativeClosure:
    """A native function together with the upvalues it captured."""

    function: Callable[..., int]
    upvalues: list[object] = field(default_factory=list)

    @property
    def name(self) -> str | None:
        name = getattr(self.function, "__name__", None)
        return name if isinstance(name, str) else None


class LuaTable:
    """Dictionary-backed table with Lua key normalization.

    Traversal order is insertion order. Removed keys stay in the order index
    until the next new key is inserted, so clearing fields during a ``next``
    traversal is allowed, as in the runtime.
    """

    def __init__(self) -> None:
        self._hash: dict[object, object] = {}
        self._order: list[object] = []
        self._slot: dict[object, int] = {}
        self.metatable: LuaTable | None = None

    @staticmethod
    def normalize_key(key: object) -> object:
        if key is None:
            raise LuaStackError("table index is nil")
        if isinstance(key, float):
            if math.isnan(key):
                raise LuaStackError("table index is NaN")
            if key.is_integer() and _INT_MIN <= key <= _INT_MAX:
                return int(key)
        if isinstance(key, bool):
            return ("bool", key)
        return key

    @staticmethod
    def _denormalize_key(key: object) -> object:
        if isinstance(key, tuple) and len(key) == 2 and key[0] == "bool":
            return key[1]
        return key

    def get(self, key: object) -> object:
        if key is None or (isinstance(key, float) and math.isnan(key)):
            return None
        return self._hash.get(self.normalize_key(key))

    def set(self, key: object, value: object) -> None:
        norm = self.normalize_key(key)
        if value is None:
            self._hash.pop(norm, None)
            return
        if norm not in self._slot:
            if len(self._order) > 2 * len(self._hash) + 8:
                self._compact()
            self._slot[norm] = len(self._order)
            self._order.append(norm)
        self._hash[norm] = value

    def _compact(self) -> None:
        self._order = [key for key in self._order if key in self._hash]
        self._slot = {key: pos for pos, key in enumerate(self._order)}

    def length(self) -> int:
        n = 0
        while (n + 1) in self._hash:
            n += 1
        return n

    def next(self, key: object) -> tuple[object, object] | None:
        if key is None:
            pos = 0
        else:
            try:
                pos = self._slot[self.normalize_key(key)] + 1
            except KeyError:
                raise LuaStackError("invalid key to 'next'") from None
        while pos < len(self._order):
            found = self._order[pos]
            if found in self._hash:
                return self._denormalize_key(found), self._hash[found]
            pos += 1
        return None

    def __len__(self) -> int:
        return len(self._hash)

    def __repr__(self) -> str:
        return f"LuaTable({len(self._hash)} entries)"


@dataclass(eq=False)
class Userdata:
    """Full userdata: a host payload plus an optional metatable and user values."""

    payload: object
    metatable: LuaTable | None = None
    user_values: list[object] = field(default_factory=list)


def type_of_value(value: object) -> LuaType:
    if value is None:
        return LuaType.NIL
    if isinstance(value, bool):
        return LuaType.BOOLEAN
    if isinstance(value, (int, float)):
        return LuaType.NUMBER
    if isinstance(value, bytes):
        return LuaType.STRING
    if isinstance(value, LuaTable):
        return LuaType.TABLE
    if isinstance(value, NativeClosure):
        return LuaType.FUNCTION
    if isinstance(value, Userdata):
        return LuaType.USERDATA
    raise TypeError(f"not a runtime value: {type(value).__name__}")


def wrap_integer(value: int, bits: int = INTEGER_BITS, *, signed: bool = True) -> int:
    """Two's-complement truncation of ``value`` to ``bits`` bits."""
    modulus = 1 << bits
    wrapped = value % modulus
    if signed and wrapped >= modulus >> 1:
        wrapped -= modulus
    return wrapped


def float_to_integer(value: float) -> int | None:
    """Exact float-to-integer conversion; ``None`` when not representable."""
    if not math.isfinite(value) or not value.is_integer():
        return None
    result = int(value)
    if _INT_MIN <= result <= _INT_MAX:
        return result
    return None


_LUA_SPACE = " \f\n\r\t\v"
_DEC_INT_RE: Final = re.compile(r"[+-]?[0-9]+")
_HEX_INT_RE: Final = re.compile(r"([+-]?)0[xX]([0-9a-fA-F]+)")
_DEC_FLOAT_RE: Final = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?")
_HEX_FLOAT_RE: Final = re.compile(r"[+-]?0[xX]([0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)([pP][+-]?[0-9]+)?")


def str_to_number(text: bytes) -> int | float | None:
    """Parse a Lua numeral the way the runtime coerces strings to numbers."""
    try:
        s = text.decode("ascii").strip(_LUA_SPACE)
    except UnicodeDecodeError:
        return None
    if not s:
        return None

    hex_match = _HEX_INT_RE.fullmatch(s)
    if hex_match is not None:
        magnitude = int(hex_match.group(2), 16)
        if hex_match.group(1) == "-":
            magnitude = -magnitude
        return wrap_integer(magnitude)

    if _DEC_INT_RE.fullmatch(s):
        result = int(s)
        if _INT_MIN <= result <= _INT_MAX:
            return result
        return float(s)

    if _DEC_FLOAT_RE.fullmatch(s):
        return float(s)

    if _HEX_FLOAT_RE.fullmatch(s):
        sign = -1.0 if s.startswith("-") else 1.0
        body = s.lstrip("+-")
        if "p" not in body and "P" not in body:
            body = body + "p0"
        return sign * float.fromhex(body)
    return None


def number_to_bytes(value: int | float) -> bytes:
    """String form used when a number slot is read as a string."""
    if isinstance(value, int):
        return str(value).encode("ascii")
    text = f"{value:.14g}"
    if all(ch in "-0123456789" for ch in text):
        text += ".0"
    return text.encode("ascii")


def dtype_of(value: object):
    """The dtype of a 0-d array or numpy scalar, else ``None``."""
    dtype = getattr(value, "dtype", None)
    if isinstance(dtype, jnp.dtype) and getattr(value, "shape", None) == ():
        return dtype
    return None


def normalize_type_key(tp: object) -> object:
    """Map jax/numpy scalar types onto their dtype; other types are unchanged."""
    if isinstance(tp, jnp.dtype):
        return tp
    dtype = getattr(tp, "dtype", None)
    if isinstance(dtype, jnp.dtype):
        return dtype
    if isinstance(tp, type) and issubclass(tp, jnp.generic):
        return jnp.dtype(tp)
    return tp


def type_key_of(value: object) -> object:
    dtype = dtype_of(value)
    if dtype is not None:
        return dtype
    return type(value)


def scalar_of(dtype, value: object):
    """Build a 0-d jax array of ``dtype`` from an in-range Python scalar."""
    return jnp.asarray(jnp.dtype(dtype).type(value))
