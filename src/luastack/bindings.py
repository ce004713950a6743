"""Built-in bindings for scalars, strings, sentinels and native functions."""

from __future__ import annotations

import functools
import numbers
import types

import jax.numpy as jnp

from .state import NativeFunction, State
from .traits import Ref, stack_traits, stack_traits_for
from .values import FailType, NilType, scalar_of, wrap_integer

CFunction = types.FunctionType

_FUNCTION_TYPES = (
    types.FunctionType,
    types.BuiltinFunctionType,
    types.MethodType,
    functools.partial,
)


def is_integral_type(tp: object) -> bool:
    """Integer dtypes and ``numbers.Integral`` classes other than ``bool``."""
    if isinstance(tp, jnp.dtype):
        return bool(jnp.issubdtype(tp, jnp.integer))
    return isinstance(tp, type) and issubclass(tp, numbers.Integral) and tp is not bool


def is_floating_type(tp: object) -> bool:
    """Floating dtypes and real, non-integral number classes."""
    if isinstance(tp, jnp.dtype):
        return bool(jnp.issubdtype(tp, jnp.floating))
    return isinstance(tp, type) and issubclass(tp, numbers.Real) and not issubclass(tp, numbers.Integral)


def is_native_function_type(tp: object) -> bool:
    return isinstance(tp, type) and issubclass(tp, _FUNCTION_TYPES)


@stack_traits(int)
class IntegerTraits:
    @staticmethod
    def push(state: State, value: int) -> None:
        state.push_integer(value)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = state.to_integer(index)

    @staticmethod
    def default(tp: object) -> int:
        return 0


@stack_traits_for(is_integral_type)
class IntegralTraits:
    """Fixed-width integers and ``Integral`` classes, routed through the runtime integer."""

    @staticmethod
    def push(state: State, value: object) -> None:
        state.push_integer(int(value))

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        raw = state.to_integer(index)
        key = ref.key
        if isinstance(key, jnp.dtype):
            bits = jnp.iinfo(key).bits
            signed = bool(jnp.issubdtype(key, jnp.signedinteger))
            ref.value = scalar_of(key, wrap_integer(raw, bits, signed=signed))
        else:
            ref.value = key(raw)

    @staticmethod
    def default(tp: object) -> object:
        if isinstance(tp, jnp.dtype):
            return scalar_of(tp, 0)
        # enum classes need not have a zero member
        return 0


@stack_traits(float)
class NumberTraits:
    @staticmethod
    def push(state: State, value: float) -> None:
        state.push_number(value)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = state.to_number(index)

    @staticmethod
    def default(tp: object) -> float:
        return 0.0


@stack_traits_for(is_floating_type)
class FloatingTraits:
    @staticmethod
    def push(state: State, value: object) -> None:
        state.push_number(float(value))

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        raw = state.to_number(index)
        key = ref.key
        ref.value = scalar_of(key, raw) if isinstance(key, jnp.dtype) else key(raw)

    @staticmethod
    def default(tp: object) -> object:
        if isinstance(tp, jnp.dtype):
            return scalar_of(tp, 0.0)
        return tp(0.0)


@stack_traits(bool)
class BooleanTraits:
    @staticmethod
    def push(state: State, value: bool) -> None:
        state.push_boolean(value)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = state.to_boolean(index)

    @staticmethod
    def default(tp: object) -> bool:
        return False


@stack_traits(jnp.bool_)
class BooleanScalarTraits:
    @staticmethod
    def push(state: State, value: object) -> None:
        state.push_boolean(bool(value))

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = scalar_of(ref.key, state.to_boolean(index))

    @staticmethod
    def default(tp: object) -> object:
        return scalar_of(tp, False)


@stack_traits(str)
class TextTraits:
    """Text is stored as UTF-8; undecodable bytes round-trip as surrogate escapes."""

    @staticmethod
    def push(state: State, value: str) -> bytes:
        return state.push_lstring(value.encode("utf-8", "surrogateescape"))

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        data = state.to_lstring(index)
        ref.value = None if data is None else data.decode("utf-8", "surrogateescape")

    @staticmethod
    def default(tp: object) -> str:
        return ""


@stack_traits(bytes)
class BytesTraits:
    @staticmethod
    def push(state: State, value: bytes) -> bytes:
        return state.push_lstring(value)

    @staticmethod
    def push_prefix(state: State, value: bytes, length: int) -> bytes:
        if not 0 <= length <= len(value):
            raise ValueError(f"length {length} outside a {len(value)}-byte string")
        return state.push_lstring(memoryview(value)[:length])

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = state.to_lstring(index)

    @staticmethod
    def default(tp: object) -> bytes:
        return b""


@stack_traits(bytearray)
class ByteArrayTraits:
    @staticmethod
    def push(state: State, value: bytearray) -> bytes:
        return state.push_lstring(value)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        data = state.to_lstring(index)
        ref.value = None if data is None else bytearray(data)

    @staticmethod
    def default(tp: object) -> bytearray:
        return bytearray()


@stack_traits(memoryview)
class ByteViewTraits:
    """Borrowed byte spans: pulls return a read-only view of the stored string."""

    @staticmethod
    def push(state: State, value: memoryview) -> bytes:
        return state.push_lstring(value)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        data = state.to_lstring(index)
        ref.value = None if data is None else memoryview(data)

    @staticmethod
    def default(tp: object) -> memoryview:
        return memoryview(b"")


@stack_traits(NilType, type(None))
class NilTraits:
    @staticmethod
    def push(state: State, value: object) -> None:
        state.push_nil()


@stack_traits(FailType)
class FailTraits:
    # fail must stay distinguishable from nil, so it is carried as false
    @staticmethod
    def push(state: State, value: FailType) -> None:
        state.push_boolean(False)


@stack_traits_for(is_native_function_type)
class NativeFunctionTraits:
    @staticmethod
    def push(state: State, value: NativeFunction) -> None:
        state.push_cfunction(value)

    @staticmethod
    def push_closure(state: State, value: NativeFunction, upvalues: int) -> None:
        state.push_cclosure(value, upvalues)

    @staticmethod
    def to(state: State, index: int, ref: Ref) -> None:
        ref.value = state.to_cfunction(index)

    @staticmethod
    def default(tp: object) -> None:
        return None
