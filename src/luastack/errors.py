"""Structured error types for the marshalling layer and the stack model."""

from __future__ import annotations

from dataclasses import dataclass


def _type_label(key: object) -> str:
    name = getattr(key, "__qualname__", None)
    if isinstance(name, str):
        return name
    return str(key)


class LuaStackError(Exception):
    """Base class for structured luastack errors."""


@dataclass(frozen=True)
class MissingBindingError(LuaStackError):
    """No binding exists for a (type, extras) combination."""

    operation: str
    type_key: object
    extras: tuple[object, ...] = ()

    def __str__(self) -> str:
        extras = ", ".join(_type_label(extra) for extra in self.extras)
        return f"no {self.operation} binding for ({_type_label(self.type_key)}; extras=[{extras}])"


@dataclass(frozen=True)
class AmbiguousBindingError(LuaStackError):
    """More than one predicate binding claims the same type key."""

    type_key: object
    candidates: tuple[str, ...]

    def __str__(self) -> str:
        return f"ambiguous bindings for {_type_label(self.type_key)}: {', '.join(self.candidates)}"


@dataclass(frozen=True)
class DuplicateBindingError(LuaStackError):
    """A type is bound twice, or a binding repeats an operation kind and arity."""

    type_key: object
    kind: str = "binding"
    arity: int | None = None

    def __str__(self) -> str:
        if self.arity is None:
            return f"duplicate {self.kind} for {_type_label(self.type_key)}"
        return f"duplicate {self.kind} operation with {self.arity} extra argument(s) for {_type_label(self.type_key)}"


@dataclass(frozen=True)
class NotDefaultConstructibleError(LuaStackError):
    type_key: object

    def __str__(self) -> str:
        return f"{_type_label(self.type_key)} has no default value to pull into"


class FieldEncodingError(LuaStackError, AssertionError):
    """Introspection mask holds an unmapped flag or overflows the query buffer."""


class StackError(LuaStackError):
    """Invalid stack index, stack overflow, or malformed stack operation."""


class LuaError(LuaStackError):
    """Error raised from inside a running native function.

    ``value`` is the runtime value that was on top of the stack when the error
    was raised; ``pcall`` pushes it back for the caller.
    """

    def __init__(self, value: object) -> None:
        super().__init__(value)
        self.value = value

    def __str__(self) -> str:
        if isinstance(self.value, bytes):
            return self.value.decode("utf-8", errors="replace")
        return repr(self.value)
