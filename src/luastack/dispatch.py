"""Generic entry points moving typed host values across the stack boundary.

``push``, ``to`` and ``pull`` are the only callers of binding operations, so
the capability check and the exact result type always apply.
"""

from __future__ import annotations

from . import bindings as _bindings  # noqa: F401  (registers the built-in bindings)
from .capability import default_value, require_pullable, require_pushable
from .state import NativeFunction, State
from .traits import Ref, TraitRegistry
from .values import fail, nil, type_key_of


def _extra_types(extra: tuple[object, ...]) -> tuple[type, ...]:
    return tuple(type(arg) for arg in extra)


def push(state: State, value: object, *extra: object, registry: TraitRegistry | None = None) -> object:
    """Push ``value`` and return whatever its binding's push operation returns."""
    op = require_pushable(type_key_of(value), *_extra_types(extra), registry=registry)
    return op.fn(state, value, *extra)


def to(state: State, index: int, ref: Ref, *extra: object, registry: TraitRegistry | None = None) -> object:
    """Overwrite ``ref.value`` from the slot at ``index``."""
    op = require_pullable(ref.type, *_extra_types(extra), registry=registry)
    return op.fn(state, index, ref, *extra)


def pull(state: State, index: int, tp: object, *extra: object, registry: TraitRegistry | None = None) -> object:
    """Read the slot at ``index`` as a fresh value of ``tp``."""
    require_pullable(tp, *_extra_types(extra), registry=registry)
    ref = Ref(tp, default_value(tp, registry=registry))
    to(state, index, ref, *extra, registry=registry)
    return ref.value


def push_function(state: State, fn: NativeFunction) -> None:
    push(state, fn)


def push_closure(state: State, fn: NativeFunction, upvalues: int) -> None:
    """Replace the top ``upvalues`` slots with a closure capturing them."""
    push(state, fn, int(upvalues))


def push_nil(state: State) -> None:
    push(state, nil)


def push_fail(state: State) -> None:
    push(state, fail)
