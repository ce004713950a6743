"""Capability queries over (type, extra-argument types) combinations.

Queries are answered from the registry alone; nothing is pushed or read.
Each extra-argument shape is an independent query: a type can be pushable
with no extras and not with one, or the other way round.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

from .errors import MissingBindingError, NotDefaultConstructibleError
from .traits import PULL, PUSH, REGISTRY, Operation, TraitRegistry
from .values import normalize_type_key

F = TypeVar("F", bound=Callable[..., object])

Combination = object


def _registry(registry: TraitRegistry | None) -> TraitRegistry:
    return REGISTRY if registry is None else registry


def _require(kind: str, tp: object, extra_types: tuple[type, ...], registry: TraitRegistry | None) -> Operation:
    op = _registry(registry).resolve(kind, tp, extra_types)
    if op is None:
        raise MissingBindingError(kind, normalize_type_key(tp), extra_types)
    return op


def is_pushable(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> bool:
    return _registry(registry).resolve(PUSH, tp, extra_types) is not None


def is_pullable(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> bool:
    return _registry(registry).resolve(PULL, tp, extra_types) is not None


def require_pushable(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> Operation:
    return _require(PUSH, tp, extra_types, registry)


def require_pullable(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> Operation:
    return _require(PULL, tp, extra_types, registry)


def push_result(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> object:
    """Exact result type of pushing ``tp`` with the given extras (``NoneType`` for no result)."""
    return _require(PUSH, tp, extra_types, registry).result


def pull_result(tp: object, *extra_types: type, registry: TraitRegistry | None = None) -> object:
    return _require(PULL, tp, extra_types, registry).result


def is_default_constructible(tp: object, *, registry: TraitRegistry | None = None) -> bool:
    binding = _registry(registry).binding_for(tp)
    return binding is not None and binding.default is not None


def default_value(tp: object, *, registry: TraitRegistry | None = None) -> object:
    key = normalize_type_key(tp)
    binding = _registry(registry).binding_for(key)
    if binding is None or binding.default is None:
        raise NotDefaultConstructibleError(key)
    return binding.default(key)


def _split(combination: Combination) -> tuple[object, tuple[type, ...]]:
    if isinstance(combination, tuple):
        if not combination:
            raise TypeError("empty combination")
        return combination[0], tuple(combination[1:])
    return combination, ()


def validate_bindings(
    *,
    push: Iterable[Combination] = (),
    pull: Iterable[Combination] = (),
    registry: TraitRegistry | None = None,
) -> None:
    """Fail fast when any listed combination has no binding.

    Each entry is either a type or a ``(type, *extra_types)`` tuple.
    """
    for combination in push:
        tp, extras = _split(combination)
        require_pushable(tp, *extras, registry=registry)
    for combination in pull:
        tp, extras = _split(combination)
        require_pullable(tp, *extras, registry=registry)


def marshals(
    *,
    push: Iterable[Combination] = (),
    pull: Iterable[Combination] = (),
    registry: TraitRegistry | None = None,
) -> Callable[[F], F]:
    """Decorator validating the combinations a function relies on when it is defined."""
    push = tuple(push)
    pull = tuple(pull)
    validate_bindings(push=push, pull=pull, registry=registry)

    def decorate(fn: F) -> F:
        fn.__luastack_marshals__ = {"push": push, "pull": pull}  # type: ignore[attr-defined]
        return fn

    return decorate
