"""Customization points: per-type push/pull operations and the registry holding them.

A traits class groups the operations for one host type. Static methods named
``push`` or ``push_<suffix>`` are push operations ``(state, value, *extras)``;
``to`` or ``to_<suffix>`` are pull operations ``(state, index, ref, *extras)``.
The annotated extra parameters give each operation its argument shape and the
return annotation is the operation's exact result type. An optional
``default(type_key)`` provides the value a pull starts from.
"""

from __future__ import annotations

import inspect
import logging
import os
import sys
import typing
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Final, Mapping

from .errors import AmbiguousBindingError, DuplicateBindingError
from .values import normalize_type_key

logger = logging.getLogger(__name__)

PUSH: Final[str] = "push"
PULL: Final[str] = "to"

_RESOLVE_CACHE_MAX: Final[int] = max(1, int(os.environ.get("LUASTACK_RESOLVE_CACHE_MAX", "1024")))
_FIXED_PARAMS: Final[dict[str, int]] = {PUSH: 2, PULL: 3}
_MISSING: Final = object()


def _extra_matches(actual: object, declared: type) -> bool:
    if not isinstance(actual, type):
        return False
    # bool is an int subclass, but a flag is never an upvalue count or a length
    if issubclass(actual, bool) and not issubclass(declared, bool):
        return False
    return issubclass(actual, declared)


@dataclass
class Ref:
    """Host-side destination a pull overwrites in place."""

    type: object
    value: object = None

    @property
    def key(self) -> object:
        return normalize_type_key(self.type)


@dataclass(frozen=True)
class Operation:
    kind: str
    name: str
    fn: Callable[..., object]
    extras: tuple[type, ...]
    result: object

    @property
    def arity(self) -> int:
        return len(self.extras)

    def accepts(self, extra_types: tuple[type, ...]) -> bool:
        if len(extra_types) != len(self.extras):
            return False
        return all(_extra_matches(actual, declared) for actual, declared in zip(extra_types, self.extras))


@dataclass(frozen=True)
class Binding:
    name: str
    key: object
    predicate: Callable[[object], bool] | None
    pushes: tuple[Operation, ...]
    pulls: tuple[Operation, ...]
    default: Callable[[object], object] | None

    def matches(self, key: object) -> bool:
        if self.predicate is not None:
            return bool(self.predicate(key))
        return self.key == key

    def find(self, kind: str, extra_types: tuple[type, ...]) -> Operation | None:
        ops = self.pushes if kind == PUSH else self.pulls
        for op in ops:
            if op.accepts(extra_types):
                return op
        return None


def _operation_kind(attr: str) -> str | None:
    for kind in (PUSH, PULL):
        if attr == kind or attr.startswith(kind + "_"):
            return kind
    return None


def _resolve_hints(fn: Callable[..., object], names: list[str], localns: Mapping[str, object] | None) -> dict[str, object]:
    """Evaluate only the named annotations of ``fn``; the others may reference anything."""
    raw = inspect.get_annotations(fn)

    def carrier() -> None:
        pass

    carrier.__annotations__ = {name: raw[name] for name in names if name in raw}
    return typing.get_type_hints(carrier, globalns=getattr(fn, "__globals__", None), localns=localns)


def _build_operation(
    kind: str,
    attr: str,
    fn: Callable[..., object],
    owner: str,
    localns: Mapping[str, object] | None = None,
) -> Operation:
    params = list(inspect.signature(fn).parameters.values())
    fixed = _FIXED_PARAMS[kind]
    if len(params) < fixed:
        raise TypeError(f"{owner}.{attr} must accept at least {fixed} positional parameters")
    for param in params:
        if param.kind not in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            raise TypeError(f"{owner}.{attr}: parameter {param.name!r} must be positional")

    extra_names = [param.name for param in params[fixed:]]
    hints = _resolve_hints(fn, extra_names + ["return"], localns)
    extras: list[type] = []
    for name in extra_names:
        declared = hints.get(name)
        if not isinstance(declared, type):
            raise TypeError(f"{owner}.{attr}: extra parameter {name!r} needs a class annotation")
        extras.append(declared)

    result = hints.get("return", _MISSING)
    if result is _MISSING:
        raise TypeError(f"{owner}.{attr} must annotate its return type")
    return Operation(kind=kind, name=attr, fn=fn, extras=tuple(extras), result=result)


def _collect_operations(
    traits_cls: type,
    key: object,
    localns: Mapping[str, object] | None,
) -> tuple[tuple[Operation, ...], tuple[Operation, ...]]:
    found: dict[str, list[Operation]] = {PUSH: [], PULL: []}
    for attr in vars(traits_cls):
        kind = _operation_kind(attr)
        if kind is None:
            continue
        fn = getattr(traits_cls, attr)
        if not callable(fn):
            continue
        op = _build_operation(kind, attr, fn, traits_cls.__name__, localns)
        if any(existing.arity == op.arity for existing in found[kind]):
            raise DuplicateBindingError(key, kind, op.arity)
        found[kind].append(op)
    return tuple(found[PUSH]), tuple(found[PULL])


def _caller_namespace(depth: int) -> dict[str, object]:
    # annotations of locally defined traits classes name locals of the defining frame
    return dict(sys._getframe(depth + 1).f_locals)


class TraitRegistry:
    """Closed set of bindings; lookups never fall back to a "closest" type."""

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._exact: dict[object, Binding] = {}
        self._predicated: list[Binding] = []
        self._cached_lookup = lru_cache(maxsize=_RESOLVE_CACHE_MAX)(self._lookup)

    def __repr__(self) -> str:
        return f"TraitRegistry({self.name!r}, exact={len(self._exact)}, predicated={len(self._predicated)})"

    def register(
        self,
        traits_cls: type,
        *,
        key: object = None,
        predicate: Callable[[object], bool] | None = None,
        localns: Mapping[str, object] | None = None,
    ) -> Binding:
        """Bind ``traits_cls`` to an exact type ``key`` or to every key matching ``predicate``.

        Extra-parameter and return annotations are evaluated against the
        operations' module globals and ``localns`` (by default, the caller's
        local names).
        """
        if (key is None) == (predicate is None):
            raise TypeError("register() needs exactly one of key= or predicate=")
        if key is not None:
            key = normalize_type_key(key)
            if key in self._exact:
                raise DuplicateBindingError(key)
        if localns is None:
            localns = _caller_namespace(1)

        label = key if key is not None else traits_cls
        pushes, pulls = _collect_operations(traits_cls, label, localns)
        default = getattr(traits_cls, "default", None)
        binding = Binding(
            name=traits_cls.__name__,
            key=key,
            predicate=predicate,
            pushes=pushes,
            pulls=pulls,
            default=default if callable(default) else None,
        )
        if key is not None:
            self._exact[key] = binding
        else:
            self._predicated.append(binding)
        self._cached_lookup.cache_clear()
        logger.debug(
            "registered %s in %s registry (push arities %s, pull arities %s)",
            binding.name,
            self.name,
            [op.arity for op in pushes],
            [op.arity for op in pulls],
        )
        return binding

    def traits(self, *keys: object) -> Callable[[type], type]:
        """Class decorator binding a traits class to one or more exact types."""
        if not keys:
            raise TypeError("traits() needs at least one type")

        def decorate(traits_cls: type) -> type:
            localns = _caller_namespace(1)
            for tp in keys:
                self.register(traits_cls, key=tp, localns=localns)
            return traits_cls

        return decorate

    def traits_for(self, predicate: Callable[[object], bool]) -> Callable[[type], type]:
        """Class decorator binding a traits class to every type key satisfying ``predicate``."""

        def decorate(traits_cls: type) -> type:
            self.register(traits_cls, predicate=predicate, localns=_caller_namespace(1))
            return traits_cls

        return decorate

    def binding_for(self, tp: object) -> Binding | None:
        key = normalize_type_key(tp)
        try:
            exact = self._exact.get(key)
        except TypeError:
            return None
        if exact is not None:
            return exact
        candidates = [binding for binding in self._predicated if binding.matches(key)]
        if len(candidates) > 1:
            raise AmbiguousBindingError(key, tuple(binding.name for binding in candidates))
        return candidates[0] if candidates else None

    def _lookup(self, kind: str, key: object, extra_types: tuple[type, ...]) -> Operation | None:
        binding = self.binding_for(key)
        return None if binding is None else binding.find(kind, extra_types)

    def resolve(self, kind: str, tp: object, extra_types: tuple[type, ...] = ()) -> Operation | None:
        key = normalize_type_key(tp)
        try:
            hash(key)
        except TypeError:
            return self._lookup(kind, key, extra_types)
        return self._cached_lookup(kind, key, extra_types)

    def bindings(self) -> tuple[Binding, ...]:
        return tuple(self._exact.values()) + tuple(self._predicated)


REGISTRY: Final[TraitRegistry] = TraitRegistry()


def stack_traits(*keys: object) -> Callable[[type], type]:
    """Register a traits class for exact types on the default registry."""
    return REGISTRY.traits(*keys)


def stack_traits_for(predicate: Callable[[object], bool]) -> Callable[[type], type]:
    """Register a traits class for a family of types on the default registry."""
    return REGISTRY.traits_for(predicate)
