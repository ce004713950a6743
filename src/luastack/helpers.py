"""Compound stack helpers layered on the dispatch entry points."""

from __future__ import annotations

from typing import Callable

from .dispatch import push
from .state import State
from .traits import TraitRegistry
from .values import LuaType


def push_global(state: State, name: str | bytes, value: object, *extra: object, registry: TraitRegistry | None = None) -> None:
    """Push ``value`` (with its extras) and store it as global ``name``."""
    push(state, value, *extra, registry=registry)
    state.set_global(name)


def raw_set_field(state: State, index: int, key: str | bytes) -> None:
    """``t[key] = top`` without metamethods; pops the value."""
    index = state.abs_index(index)
    value_index = state.abs_index(-1)
    push(state, key)
    state.push_value(value_index)
    state.raw_set(index)
    state.pop()


def raw_get_field(state: State, index: int, key: str | bytes) -> LuaType:
    index = state.abs_index(index)
    push(state, key)
    return state.raw_get(index)


def get_or_create_table(state: State, index: int, key: str | bytes | int) -> None:
    """Leave ``t[key]`` on top, creating and storing an empty table when it is not one."""
    index = state.abs_index(index)
    if isinstance(key, int):
        found = state.raw_geti(index, key)
    else:
        found = raw_get_field(state, index, key)
    if found == LuaType.TABLE:
        return

    state.pop()
    state.new_table()
    state.push_value(-1)
    if isinstance(key, int):
        state.raw_seti(index, key)
    else:
        raw_set_field(state, index, key)


def foreach_on_stack(state: State, fn: Callable[[State, int], object]) -> None:
    for n in range(1, state.get_top() + 1):
        fn(state, n)


def foreach_pair_in_table(state: State, index: int, fn: Callable[[State, int, int], object]) -> None:
    """Call ``fn(state, key_index, value_index)`` for every pair of the table at ``index``.

    ``fn`` must leave the key and value slots in place; anything it pushes stays
    on the stack below the iteration key.
    """
    index = state.abs_index(index)
    push(state, None)
    while state.next(index):
        top = state.get_top()
        key_index = top - 1
        value_index = top
        fn(state, key_index, value_index)
        state.remove(value_index)
        if state.get_top() != key_index:
            state.push_value(key_index)
            state.remove(key_index)
