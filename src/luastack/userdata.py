"""Host objects carried on the stack as full userdata, tagged by a per-type metatable.

Each host class gets one metatable in the registry, named after the class's
qualified name. Objects whose class defines ``close()`` get a ``__gc``
finalizer that calls it when the state is closed.
"""

from __future__ import annotations

from typing import TypeVar

from .errors import LuaError
from .state import State
from .traits import REGISTRY, Ref, TraitRegistry

T = TypeVar("T")


def userdata_type_name(tp: type) -> str:
    return f"{tp.__module__}.{tp.__qualname__}"


def _closes(tp: type) -> bool:
    return callable(getattr(tp, "close", None))


def _finalize(state: State) -> int:
    payload = state.to_userdata(1)
    try:
        payload.close()
    except LuaError:
        raise
    except Exception as exc:
        raise LuaError(f"error in __gc ({exc})".encode("utf-8")) from exc
    return 0


def push_userdata(state: State, value: object, user_values: int = 0) -> None:
    """Push ``value`` as userdata carrying the metatable of its class."""
    tp = type(value)
    state.push_userdata(value, user_values)
    if state.new_metatable(userdata_type_name(tp)) and _closes(tp):
        state.push_cfunction(_finalize)
        state.set_field(-2, "__gc")
    state.set_metatable(-2)


def new_userdata(state: State, tp: type[T], *args: object, **kwargs: object) -> T:
    """Construct ``tp(*args, **kwargs)``, push it as typed userdata and return it."""
    value = tp(*args, **kwargs)
    push_userdata(state, value)
    return value


def to_userdata(state: State, index: int, tp: type[T]) -> T | None:
    """The object at ``index`` if it is userdata tagged as ``tp``, else ``None``."""
    return state.test_userdata(index, userdata_type_name(tp))


def check_userdata(state: State, index: int, tp: type[T]) -> T:
    value = to_userdata(state, index, tp)
    if value is None:
        raise LuaError(
            f"bad argument #{index} ({tp.__qualname__} expected, got {state.type(index).type_name})".encode("utf-8")
        )
    return value


def userdata_binding(tp: type[T], *, registry: TraitRegistry | None = None) -> type[T]:
    """Bind ``tp`` so that ``push`` and ``pull`` carry its instances as userdata.

    Returns ``tp`` unchanged, so it also works as a class decorator.
    """
    target = REGISTRY if registry is None else registry

    class UserdataTraits:
        @staticmethod
        def push(state: State, value: object) -> None:
            push_userdata(state, value)

        @staticmethod
        def push_with_user_values(state: State, value: object, user_values: int) -> None:
            push_userdata(state, value, user_values)

        @staticmethod
        def to(state: State, index: int, ref: Ref) -> None:
            ref.value = to_userdata(state, index, tp)

        @staticmethod
        def default(key: object) -> None:
            return None

    UserdataTraits.__name__ = UserdataTraits.__qualname__ = f"{tp.__name__}UserdataTraits"
    target.register(UserdataTraits, key=tp)
    return tp
