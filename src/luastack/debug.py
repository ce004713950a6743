"""Frame introspection built on the field encoder."""

from __future__ import annotations

from .fields import InfoField, encode_fields
from .state import DebugInfo, State


def debug_info(state: State, fields: InfoField, level: int = 0) -> DebugInfo | None:
    """Query the frame ``level`` calls below the running function.

    Returns ``None`` when there is no such frame. ``FUNCTION`` and
    ``LINE_TABLE`` each leave one value on the stack.
    """
    if fields & InfoField.FROM_STACK:
        raise ValueError("FROM_STACK queries the function on top of the stack; use function_info()")
    record = state.get_stack(level)
    if record is None:
        return None
    return state.get_info(encode_fields(fields), record)


def function_info(state: State, fields: InfoField) -> DebugInfo | None:
    """Query the function on top of the stack, popping it."""
    return state.get_info(encode_fields(fields | InfoField.FROM_STACK))
