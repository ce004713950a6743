"""In-process model of the runtime's value stack and its raw primitives.

Indices follow the runtime's conventions: positive indices count from the
base of the running frame (1 is the first argument), negative indices count
down from the top, ``REGISTRYINDEX`` addresses the registry table and
``upvalue_index(n)`` addresses the running closure's n-th upvalue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Final, NoReturn

from .errors import LuaError, StackError
from .values import (
    MAXSTACK,
    MAXUPVAL,
    MULTRET,
    REGISTRYINDEX,
    RIDX_GLOBALS,
    LuaTable,
    LuaType,
    NativeClosure,
    StatusCode,
    Userdata,
    float_to_integer,
    number_to_bytes,
    str_to_number,
    type_of_value,
    wrap_integer,
)

logger = logging.getLogger(__name__)

NativeFunction = Callable[["State"], int]

_NONE: Final = object()


def upvalue_index(n: int) -> int:
    """Pseudo-index of the running closure's n-th upvalue (1-based)."""
    if not 1 <= n <= MAXUPVAL + 1:
        raise StackError(f"upvalue index {n} out of range")
    return REGISTRYINDEX - n


def _as_key_bytes(name: str | bytes) -> bytes:
    if isinstance(name, str):
        return name.encode("utf-8")
    return bytes(name)


@dataclass
class CallInfo:
    closure: NativeClosure
    base: int
    name: str | None = None
    namewhat: str = ""
    istailcall: bool = False


@dataclass(frozen=True)
class ActivationRecord:
    level: int
    call_info: CallInfo = field(repr=False)


@dataclass(frozen=True)
class DebugInfo:
    """Fields filled by a frame query; fields not requested stay ``None``."""

    source: str | None = None
    short_src: str | None = None
    what: str | None = None
    linedefined: int | None = None
    lastlinedefined: int | None = None
    currentline: int | None = None
    name: str | None = None
    namewhat: str | None = None
    nups: int | None = None
    nparams: int | None = None
    isvararg: bool | None = None
    istailcall: bool | None = None
    ftransfer: int | None = None
    ntransfer: int | None = None


class State:
    """A single runtime instance: one value stack, a registry and globals."""

    def __init__(self) -> None:
        self._stack: list[object] = []
        self._frames: list[CallInfo] = []
        self._registry = LuaTable()
        self._globals = LuaTable()
        self._registry.set(RIDX_GLOBALS, self._globals)
        self._finalizable: list[Userdata] = []

    def __repr__(self) -> str:
        return f"State(top={self.get_top()}, depth={len(self._frames)})"

    # ------------------------------------------------------------------
    # index arithmetic

    @property
    def _base(self) -> int:
        return self._frames[-1].base if self._frames else 0

    def _position(self, index: int) -> int:
        if index > 0:
            return self._base + index - 1
        if index == 0:
            raise StackError("invalid stack index 0")
        if index > REGISTRYINDEX:
            pos = len(self._stack) + index
            if pos < self._base:
                raise StackError(f"invalid stack index {index}")
            return pos
        raise StackError(f"pseudo-index {index} does not address a stack slot")

    def _get(self, index: int) -> object:
        if index == REGISTRYINDEX:
            return self._registry
        if index < REGISTRYINDEX:
            n = REGISTRYINDEX - index
            if not self._frames or n > len(self._frames[-1].closure.upvalues):
                return _NONE
            return self._frames[-1].closure.upvalues[n - 1]
        pos = self._position(index)
        if pos >= len(self._stack):
            return _NONE
        return self._stack[pos]

    def _value(self, index: int) -> object:
        value = self._get(index)
        if value is _NONE:
            raise StackError(f"invalid stack index {index}")
        return value

    def _set(self, index: int, value: object) -> None:
        if index == REGISTRYINDEX:
            raise StackError("cannot replace the registry")
        if index < REGISTRYINDEX:
            n = REGISTRYINDEX - index
            upvalues = self._frames[-1].closure.upvalues if self._frames else []
            if n > len(upvalues):
                raise StackError(f"invalid upvalue index {n}")
            upvalues[n - 1] = value
            return
        pos = self._position(index)
        if pos >= len(self._stack):
            raise StackError(f"invalid stack index {index}")
        self._stack[pos] = value

    def _push(self, value: object) -> None:
        if len(self._stack) >= MAXSTACK:
            raise StackError("stack overflow")
        self._stack.append(value)

    def _table_at(self, index: int) -> LuaTable:
        value = self._get(index)
        if not isinstance(value, LuaTable):
            raise StackError(f"table expected at index {index}, got {self.type(index).type_name}")
        return value

    def abs_index(self, index: int) -> int:
        if index > 0 or index <= REGISTRYINDEX:
            return index
        return len(self._stack) - self._base + index + 1

    def get_top(self) -> int:
        return len(self._stack) - self._base

    def set_top(self, index: int) -> None:
        if index >= 0:
            new_len = self._base + index
        else:
            new_len = len(self._stack) + index + 1
        if new_len < self._base:
            raise StackError(f"invalid new top {index}")
        if new_len > MAXSTACK:
            raise StackError("stack overflow")
        if new_len < len(self._stack):
            del self._stack[new_len:]
        else:
            self._stack.extend([None] * (new_len - len(self._stack)))

    def pop(self, n: int = 1) -> None:
        self.set_top(-n - 1)

    def check_stack(self, n: int) -> bool:
        return len(self._stack) + n <= MAXSTACK

    def push_value(self, index: int) -> None:
        self._push(self._value(index))

    def copy(self, from_index: int, to_index: int) -> None:
        self._set(to_index, self._value(from_index))

    def remove(self, index: int) -> None:
        pos = self._position(index)
        if pos >= len(self._stack):
            raise StackError(f"invalid stack index {index}")
        del self._stack[pos]

    def insert(self, index: int) -> None:
        pos = self._position(index)
        if pos >= len(self._stack):
            raise StackError(f"invalid stack index {index}")
        self._stack.insert(pos, self._stack.pop())

    def replace(self, index: int) -> None:
        self.copy(-1, index)
        self.pop()

    # ------------------------------------------------------------------
    # push-by-kind

    def push_nil(self) -> None:
        self._push(None)

    def push_integer(self, value: int) -> None:
        self._push(wrap_integer(int(value)))

    def push_number(self, value: float) -> None:
        self._push(float(value))

    def push_boolean(self, value: bool) -> None:
        self._push(bool(value))

    def push_lstring(self, data: bytes | bytearray | memoryview) -> bytes:
        """Push a copy of ``data`` (embedded zeros included); returns the stored string."""
        stored = bytes(data)
        self._push(stored)
        return stored

    def push_string(self, data: str | bytes | None) -> bytes | None:
        """Push a zero-terminated string: only the bytes before the first zero are kept."""
        if data is None:
            self.push_nil()
            return None
        raw = _as_key_bytes(data)
        end = raw.find(b"\x00")
        if end >= 0:
            raw = raw[:end]
        return self.push_lstring(raw)

    def push_cfunction(self, fn: NativeFunction) -> None:
        self.push_cclosure(fn, 0)

    def push_cclosure(self, fn: NativeFunction, n: int) -> None:
        """Pop ``n`` values as upvalues (first pushed is upvalue 1) and push the closure."""
        if not 0 <= n <= MAXUPVAL:
            raise StackError(f"upvalue count {n} out of range")
        if n > self.get_top():
            raise StackError(f"closure needs {n} upvalue(s), stack holds {self.get_top()}")
        upvalues: list[object] = []
        if n:
            upvalues = self._stack[-n:]
            del self._stack[-n:]
        self._push(NativeClosure(fn, upvalues))

    def push_global_table(self) -> None:
        self._push(self._globals)

    # ------------------------------------------------------------------
    # read-by-kind

    def type(self, index: int) -> LuaType:
        value = self._get(index)
        if value is _NONE:
            return LuaType.NONE
        return type_of_value(value)

    def type_name(self, tp: LuaType) -> str:
        return LuaType(tp).type_name

    def is_none_or_nil(self, index: int) -> bool:
        return self.type(index) in (LuaType.NONE, LuaType.NIL)

    def is_integer(self, index: int) -> bool:
        value = self._get(index)
        return isinstance(value, int) and not isinstance(value, bool)

    def is_number(self, index: int) -> bool:
        return self.to_numberx(index)[1]

    def is_string(self, index: int) -> bool:
        return self.type(index) in (LuaType.STRING, LuaType.NUMBER)

    def to_integerx(self, index: int) -> tuple[int, bool]:
        value = self._get(index)
        if isinstance(value, bytes):
            value = str_to_number(value)
        if isinstance(value, bool):
            return 0, False
        if isinstance(value, int):
            return value, True
        if isinstance(value, float):
            converted = float_to_integer(value)
            if converted is not None:
                return converted, True
        return 0, False

    def to_integer(self, index: int) -> int:
        return self.to_integerx(index)[0]

    def to_numberx(self, index: int) -> tuple[float, bool]:
        value = self._get(index)
        if isinstance(value, bytes):
            value = str_to_number(value)
        if isinstance(value, bool):
            return 0.0, False
        if isinstance(value, (int, float)):
            return float(value), True
        return 0.0, False

    def to_number(self, index: int) -> float:
        return self.to_numberx(index)[0]

    def to_boolean(self, index: int) -> bool:
        value = self._get(index)
        return not (value is None or value is False or value is _NONE)

    def to_lstring(self, index: int) -> bytes | None:
        """String contents of a slot; a number slot is converted to a string in place."""
        value = self._get(index)
        if isinstance(value, bytes):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            converted = number_to_bytes(value)
            self._set(index, converted)
            return converted
        return None

    def to_cfunction(self, index: int) -> NativeFunction | None:
        value = self._get(index)
        if isinstance(value, NativeClosure):
            return value.function
        return None

    def raw_len(self, index: int) -> int:
        value = self._get(index)
        if isinstance(value, bytes):
            return len(value)
        if isinstance(value, LuaTable):
            return value.length()
        return 0

    def raw_equal(self, index1: int, index2: int) -> bool:
        a = self._get(index1)
        b = self._get(index2)
        if a is _NONE or b is _NONE:
            return False
        if type_of_value(a) != type_of_value(b):
            return False
        if isinstance(a, (LuaTable, NativeClosure, Userdata)):
            return a is b
        return a == b

    # ------------------------------------------------------------------
    # tables and globals (raw access, no metatables)

    def create_table(self, narr: int = 0, nrec: int = 0) -> None:
        self._push(LuaTable())

    def new_table(self) -> None:
        self.create_table(0, 0)

    def _index_target(self, index: int) -> LuaTable:
        value = self._get(index)
        if not isinstance(value, LuaTable):
            kind = LuaType.NIL if value is _NONE else type_of_value(value)
            raise LuaError(f"attempt to index a {kind.type_name} value".encode("ascii"))
        return value

    def get_field(self, index: int, key: str | bytes) -> LuaType:
        table = self._index_target(index)
        value = table.get(_as_key_bytes(key))
        self._push(value)
        return type_of_value(value)

    def set_field(self, index: int, key: str | bytes) -> None:
        table = self._index_target(index)
        table.set(_as_key_bytes(key), self._value(-1))
        self.pop()

    def get_table(self, index: int) -> LuaType:
        table = self._index_target(index)
        value = table.get(self._value(-1))
        self._stack[-1] = value
        return type_of_value(value)

    def set_table(self, index: int) -> None:
        table = self._index_target(index)
        table.set(self._value(-2), self._value(-1))
        self.pop(2)

    def raw_get(self, index: int) -> LuaType:
        table = self._table_at(index)
        value = table.get(self._value(-1))
        self._stack[-1] = value
        return type_of_value(value)

    def raw_set(self, index: int) -> None:
        table = self._table_at(index)
        table.set(self._value(-2), self._value(-1))
        self.pop(2)

    def raw_geti(self, index: int, n: int) -> LuaType:
        value = self._table_at(index).get(wrap_integer(n))
        self._push(value)
        return type_of_value(value)

    def raw_seti(self, index: int, n: int) -> None:
        self._table_at(index).set(wrap_integer(n), self._value(-1))
        self.pop()

    def next(self, index: int) -> bool:
        """Pop a key and push the next key/value pair; ``False`` when exhausted."""
        table = self._table_at(index)
        entry = table.next(self._value(-1))
        self.pop()
        if entry is None:
            return False
        key, value = entry
        self._push(key)
        self._push(value)
        return True

    def get_global(self, name: str | bytes) -> LuaType:
        value = self._globals.get(_as_key_bytes(name))
        self._push(value)
        return type_of_value(value)

    def set_global(self, name: str | bytes) -> None:
        self._globals.set(_as_key_bytes(name), self._value(-1))
        self.pop()

    # ------------------------------------------------------------------
    # userdata and metatables

    def new_userdata(self, size: int, user_values: int = 1) -> bytearray:
        """Push a zero-filled block of ``size`` bytes as full userdata; returns the block."""
        if size < 0:
            raise StackError(f"invalid userdata size {size}")
        block = bytearray(size)
        self.push_userdata(block, user_values)
        return block

    def push_userdata(self, payload: object, user_values: int = 0) -> None:
        """Push a host object as full userdata with ``user_values`` nil user values."""
        if user_values < 0:
            raise StackError(f"invalid user value count {user_values}")
        self._push(Userdata(payload, user_values=[None] * user_values))

    def to_userdata(self, index: int) -> object:
        value = self._get(index)
        if isinstance(value, Userdata):
            return value.payload
        return None

    def get_user_value(self, index: int, n: int) -> LuaType:
        value = self._get(index)
        if not isinstance(value, Userdata) or not 1 <= n <= len(value.user_values):
            self._push(None)
            return LuaType.NONE
        stored = value.user_values[n - 1]
        self._push(stored)
        return type_of_value(stored)

    def set_user_value(self, index: int, n: int) -> bool:
        """Pop a value into user value ``n``; ``False`` when there is no such slot."""
        target = self._get(index)
        value = self._value(-1)
        self.pop()
        if not isinstance(target, Userdata) or not 1 <= n <= len(target.user_values):
            return False
        target.user_values[n - 1] = value
        return True

    def new_metatable(self, name: str | bytes) -> bool:
        """Push the registry metatable ``name``, creating it first if needed.

        Returns ``True`` when the table was created by this call.
        """
        key = _as_key_bytes(name)
        existing = self._registry.get(key)
        if existing is not None:
            self._push(existing)
            return False
        metatable = LuaTable()
        metatable.set(b"__name", key)
        self._registry.set(key, metatable)
        self._push(metatable)
        return True

    def get_metatable_named(self, name: str | bytes) -> LuaType:
        value = self._registry.get(_as_key_bytes(name))
        self._push(value)
        return type_of_value(value)

    def get_metatable(self, index: int) -> bool:
        value = self._get(index)
        metatable = value.metatable if isinstance(value, (LuaTable, Userdata)) else None
        if metatable is None:
            return False
        self._push(metatable)
        return True

    def set_metatable(self, index: int) -> None:
        """Pop a table (or nil) and make it the metatable of the value at ``index``."""
        target = self._get(index)
        metatable = self._value(-1)
        if metatable is not None and not isinstance(metatable, LuaTable):
            raise StackError("metatable must be a table or nil")
        if not isinstance(target, (LuaTable, Userdata)):
            raise StackError(f"cannot set a metatable on a {self.type(index).type_name} value")
        self.pop()
        target.metatable = metatable
        # objects are marked for finalization when they get a metatable with __gc
        if (
            isinstance(target, Userdata)
            and metatable is not None
            and metatable.get(b"__gc") is not None
            and not any(marked is target for marked in self._finalizable)
        ):
            self._finalizable.append(target)

    def test_userdata(self, index: int, name: str | bytes) -> object:
        """Payload at ``index`` if it is userdata whose metatable is registry ``name``."""
        value = self._get(index)
        if not isinstance(value, Userdata) or value.metatable is None:
            return None
        if value.metatable is not self._registry.get(_as_key_bytes(name)):
            return None
        return value.payload

    def close(self) -> None:
        """Run pending ``__gc`` finalizers, newest first, and empty the stack."""
        self._frames.clear()
        self._stack.clear()
        while self._finalizable:
            target = self._finalizable.pop()
            finalizer = target.metatable.get(b"__gc") if target.metatable is not None else None
            if not isinstance(finalizer, NativeClosure):
                continue
            self._push(finalizer)
            self._push(target)
            if self.pcall(1, 0) != StatusCode.OK:
                logger.warning("error in __gc finalizer: %r", self._stack[-1])
                self.pop()
        self._stack.clear()

    # ------------------------------------------------------------------
    # calls

    def call(self, nargs: int = 0, nresults: int = MULTRET) -> None:
        func_pos = len(self._stack) - nargs - 1
        if nargs < 0 or func_pos < self._base:
            raise StackError(f"not enough elements in the stack for a call with {nargs} argument(s)")
        func = self._stack[func_pos]
        if not isinstance(func, NativeClosure):
            raise LuaError(f"attempt to call a {type_of_value(func).type_name} value".encode("ascii"))

        self._frames.append(CallInfo(closure=func, base=func_pos + 1))
        try:
            nret = func.function(self)
            if not isinstance(nret, int) or nret < 0 or nret > self.get_top():
                raise StackError(f"native function returned invalid result count {nret!r}")
            results = self._stack[len(self._stack) - nret :] if nret else []
        finally:
            self._frames.pop()

        del self._stack[func_pos:]
        if nresults != MULTRET:
            results = results[:nresults] + [None] * (nresults - len(results))
        if len(self._stack) + len(results) > MAXSTACK:
            raise StackError("stack overflow")
        self._stack.extend(results)

    def pcall(self, nargs: int = 0, nresults: int = MULTRET, msgh: int = 0) -> StatusCode:
        """Protected call; on error the stack is restored and the error value pushed."""
        handler = self._value(msgh) if msgh else None
        restore_len = len(self._stack) - nargs - 1
        restore_depth = len(self._frames)
        try:
            self.call(nargs, nresults)
            return StatusCode.OK
        except LuaError as err:
            del self._frames[restore_depth:]
            del self._stack[max(restore_len, self._base) :]
            logger.debug("pcall captured runtime error: %s", err)
            error_value = err.value

        status = StatusCode.ERRRUN
        if handler is not None:
            self._push(handler)
            self._push(error_value)
            try:
                self.call(1, 1)
                return status
            except LuaError as err:
                del self._frames[restore_depth:]
                del self._stack[max(restore_len, self._base) :]
                error_value = err.value
                status = StatusCode.ERRERR
        self._push(error_value)
        return status

    def error(self) -> NoReturn:
        """Raise the value on top of the stack as a runtime error."""
        raise LuaError(self._value(-1))

    # ------------------------------------------------------------------
    # frame introspection

    def get_stack(self, level: int) -> ActivationRecord | None:
        """Activation record ``level`` frames below the running one, or ``None``."""
        if level < 0 or level >= len(self._frames):
            return None
        return ActivationRecord(level=level, call_info=self._frames[-1 - level])

    def get_info(self, what: str, ar: ActivationRecord | None = None) -> DebugInfo | None:
        """Fill the fields selected by the query string ``what``.

        A leading ``>`` takes the function from the top of the stack (and pops
        it) instead of from ``ar``. ``f`` pushes the function, ``L`` pushes the
        line table (nil for native functions). Returns ``None`` on an invalid
        option character.
        """
        call_info: CallInfo | None = None
        if what.startswith(">"):
            closure = self._value(-1)
            if not isinstance(closure, NativeClosure):
                raise StackError("function expected for '>' query")
            self.pop()
            what = what[1:]
        else:
            if ar is None:
                raise StackError("activation record required")
            call_info = ar.call_info
            closure = call_info.closure

        fields: dict[str, object] = {}
        push_function = False
        push_lines = False
        for option in what:
            if option == "S":
                fields.update(source="=[C]", short_src="[C]", what="C", linedefined=-1, lastlinedefined=-1)
            elif option == "l":
                fields["currentline"] = -1
            elif option == "u":
                fields.update(nups=len(closure.upvalues), nparams=0, isvararg=True)
            elif option == "n":
                fields["name"] = call_info.name if call_info is not None else None
                fields["namewhat"] = call_info.namewhat if call_info is not None else ""
            elif option == "t":
                fields["istailcall"] = call_info.istailcall if call_info is not None else False
            elif option == "r":
                fields.update(ftransfer=0, ntransfer=0)
            elif option == "f":
                push_function = True
            elif option == "L":
                push_lines = True
            else:
                return None

        if push_function:
            self._push(closure)
        if push_lines:
            self._push(None)
        return DebugInfo(**fields)
