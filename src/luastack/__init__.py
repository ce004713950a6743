"""luastack public API."""

from .errors import (
    AmbiguousBindingError,
    DuplicateBindingError,
    FieldEncodingError,
    LuaError,
    LuaStackError,
    MissingBindingError,
    NotDefaultConstructibleError,
    StackError,
)
from .values import (
    MULTRET,
    REGISTRYINDEX,
    RIDX_GLOBALS,
    FailType,
    LuaTable,
    LuaType,
    NilType,
    Userdata,
    StatusCode,
    fail,
    nil,
)
from .state import ActivationRecord, DebugInfo, NativeFunction, State, upvalue_index
from .traits import REGISTRY, Binding, Operation, Ref, TraitRegistry, stack_traits, stack_traits_for
from .bindings import CFunction, is_floating_type, is_integral_type, is_native_function_type
from .capability import (
    default_value,
    is_default_constructible,
    is_pullable,
    is_pushable,
    marshals,
    pull_result,
    push_result,
    require_pullable,
    require_pushable,
    validate_bindings,
)
from .dispatch import pull, push, push_closure, push_fail, push_function, push_nil, to
from .fields import ALL_FIELDS, FIELD_QUERY_CAPACITY, InfoField, decode_fields, encode_fields, field_code, query_buffer
from .debug import debug_info, function_info
from .helpers import foreach_on_stack, foreach_pair_in_table, get_or_create_table, push_global, raw_get_field, raw_set_field
from .userdata import check_userdata, new_userdata, push_userdata, to_userdata, userdata_binding, userdata_type_name

__all__ = [
    "State",
    "LuaType",
    "StatusCode",
    "LuaTable",
    "Userdata",
    "NativeFunction",
    "ActivationRecord",
    "DebugInfo",
    "upvalue_index",
    "MULTRET",
    "REGISTRYINDEX",
    "RIDX_GLOBALS",
    "NilType",
    "FailType",
    "nil",
    "fail",
    "CFunction",
    "Ref",
    "Operation",
    "Binding",
    "TraitRegistry",
    "REGISTRY",
    "stack_traits",
    "stack_traits_for",
    "is_integral_type",
    "is_floating_type",
    "is_native_function_type",
    "is_pushable",
    "is_pullable",
    "push_result",
    "pull_result",
    "require_pushable",
    "require_pullable",
    "is_default_constructible",
    "default_value",
    "validate_bindings",
    "marshals",
    "push",
    "to",
    "pull",
    "push_function",
    "push_closure",
    "push_nil",
    "push_fail",
    "InfoField",
    "ALL_FIELDS",
    "FIELD_QUERY_CAPACITY",
    "encode_fields",
    "decode_fields",
    "query_buffer",
    "field_code",
    "debug_info",
    "function_info",
    "push_global",
    "raw_set_field",
    "raw_get_field",
    "get_or_create_table",
    "foreach_on_stack",
    "foreach_pair_in_table",
    "push_userdata",
    "new_userdata",
    "to_userdata",
    "check_userdata",
    "userdata_binding",
    "userdata_type_name",
    "LuaStackError",
    "MissingBindingError",
    "AmbiguousBindingError",
    "DuplicateBindingError",
    "NotDefaultConstructibleError",
    "FieldEncodingError",
    "StackError",
    "LuaError",
]
