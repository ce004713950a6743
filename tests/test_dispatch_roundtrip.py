from __future__ import annotations

import importlib.util
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for dispatch tests")
class ScalarDispatchTests(unittest.TestCase):
    def test_integer_reads_back_as_fixed_width(self) -> None:
        import jax.numpy as jnp

        from luastack import State, pull, push

        state = State()
        push(state, 42)
        value = pull(state, -1, jnp.int16)
        self.assertEqual(value.dtype, jnp.dtype("int16"))
        self.assertEqual(int(value), 42)
        self.assertEqual(state.get_top(), 1)

    def test_fixed_width_pull_truncates(self) -> None:
        import jax.numpy as jnp

        from luastack import State, pull, push

        state = State()
        push(state, 70000)
        self.assertEqual(int(pull(state, -1, jnp.int16)), 4464)
        push(state, -1)
        self.assertEqual(int(pull(state, -1, jnp.uint8)), 255)

    def test_fixed_width_values_push_as_integers(self) -> None:
        import jax.numpy as jnp

        from luastack import State, push

        state = State()
        push(state, jnp.asarray(-7, dtype=jnp.int8))
        self.assertTrue(state.is_integer(-1))
        self.assertEqual(state.to_integer(-1), -7)

    def test_floats_round_trip(self) -> None:
        import jax.numpy as jnp

        from luastack import State, pull, push

        state = State()
        push(state, 1.5)
        self.assertEqual(pull(state, -1, float), 1.5)
        value = pull(state, -1, jnp.float32)
        self.assertEqual(value.dtype, jnp.dtype("float32"))
        self.assertEqual(float(value), 1.5)

    def test_booleans(self) -> None:
        import jax.numpy as jnp

        from luastack import State, pull, push

        state = State()
        push(state, True)
        push(state, jnp.asarray(False))
        self.assertIs(pull(state, 1, bool), True)
        self.assertIs(pull(state, 2, bool), False)
        self.assertFalse(bool(pull(state, 2, jnp.bool_)))

    def test_enum_and_fraction_use_numeric_families(self) -> None:
        import enum
        from fractions import Fraction

        from luastack import State, pull, push

        class Color(enum.IntEnum):
            RED = 1
            GREEN = 2

        state = State()
        push(state, Color.GREEN)
        self.assertIs(pull(state, -1, Color), Color.GREEN)
        push(state, Fraction(1, 4))
        self.assertEqual(pull(state, -1, Fraction), Fraction(1, 4))

    def test_non_numeric_slot_pulls_as_zero(self) -> None:
        from luastack import State, pull, push

        state = State()
        push(state, b"abc")
        self.assertEqual(pull(state, -1, int), 0)
        self.assertEqual(pull(state, -1, float), 0.0)


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for dispatch tests")
class StringDispatchTests(unittest.TestCase):
    def test_embedded_zero_bytes_survive(self) -> None:
        from luastack import State, pull, push

        state = State()
        stored = push(state, b"hello\x00world")
        self.assertEqual(stored, b"hello\x00world")
        self.assertEqual(pull(state, -1, bytes), b"hello\x00world")
        self.assertEqual(state.raw_len(-1), 11)

    def test_length_prefix_push(self) -> None:
        from luastack import State, push

        state = State()
        self.assertEqual(push(state, b"hello\x00world", 7), b"hello\x00w")
        with self.assertRaises(ValueError):
            push(state, b"abc", 4)
        self.assertEqual(state.get_top(), 1)

    def test_text_round_trip(self) -> None:
        from luastack import State, pull, push

        state = State()
        self.assertEqual(push(state, "hé"), "hé".encode("utf-8"))
        self.assertEqual(pull(state, -1, str), "hé")

    def test_number_pulled_as_text_converts_slot(self) -> None:
        from luastack import LuaType, State, pull, push

        state = State()
        push(state, 12)
        self.assertEqual(pull(state, -1, str), "12")
        self.assertEqual(state.type(-1), LuaType.STRING)

    def test_non_string_pulls_as_none(self) -> None:
        from luastack import State, pull, push

        state = State()
        push(state, True)
        self.assertIsNone(pull(state, -1, str))
        self.assertIsNone(pull(state, -1, bytes))

    def test_byte_buffers(self) -> None:
        from luastack import State, pull, push

        state = State()
        push(state, bytearray(b"ab"))
        push(state, memoryview(b"cd"))
        self.assertEqual(pull(state, 1, bytearray), bytearray(b"ab"))
        view = pull(state, 2, memoryview)
        self.assertIsInstance(view, memoryview)
        self.assertEqual(view.tobytes(), b"cd")


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for dispatch tests")
class SentinelAndFunctionDispatchTests(unittest.TestCase):
    def test_nil_and_fail_are_distinct(self) -> None:
        from luastack import LuaType, State, fail, nil, push, push_fail, push_nil

        state = State()
        push(state, nil)
        push(state, None)
        push(state, fail)
        push_nil(state)
        push_fail(state)
        self.assertEqual(
            [state.type(i) for i in range(1, 6)],
            [LuaType.NIL, LuaType.NIL, LuaType.BOOLEAN, LuaType.NIL, LuaType.BOOLEAN],
        )
        self.assertFalse(state.to_boolean(3))

    def test_function_round_trip(self) -> None:
        from luastack import CFunction, LuaType, State, pull, push_function

        def answer(L) -> int:
            L.push_integer(42)
            return 1

        state = State()
        push_function(state, answer)
        self.assertEqual(state.type(-1), LuaType.FUNCTION)
        self.assertIs(pull(state, -1, CFunction), answer)
        state.call(0, 1)
        self.assertEqual(state.to_integer(-1), 42)

    def test_closure_consumes_its_upvalues(self) -> None:
        from luastack import LuaType, State, push, push_closure, upvalue_index

        def first_upvalue(L) -> int:
            L.push_value(upvalue_index(1))
            return 1

        state = State()
        push(state, b"base")
        push(state, b"up1")
        push(state, b"up2")
        push_closure(state, first_upvalue, 2)
        self.assertEqual(state.get_top(), 2)
        self.assertEqual(state.type(2), LuaType.FUNCTION)
        state.call(0, 1)
        self.assertEqual(state.to_lstring(-1), b"up1")

    def test_missing_binding_leaves_stack_untouched(self) -> None:
        from luastack import MissingBindingError, State, pull, push

        state = State()
        push(state, 1)
        with self.assertRaises(MissingBindingError):
            push(state, object())
        with self.assertRaises(MissingBindingError):
            push(state, 1, 2)
        with self.assertRaises(MissingBindingError):
            pull(state, -1, list)
        self.assertEqual(state.get_top(), 1)

    def test_to_overwrites_a_ref_in_place(self) -> None:
        from luastack import Ref, State, push, to

        state = State()
        push(state, 9)
        ref = Ref(int, 1)
        self.assertIsNone(to(state, -1, ref))
        self.assertEqual(ref.value, 9)

    def test_custom_binding_through_separate_registry(self) -> None:
        from luastack import State, TraitRegistry, pull, push

        class Point:
            def __init__(self, x: int, y: int) -> None:
                self.x = x
                self.y = y

        registry = TraitRegistry("points")

        @registry.traits(Point)
        class PointTraits:
            @staticmethod
            def push(state: object, value: object) -> int:
                state.push_integer(value.x)
                state.push_integer(value.y)
                return 2

            @staticmethod
            def to(state: object, index: int, ref: object) -> None:
                ref.value = Point(state.to_integer(index - 1), state.to_integer(index))

            @staticmethod
            def default(tp: object) -> object:
                return Point(0, 0)

        state = State()
        self.assertEqual(push(state, Point(3, 4), registry=registry), 2)
        point = pull(state, -1, Point, registry=registry)
        self.assertEqual((point.x, point.y), (3, 4))


if __name__ == "__main__":
    unittest.main()
