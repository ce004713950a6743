from __future__ import annotations

import functools
import importlib.util
import itertools
import operator
import unittest


JAX_AVAILABLE = importlib.util.find_spec("jax") is not None

CANONICAL = ">flnrStuL"


@unittest.skipUnless(JAX_AVAILABLE, "jax is required for field-encoder tests")
class FieldEncoderTests(unittest.TestCase):
    def test_every_field_has_a_query_character(self) -> None:
        from luastack import InfoField, field_code

        codes = {flag: field_code(flag) for flag in InfoField if flag is not InfoField.NONE}
        self.assertEqual(sorted(codes.values()), sorted(CANONICAL))
        self.assertEqual(field_code(InfoField.CURRENT_LINE), "l")
        self.assertEqual(field_code(InfoField.NAME), "n")

    def test_full_mask_is_in_canonical_order(self) -> None:
        from luastack import ALL_FIELDS, InfoField, encode_fields

        self.assertEqual(encode_fields(ALL_FIELDS | InfoField.FROM_STACK), CANONICAL)
        self.assertEqual(encode_fields(ALL_FIELDS), CANONICAL[1:])

    def test_name_and_line_query(self) -> None:
        from luastack import InfoField, encode_fields

        self.assertEqual(encode_fields(InfoField.NAME | InfoField.CURRENT_LINE), "ln")
        self.assertEqual(encode_fields(InfoField.CURRENT_LINE | InfoField.NAME), "ln")

    def test_order_does_not_depend_on_combination_order(self) -> None:
        from luastack import InfoField, encode_fields

        flags = [flag for flag in InfoField if flag is not InfoField.NONE]
        for a, b in itertools.combinations(flags, 2):
            with self.subTest(a=a, b=b):
                encoded = encode_fields(a | b)
                self.assertEqual(encoded, encode_fields(b | a))
                self.assertEqual(len(encoded), 2)
                self.assertLess(CANONICAL.index(encoded[0]), CANONICAL.index(encoded[1]))

        reversed_mask = functools.reduce(operator.or_, reversed(flags))
        self.assertEqual(encode_fields(reversed_mask), CANONICAL)

    def test_empty_mask_and_idempotence(self) -> None:
        from luastack import InfoField, encode_fields

        self.assertEqual(encode_fields(InfoField.NONE), "")
        mask = InfoField.SOURCE | InfoField.UPVALUES
        self.assertEqual(encode_fields(mask), encode_fields(mask))
        self.assertEqual(encode_fields(mask | mask), "Su")

    def test_query_buffer_is_fixed_capacity_and_terminated(self) -> None:
        from luastack import ALL_FIELDS, FIELD_QUERY_CAPACITY, InfoField, query_buffer

        self.assertEqual(FIELD_QUERY_CAPACITY, 10)
        full = query_buffer(ALL_FIELDS | InfoField.FROM_STACK)
        self.assertEqual(len(full), FIELD_QUERY_CAPACITY)
        self.assertEqual(bytes(full), CANONICAL.encode("ascii") + b"\x00")

        short = query_buffer(InfoField.FUNCTION)
        self.assertEqual(len(short), FIELD_QUERY_CAPACITY)
        self.assertEqual(bytes(short[:2]), b"f\x00")

        short[0] = ord("x")
        self.assertEqual(bytes(query_buffer(InfoField.FUNCTION)[:1]), b"f")

    def test_unmapped_bits_fail_loudly(self) -> None:
        from luastack import FieldEncodingError, encode_fields, query_buffer

        with self.assertRaises(FieldEncodingError):
            encode_fields(1 << 12)
        with self.assertRaises(AssertionError):
            query_buffer(1 << 12)

    def test_complement_stays_within_declared_fields(self) -> None:
        from luastack import ALL_FIELDS, InfoField, encode_fields

        self.assertEqual(encode_fields(~InfoField.FROM_STACK), encode_fields(ALL_FIELDS))
        self.assertNotIn("n", encode_fields(ALL_FIELDS & ~InfoField.NAME))

    def test_every_mask_survives_a_decode_encode_cycle(self) -> None:
        from luastack import ALL_FIELDS, InfoField, decode_fields, encode_fields

        self.assertEqual(int(ALL_FIELDS | InfoField.FROM_STACK), 511)
        for bits in range(512):
            mask = InfoField(bits)
            with self.subTest(mask=bits):
                query = encode_fields(mask)
                self.assertEqual(encode_fields(decode_fields(query)), query)
                self.assertEqual(decode_fields(query), mask)
                self.assertEqual(len(query), bin(bits).count("1"))

    def test_decode_inverts_encode(self) -> None:
        from luastack import FieldEncodingError, InfoField, decode_fields

        self.assertEqual(decode_fields("Sn"), InfoField.SOURCE | InfoField.NAME)
        self.assertEqual(decode_fields("ln\x00garbage"), InfoField.CURRENT_LINE | InfoField.NAME)
        with self.assertRaises(FieldEncodingError):
            decode_fields("z")


if __name__ == "__main__":
    unittest.main()
