from __future__ import annotations

import math
import unittest

import pandas as pd

from roster_doctor.models import AttributeMap, InvalidAttributes, parse_attributes
from roster_doctor.normalization import (
    clean_cell_text,
    coerce_field,
    is_blank,
    parse_int,
    parse_int_list,
    parse_list,
    parse_phase_list,
    parse_phases,
)


class BlankAndTextTests(unittest.TestCase):
    def test_sentinels_are_blank(self):
        for value in (None, "", "  ", "N/A", "null", "NaN", math.nan, [], ()):
            with self.subTest(value=value):
                self.assertTrue(is_blank(value))
        for value in ("0", 0, "x", [1]):
            with self.subTest(value=value):
                self.assertFalse(is_blank(value))

    def test_clean_cell_text(self):
        self.assertEqual(clean_cell_text("\ufeff“Acme”\r\nCorp\x00 "), '"Acme" Corp')
        self.assertEqual(clean_cell_text(None), "")


class IntegerTests(unittest.TestCase):
    def test_parse_int(self):
        cases = [
            ("3", 3),
            (" 4 ", 4),
            ("5.0", 5),
            (7, 7),
            (pd.Series([2]).iloc[0], 2),
            (3.0, 3),
            (2.5, "2.5"),
            ("abc", "abc"),
            (True, "True"),
            ("", None),
        ]
        for value, expected in cases:
            with self.subTest(value=value):
                self.assertEqual(parse_int(value), expected)

    def test_blank_takes_default(self):
        self.assertEqual(parse_int("", 1), 1)
        self.assertEqual(parse_int("n/a", 1), 1)


class ListTests(unittest.TestCase):
    def test_parse_list(self):
        self.assertEqual(parse_list("python, sql"), ("python", "sql"))
        self.assertEqual(parse_list("python; sql;"), ("python", "sql"))
        self.assertEqual(parse_list('["T1", "T2"]'), ("T1", "T2"))
        self.assertEqual(parse_list(["a", " b "]), ("a", "b"))
        self.assertEqual(parse_list(""), ())

    def test_parse_int_list_keeps_bad_entries(self):
        self.assertEqual(parse_int_list("[1,2,3]"), (1, 2, 3))
        self.assertEqual(parse_int_list("1, two"), (1, "two"))
        self.assertEqual(parse_int_list("[1, 2"), (1, 2))
        self.assertEqual(parse_int_list(None), ())

    def test_parse_phases_expands_ranges(self):
        self.assertEqual(parse_phases("1-3"), (1, 2, 3))
        self.assertEqual(parse_phases("2,4"), (2, 4))
        self.assertEqual(parse_phases("[5]"), (5,))

    def test_parse_phases_expands_ranges_inside_lists(self):
        self.assertEqual(parse_phases("1-3, 5"), (1, 2, 3, 5))
        self.assertEqual(parse_phases("1;4-5"), (1, 4, 5))
        self.assertEqual(parse_phases("3-1, x"), ("3-1", "x"))
        self.assertEqual(parse_phases(2), (2,))
        self.assertEqual(parse_phases(""), ())

    def test_parse_phase_list(self):
        self.assertEqual(parse_phase_list("1, 3-5"), [1, 3, 4, 5])
        self.assertEqual(parse_phase_list("2,2,1"), [2, 1])
        self.assertEqual(parse_phase_list("none"), [])


class AttributeTests(unittest.TestCase):
    def test_attribute_variant(self):
        self.assertEqual(parse_attributes('{"a": 1}'), AttributeMap({"a": 1}))
        self.assertEqual(parse_attributes(""), AttributeMap())
        self.assertEqual(parse_attributes("{bad"), InvalidAttributes("{bad"))
        self.assertEqual(parse_attributes("[1, 2]"), InvalidAttributes("[1, 2]"))
        self.assertEqual(parse_attributes({"k": "v"}), AttributeMap({"k": "v"}))


class CoerceFieldTests(unittest.TestCase):
    def test_numeric_defaults_per_field(self):
        self.assertEqual(coerce_field("clients", "priority_level", ""), 1)
        self.assertEqual(coerce_field("workers", "max_load_per_phase", None), 1)
        self.assertIsNone(coerce_field("workers", "qualification_level", ""))
        self.assertIsNone(coerce_field("tasks", "priority_level", ""))
        self.assertEqual(coerce_field("tasks", "duration", "abc"), "abc")

    def test_unknown_field_raises(self):
        with self.assertRaises(ValueError):
            coerce_field("tasks", "colour", "red")
        with self.assertRaises(ValueError):
            coerce_field("teams", "name", "x")


if __name__ == "__main__":
    unittest.main()
