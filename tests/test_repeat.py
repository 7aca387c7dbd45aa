#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import unittest
from unittest import mock

from piecespan.digits import count_from_tokens, count_tokens, decode_count, encode_count
from piecespan.errors import ConfigurationError, IntegrityError
from piecespan.repeat import (
    END_REPEAT,
    MAX_REPEAT_COUNT,
    START_REPEAT,
    RepeatIds,
    compress_repeat_ids,
    compress_repeats,
    expand_repeat_ids,
    expand_repeats,
    has_repeat_markers,
)

S = START_REPEAT
E = END_REPEAT


class DigitCodecTests(unittest.TestCase):
    def test_encode_most_significant_first(self) -> None:
        self.assertEqual(encode_count(12), [1, 2])
        self.assertEqual(encode_count(7), [7])
        self.assertEqual(encode_count(100), [1, 0, 0])

    def test_zero_is_empty(self) -> None:
        self.assertEqual(encode_count(0), [])
        self.assertEqual(decode_count([]), 0)

    def test_negative_rejected(self) -> None:
        with self.assertRaises(ValueError):
            encode_count(-1)

    def test_roundtrip_sample(self) -> None:
        for n in (1, 9, 10, 99, 1234, 999_999_999):
            self.assertEqual(decode_count(encode_count(n)), n)

    def test_token_digits(self) -> None:
        self.assertEqual(count_tokens(12), ["1", "2"])
        self.assertEqual(count_from_tokens(["1", "2"]), 12)
        with self.assertRaises(IntegrityError):
            count_from_tokens(["1", "x"])
        with self.assertRaises(IntegrityError):
            decode_count([1, 10])


class RepeatTokenTests(unittest.TestCase):
    def test_run_of_three(self) -> None:
        tokens = ["▁the", "▁the", "▁the", "▁cat"]
        packed = compress_repeats(tokens)
        self.assertEqual(packed, ["▁the", S, "3", E, "▁cat"])
        self.assertEqual(expand_repeats(packed), tokens)

    def test_run_of_twelve_digits_in_order(self) -> None:
        packed = compress_repeats(["x"] * 12)
        self.assertEqual(packed, ["x", S, "1", "2", E])
        self.assertEqual(expand_repeats(packed), ["x"] * 12)

    def test_no_runs_unchanged(self) -> None:
        tokens = ["a", "b", "a", "b"]
        self.assertEqual(compress_repeats(tokens), tokens)
        self.assertEqual(compress_repeats(["a"]), ["a"])
        self.assertEqual(compress_repeats([]), [])
        self.assertFalse(has_repeat_markers(tokens))

    def test_several_runs(self) -> None:
        tokens = ["a", "a", "b", "c", "c", "c", "c"]
        packed = compress_repeats(tokens)
        self.assertEqual(packed, ["a", S, "2", E, "b", "c", S, "4", E])
        self.assertTrue(has_repeat_markers(packed))
        self.assertEqual(expand_repeats(packed), tokens)

    def test_compress_after_expand_is_stable(self) -> None:
        for tokens in (["a"] * 5 + ["b"], ["q", "q", "r", "r", "r"], ["z"]):
            packed = compress_repeats(tokens)
            self.assertEqual(compress_repeats(expand_repeats(packed)), packed)

    def test_count_one_keeps_symbol(self) -> None:
        self.assertEqual(expand_repeats(["a", S, "1", E]), ["a"])

    def test_count_limit(self) -> None:
        # Ten digits would ask for ten billion copies.
        with self.assertRaises(IntegrityError):
            expand_repeats(["a", S] + ["9"] * 10 + [E])
        with self.assertRaises(IntegrityError):
            expand_repeats(["a", S] + list(str(MAX_REPEAT_COUNT + 1)) + [E])
        with self.assertRaises(IntegrityError):
            expand_repeat_ids([3, 100] + [10] * 10 + [101], RepeatIds(start=100, end=101, digits=tuple(range(10, 20))))

    def test_long_runs_are_split(self) -> None:
        with mock.patch("piecespan.repeat.MAX_REPEAT_COUNT", 5):
            packed = compress_repeats(["a"] * 7)
            self.assertEqual(packed, ["a", S, "5", E, "a", S, "2", E])
            self.assertEqual(expand_repeats(packed), ["a"] * 7)

    def test_malformed_streams(self) -> None:
        bad = [
            [S, "2", E],
            ["a", E],
            ["a", S, "2"],
            ["a", S, E],
            ["a", S, "x", E],
            ["a", S, "0", E],
            ["a", S, "2", S, "3", E],
        ]
        for tokens in bad:
            with self.subTest(tokens=tokens):
                with self.assertRaises(IntegrityError):
                    expand_repeats(tokens)


class RepeatIdTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rids = RepeatIds(start=100, end=101, digits=tuple(range(10, 20)))

    def test_id_runs_use_token_semantics(self) -> None:
        ids = [5, 5, 5, 7]
        packed = compress_repeat_ids(ids, self.rids)
        self.assertEqual(packed, [5, 100, 13, 101, 7])
        # N in the digits means N total occurrences.
        self.assertEqual(expand_repeat_ids(packed, self.rids), ids)

    def test_id_run_of_twelve(self) -> None:
        packed = compress_repeat_ids([3] * 12, self.rids)
        self.assertEqual(packed, [3, 100, 11, 12, 101])
        self.assertEqual(expand_repeat_ids(packed, self.rids), [3] * 12)

    def test_non_digit_id_in_span(self) -> None:
        with self.assertRaises(IntegrityError):
            expand_repeat_ids([3, 100, 42, 101], self.rids)

    def test_lookup_requires_every_piece(self) -> None:
        vocab = {S: 1, E: 2}
        vocab.update({str(d): 10 + d for d in range(10)})
        rids = RepeatIds.from_lookup(lambda p: vocab.get(p, 0), lambda i: i == 0)
        self.assertEqual(rids.start, 1)
        self.assertEqual(rids.digits[9], 19)

        del vocab["7"]
        with self.assertRaises(ConfigurationError):
            RepeatIds.from_lookup(lambda p: vocab.get(p, 0), lambda i: i == 0)


if __name__ == "__main__":
    unittest.main()
