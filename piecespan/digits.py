#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Iterable, List, Sequence

from piecespan.errors import IntegrityError

DIGIT_TOKENS = ("0", "1", "2", "3", "4", "5", "6", "7", "8", "9")


def encode_count(value: int) -> List[int]:
    """Split a non-negative integer into base-10 digits, most significant first.

    encode_count(0) is empty; repeat compression never asks for it since runs
    start at length 2.
    """
    if value < 0:
        raise ValueError("negative count is not supported")
    digits: List[int] = []
    v = int(value)
    while v > 0:
        digits.append(v % 10)
        v //= 10
    digits.reverse()
    return digits


def decode_count(digits: Sequence[int]) -> int:
    total = 0
    for d in digits:
        if not isinstance(d, int) or d < 0 or d > 9:
            raise IntegrityError(f"invalid digit in repeat count: {d!r}")
        total = total * 10 + d
    return total


def count_tokens(value: int) -> List[str]:
    return [DIGIT_TOKENS[d] for d in encode_count(value)]


def count_from_tokens(tokens: Iterable[str]) -> int:
    digits: List[int] = []
    for tok in tokens:
        if tok not in DIGIT_TOKENS:
            raise IntegrityError(f"non-digit token inside repeat span: {tok!r}")
        digits.append(DIGIT_TOKENS.index(tok))
    return decode_count(digits)
