#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Lossless run-length layer for token streams.

A run of N >= 2 identical tokens is written as

    tok (#startrepeat) d1 .. dk (#endrepeat)

where d1..dk are the base-10 digits of N, most significant first. Expansion
keeps the leading `tok` and adds N - 1 copies, for both piece strings and ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Hashable, List, Sequence, Tuple, TypeVar

from piecespan.digits import DIGIT_TOKENS, count_from_tokens, count_tokens, decode_count, encode_count
from piecespan.errors import ConfigurationError, IntegrityError

START_REPEAT = "(#startrepeat)"
END_REPEAT = "(#endrepeat)"
MARKER_TOKENS = (START_REPEAT, END_REPEAT)

# Largest count a repeat span may carry (nine digits). Longer runs are split.
MAX_REPEAT_COUNT = 999_999_999

T = TypeVar("T", bound=Hashable)


def _compress(tokens: Sequence[T], start: T, end: T, digits_for: Callable[[int], List[T]]) -> List[T]:
    out: List[T] = []
    i = 0
    n = len(tokens)
    while i < n:
        tok = tokens[i]
        j = i + 1
        while j < n and tokens[j] == tok:
            j += 1
        count = j - i
        while count > 0:
            chunk = min(count, MAX_REPEAT_COUNT)
            out.append(tok)
            if chunk > 1:
                out.append(start)
                out.extend(digits_for(chunk))
                out.append(end)
            count -= chunk
        i = j
    return out


def _expand(tokens: Sequence[T], start: T, end: T, count_of: Callable[[Sequence[T]], int]) -> List[T]:
    out: List[T] = []
    i = 0
    n = len(tokens)
    while i < n:
        tok = tokens[i]
        if tok == end:
            raise IntegrityError(f"repeat end marker without start at position {i}")
        if tok != start:
            out.append(tok)
            i += 1
            continue
        if not out:
            raise IntegrityError("repeat start marker has no preceding symbol")
        j = i + 1
        while j < n and tokens[j] != end:
            if tokens[j] == start:
                raise IntegrityError(f"nested repeat start marker at position {j}")
            j += 1
        if j >= n:
            raise IntegrityError(f"repeat start marker at position {i} is not closed")
        digits = tokens[i + 1 : j]
        if not digits:
            raise IntegrityError(f"empty repeat count at position {i}")
        if len(digits) > len(str(MAX_REPEAT_COUNT)):
            raise IntegrityError(f"repeat count at position {i} has {len(digits)} digits")
        count = count_of(digits)
        if count < 1 or count > MAX_REPEAT_COUNT:
            raise IntegrityError(f"invalid repeat count {count} at position {i}")
        symbol = out[-1]
        out.extend([symbol] * (count - 1))
        i = j + 1
    return out


def compress_repeats(tokens: Sequence[str]) -> List[str]:
    return _compress(list(tokens), START_REPEAT, END_REPEAT, count_tokens)


def expand_repeats(tokens: Sequence[str]) -> List[str]:
    return _expand(list(tokens), START_REPEAT, END_REPEAT, count_from_tokens)


def has_repeat_markers(tokens: Sequence[object]) -> bool:
    return any(t in MARKER_TOKENS for t in tokens)


@dataclass(frozen=True)
class RepeatIds:
    """Vocabulary ids of the repeat markers and the ten digit pieces."""

    start: int
    end: int
    digits: Tuple[int, ...]

    @classmethod
    def from_lookup(cls, piece_to_id: Callable[[str], int], is_unknown: Callable[[int], bool]) -> "RepeatIds":
        missing: List[str] = []
        ids: List[int] = []
        for piece in MARKER_TOKENS + DIGIT_TOKENS:
            pid = piece_to_id(piece)
            if is_unknown(pid):
                missing.append(piece)
            ids.append(pid)
        if missing:
            raise ConfigurationError(f"repeat pieces are not in the vocabulary: {', '.join(missing)}")
        return cls(start=ids[0], end=ids[1], digits=tuple(ids[2:]))

    def digit_ids(self, value: int) -> List[int]:
        return [self.digits[d] for d in encode_count(value)]

    def value_of(self, ids: Sequence[int]) -> int:
        digits: List[int] = []
        for pid in ids:
            try:
                digits.append(self.digits.index(pid))
            except ValueError:
                raise IntegrityError(f"non-digit id inside repeat span: {pid}") from None
        return decode_count(digits)


def compress_repeat_ids(ids: Sequence[int], repeat_ids: RepeatIds) -> List[int]:
    return _compress(list(ids), repeat_ids.start, repeat_ids.end, repeat_ids.digit_ids)


def expand_repeat_ids(ids: Sequence[int], repeat_ids: RepeatIds) -> List[int]:
    # Same count semantics as expand_repeats: N total occurrences, not N + 1.
    return _expand(list(ids), repeat_ids.start, repeat_ids.end, repeat_ids.value_of)
