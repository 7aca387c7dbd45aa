#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from piecespan.errors import ConfigurationError
from piecespan.types import utf8_len

# SentencePiece convention: U+2581 "▁" stands for a space inside pieces.
SPACE_SYMBOL = "▁"

NORMALIZER_NAMES = ("identity", "nfkc", "nmt_nfkc", "nfkc_cf")

# Characters the nmt_* rule sets fold into a plain space.
_NMT_SPACES = frozenset(
    {
        "\t", "\n", "\r", "\x0b", "\x0c",
        "\u00a0", "\u1680", "\u2000", "\u2001", "\u2002", "\u2003", "\u2004", "\u2005",
        "\u2006", "\u2007", "\u2008", "\u2009", "\u200a", "\u2028", "\u2029", "\u202f",
        "\u205f", "\u3000",
    }
)


def _is_nmt_dropped(ch: str) -> bool:
    code = ord(ch)
    if code in (0x09, 0x0A, 0x0B, 0x0C, 0x0D):
        return False
    return code < 0x20 or code == 0x7F or ch in ("\u200b", "\ufeff")


def _transform_char(name: str, ch: str) -> str:
    if name == "identity":
        return ch
    if name == "nfkc":
        return unicodedata.normalize("NFKC", ch)
    # nmt_nfkc / nfkc_cf
    if _is_nmt_dropped(ch):
        return ""
    if ch in _NMT_SPACES:
        return " "
    out = unicodedata.normalize("NFKC", ch)
    if name == "nfkc_cf":
        out = out.casefold()
    return out


def _build_trie(keys: Iterable[str]) -> dict:
    root: dict = {}
    for key in keys:
        if not key:
            continue
        node = root
        for ch in key:
            nxt = node.get(ch)
            if not isinstance(nxt, dict):
                nxt = {}
                node[ch] = nxt
            node = nxt
        node["\0"] = key
    return root


def _longest_match(trie: dict, text: str, pos: int) -> Optional[str]:
    node = trie
    best: Optional[str] = None
    j = pos
    n = len(text)
    while j < n:
        nxt = node.get(text[j])
        if not isinstance(nxt, dict):
            break
        node = nxt
        j += 1
        if "\0" in node:
            best = node["\0"]
    return best


@dataclass
class NormalizerSpec:
    name: str = "nmt_nfkc"
    rules: Dict[str, str] = field(default_factory=dict)
    add_dummy_prefix: bool = True
    remove_extra_whitespaces: bool = True
    escape_whitespaces: bool = True
    treat_whitespace_as_suffix: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> "NormalizerSpec":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError("normalizer spec must be an object")
        name = str(data.get("name", "nmt_nfkc"))
        if name not in NORMALIZER_NAMES:
            raise ConfigurationError(f"unknown normalization rule set: {name}")
        rules_raw = data.get("rules") or {}
        if not isinstance(rules_raw, dict):
            raise ConfigurationError("normalizer rules must be an object of string replacements")
        rules: Dict[str, str] = {}
        for src, dst in rules_raw.items():
            if not isinstance(src, str) or not src or not isinstance(dst, str):
                raise ConfigurationError(f"invalid normalizer rule: {src!r} -> {dst!r}")
            rules[src] = dst
        return cls(
            name=name,
            rules=rules,
            add_dummy_prefix=bool(data.get("add_dummy_prefix", True)),
            remove_extra_whitespaces=bool(data.get("remove_extra_whitespaces", True)),
            escape_whitespaces=bool(data.get("escape_whitespaces", True)),
            treat_whitespace_as_suffix=bool(data.get("treat_whitespace_as_suffix", False)),
        )

    @classmethod
    def denormalizer(cls, rules: Dict[str, str], name: str = "identity") -> "NormalizerSpec":
        """Rule-only spec: a denormalizer never touches whitespace."""
        return cls(
            name=name,
            rules=dict(rules),
            add_dummy_prefix=False,
            remove_extra_whitespaces=False,
            escape_whitespaces=False,
            treat_whitespace_as_suffix=False,
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "rules": dict(self.rules),
            "add_dummy_prefix": self.add_dummy_prefix,
            "remove_extra_whitespaces": self.remove_extra_whitespaces,
            "escape_whitespaces": self.escape_whitespaces,
            "treat_whitespace_as_suffix": self.treat_whitespace_as_suffix,
        }


class Normalizer:
    """Rewrites text and keeps a byte-level map back to the input.

    normalize() returns (normalized, offset_map) where offset_map[i] is the
    input byte position of normalized byte i. The map has one extra trailing
    entry for the end of the text, and it never decreases.
    """

    def __init__(self, spec: NormalizerSpec, protected: Sequence[str] = ()) -> None:
        self.spec = spec
        self._rules_trie = _build_trie(spec.rules.keys())
        self._protected_trie = _build_trie(protected)

    def _normalize_prefix(self, text: str, pos: int) -> Tuple[str, int]:
        # User-defined pieces pass through untouched.
        hit = _longest_match(self._protected_trie, text, pos)
        if hit is not None:
            return hit, len(hit)
        hit = _longest_match(self._rules_trie, text, pos)
        if hit is not None:
            return self.spec.rules[hit], len(hit)
        return _transform_char(self.spec.name, text[pos]), 1

    def normalize(self, text: str) -> Tuple[str, List[int]]:
        spec = self.spec
        offs = [0]
        for ch in text:
            offs.append(offs[-1] + utf8_len(ch))

        n = len(text)
        i = 0
        if spec.remove_extra_whitespaces:
            while i < n:
                sp, k = self._normalize_prefix(text, i)
                if sp != " ":
                    break
                i += k
        if i >= n:
            return "", [offs[i]]

        out: List[str] = []
        norm_to_orig: List[int] = []
        consumed = offs[i]
        space = SPACE_SYMBOL if spec.escape_whitespaces else " "
        space_len = utf8_len(space)

        def add_ws() -> None:
            out.append(space)
            norm_to_orig.extend([consumed] * space_len)

        if not spec.treat_whitespace_as_suffix and spec.add_dummy_prefix:
            add_ws()

        is_prev_space = spec.remove_extra_whitespaces
        while i < n:
            sp, k = self._normalize_prefix(text, i)
            if is_prev_space:
                sp = sp.lstrip(" ")
            if sp:
                for ch in sp:
                    if spec.escape_whitespaces and ch == " ":
                        out.append(SPACE_SYMBOL)
                        norm_to_orig.extend([consumed] * space_len)
                    else:
                        out.append(ch)
                        norm_to_orig.extend([consumed] * utf8_len(ch))
                is_prev_space = sp.endswith(" ")
            i += k
            consumed = offs[i]
            if not spec.remove_extra_whitespaces:
                is_prev_space = False

        if spec.remove_extra_whitespaces:
            while out and out[-1] == space:
                length = len(norm_to_orig) - space_len
                consumed = norm_to_orig[length]
                out.pop()
                del norm_to_orig[length:]

        if spec.treat_whitespace_as_suffix and spec.add_dummy_prefix:
            add_ws()

        norm_to_orig.append(consumed)
        return "".join(out), norm_to_orig
