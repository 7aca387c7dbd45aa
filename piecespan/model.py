#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unigram segmentation model over a scored piece table.

The model only chooses pieces; offsets and surfaces are rebuilt by
piecespan.annotate / piecespan.reconstruct. Lookup tables are built once in
__init__ and never mutated afterwards, so one instance can serve many callers.
Sampling draws from the model's own random.Random; share an instance across
threads only with external locking.
"""

from __future__ import annotations

import math
import random
import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from piecespan.errors import ConfigurationError, IntegrityError
from piecespan.types import EncodeResult, NBestResult

NORMAL = "normal"
UNKNOWN = "unknown"
CONTROL = "control"
USER_DEFINED = "user_defined"
BYTE = "byte"
UNUSED = "unused"
PIECE_TYPES = (NORMAL, UNKNOWN, CONTROL, USER_DEFINED, BYTE, UNUSED)

DEFAULT_UNK_SURFACE = " \u2047 "
UNK_PENALTY = 10.0
MAX_NBEST_SIZE = 1024

_BYTE_PIECE_RE = re.compile(r"^<0x([0-9A-F]{2})>$")


def byte_to_piece(value: int) -> str:
    return f"<0x{value & 0xFF:02X}>"


def piece_to_byte(piece: str) -> int:
    m = _BYTE_PIECE_RE.match(piece)
    if m is None:
        return -1
    return int(m.group(1), 16)


@dataclass(frozen=True)
class ModelPiece:
    piece: str
    score: float = 0.0
    type: str = NORMAL

    def to_dict(self) -> Dict[str, object]:
        return {"piece": self.piece, "score": self.score, "type": self.type}


@dataclass(frozen=True)
class TrainerSpec:
    model_type: str = "unigram"
    byte_fallback: bool = False
    unk_piece: str = "<unk>"
    bos_piece: str = "<s>"
    eos_piece: str = "</s>"
    pad_piece: str = "<pad>"
    unk_surface: str = DEFAULT_UNK_SURFACE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> "TrainerSpec":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError("trainer spec must be an object")
        model_type = str(data.get("model_type", "unigram"))
        if model_type != "unigram":
            raise ConfigurationError(f"unsupported model type: {model_type}")
        return cls(
            model_type=model_type,
            byte_fallback=bool(data.get("byte_fallback", False)),
            unk_piece=str(data.get("unk_piece", "<unk>")),
            bos_piece=str(data.get("bos_piece", "<s>")),
            eos_piece=str(data.get("eos_piece", "</s>")),
            pad_piece=str(data.get("pad_piece", "<pad>")),
            unk_surface=str(data.get("unk_surface", DEFAULT_UNK_SURFACE)),
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "model_type": self.model_type,
            "byte_fallback": self.byte_fallback,
            "unk_piece": self.unk_piece,
            "bos_piece": self.bos_piece,
            "eos_piece": self.eos_piece,
            "pad_piece": self.pad_piece,
            "unk_surface": self.unk_surface,
        }


# Lattice edge: (end position, piece id, score)
_Edge = Tuple[int, int, float]


class UnigramModel:
    def __init__(self, pieces: Sequence[ModelPiece], trainer: Optional[TrainerSpec] = None, seed: Optional[int] = None) -> None:
        self.trainer = trainer or TrainerSpec()
        self._pieces: Tuple[ModelPiece, ...] = tuple(pieces)
        if not self._pieces:
            raise ConfigurationError("piece table is empty")

        self._piece_to_id: Dict[str, int] = {}
        self._unk_id = -1
        for pid, mp in enumerate(self._pieces):
            if mp.type not in PIECE_TYPES:
                raise ConfigurationError(f"unknown piece type {mp.type!r} for {mp.piece!r}")
            if not mp.piece:
                raise ConfigurationError(f"empty piece at id {pid}")
            if mp.piece in self._piece_to_id:
                raise ConfigurationError(f"duplicate piece {mp.piece!r}")
            self._piece_to_id[mp.piece] = pid
            if mp.type == UNKNOWN:
                if self._unk_id >= 0:
                    raise ConfigurationError("more than one unknown piece")
                self._unk_id = pid
        if self._unk_id < 0:
            raise ConfigurationError("unknown piece is not defined")

        if self.trainer.byte_fallback:
            missing = [b for b in range(256) if self._pieces_type(byte_to_piece(b)) != BYTE]
            if missing:
                raise ConfigurationError(f"byte_fallback needs all 256 byte pieces, {len(missing)} missing")

        normal_scores = [mp.score for mp in self._pieces if mp.type == NORMAL]
        self._min_score = min(normal_scores) if normal_scores else 0.0
        self._max_score = max(normal_scores) if normal_scores else 0.0

        self._trie: dict = {}
        for pid, mp in enumerate(self._pieces):
            if mp.type not in (NORMAL, USER_DEFINED):
                continue
            node = self._trie
            for ch in mp.piece:
                node = node.setdefault(ch, {})
            node["\0"] = pid

        self._rng = random.Random(seed)

    def _pieces_type(self, piece: str) -> Optional[str]:
        pid = self._piece_to_id.get(piece)
        if pid is None:
            return None
        return self._pieces[pid].type

    # ----------------------------
    # Vocabulary lookups
    # ----------------------------

    @property
    def pieces(self) -> Tuple[ModelPiece, ...]:
        return self._pieces

    def piece_size(self) -> int:
        return len(self._pieces)

    def piece_to_id(self, piece: str) -> int:
        return self._piece_to_id.get(piece, self._unk_id)

    def id_to_piece(self, pid: int) -> str:
        return self._get(pid).piece

    def _get(self, pid: int) -> ModelPiece:
        if pid < 0 or pid >= len(self._pieces):
            raise IntegrityError(f"piece id out of range: {pid}")
        return self._pieces[pid]

    def get_score(self, pid: int) -> float:
        return self._get(pid).score

    def is_control(self, pid: int) -> bool:
        return self._get(pid).type == CONTROL

    def is_unknown(self, pid: int) -> bool:
        return self._get(pid).type == UNKNOWN

    def is_unused(self, pid: int) -> bool:
        return self._get(pid).type == UNUSED

    def is_byte(self, pid: int) -> bool:
        return self._get(pid).type == BYTE

    def is_user_defined(self, pid: int) -> bool:
        return self._get(pid).type == USER_DEFINED

    def user_defined_pieces(self) -> List[str]:
        return [mp.piece for mp in self._pieces if mp.type == USER_DEFINED]

    def byte_fallback_enabled(self) -> bool:
        return self.trainer.byte_fallback

    @property
    def unk_id(self) -> int:
        return self._unk_id

    @property
    def unk_piece(self) -> str:
        return self.trainer.unk_piece

    @property
    def bos_piece(self) -> str:
        return self.trainer.bos_piece

    @property
    def eos_piece(self) -> str:
        return self.trainer.eos_piece

    @property
    def pad_piece(self) -> str:
        return self.trainer.pad_piece

    def set_random_seed(self, seed: Optional[int]) -> None:
        self._rng.seed(seed)

    def draw_index(self, weights: Sequence[float]) -> int:
        """Pick an index with probability proportional to its weight."""
        return self._rng.choices(range(len(weights)), weights=weights, k=1)[0]

    # ----------------------------
    # Vocabulary restriction
    # ----------------------------

    def restrict_vocabulary(self, valid_vocab: Iterable[str]) -> "UnigramModel":
        """Return a copy where NORMAL pieces outside valid_vocab become UNUSED.

        Single-character pieces always stay usable so any text can still be
        segmented.
        """
        vocab: Set[str] = set(valid_vocab)
        out: List[ModelPiece] = []
        for mp in self._pieces:
            if mp.type in (NORMAL, UNUSED):
                keep = mp.piece in vocab or len(mp.piece) == 1
                mp = replace(mp, type=NORMAL if keep else UNUSED)
            out.append(mp)
        return self._derive(out)

    def reset_vocabulary(self) -> "UnigramModel":
        out = [replace(mp, type=NORMAL) if mp.type == UNUSED else mp for mp in self._pieces]
        return self._derive(out)

    def _derive(self, pieces: Sequence[ModelPiece]) -> "UnigramModel":
        model = UnigramModel(pieces, self.trainer)
        model._rng = self._rng
        return model

    # ----------------------------
    # Lattice
    # ----------------------------

    def _edges_from(self, text: str, pos: int) -> List[_Edge]:
        edges: List[_Edge] = []
        has_single = False
        node = self._trie
        j = pos
        n = len(text)
        while j < n:
            nxt = node.get(text[j])
            if nxt is None:
                break
            node = nxt
            j += 1
            pid = node.get("\0")
            if pid is None:
                continue
            mp = self._pieces[pid]
            if mp.type == USER_DEFINED:
                score = (j - pos) * self._max_score - 0.1
            else:
                score = mp.score
            edges.append((j, pid, score))
            if j == pos + 1:
                has_single = True
        if not has_single:
            edges.append((pos + 1, self._unk_id, self._min_score - UNK_PENALTY))
        return edges

    def _lattice(self, text: str) -> List[List[_Edge]]:
        return [self._edges_from(text, i) for i in range(len(text))]

    def encode(self, normalized: str) -> EncodeResult:
        if not normalized:
            return []
        n = len(normalized)
        lattice = self._lattice(normalized)
        best = [-math.inf] * (n + 1)
        back: List[Optional[Tuple[int, int]]] = [None] * (n + 1)
        best[0] = 0.0
        for i in range(n):
            if best[i] == -math.inf:
                continue
            for j, pid, score in lattice[i]:
                s = best[i] + score
                if s > best[j]:
                    best[j] = s
                    back[j] = (i, pid)
        return self._backtrack(normalized, back)

    def _backtrack(self, text: str, back: Sequence[Optional[Tuple[int, int]]]) -> EncodeResult:
        out: EncodeResult = []
        pos = len(text)
        while pos > 0:
            link = back[pos]
            if link is None:
                raise IntegrityError(f"lattice has no path to position {pos}")
            prev, pid = link
            out.append((text[prev:pos], pid))
            pos = prev
        out.reverse()
        return out

    def is_nbest_available(self) -> bool:
        return True

    def is_sample_available(self) -> bool:
        return True

    def n_best(self, normalized: str, nbest_size: int) -> NBestResult:
        """Top-k segmentations, best first."""
        k = max(1, min(int(nbest_size), MAX_NBEST_SIZE))
        if not normalized:
            return [([], 0.0)]
        n = len(normalized)
        lattice = self._lattice(normalized)
        # beams[pos] entries: (score, prev_pos, prev_rank, piece_id)
        beams: List[List[Tuple[float, int, int, int]]] = [[] for _ in range(n + 1)]
        beams[0] = [(0.0, -1, -1, -1)]
        for i in range(n):
            beam = sorted(beams[i], key=lambda e: -e[0])[:k]
            beams[i] = beam
            for rank, (score, _p, _r, _pid) in enumerate(beam):
                for j, pid, edge_score in lattice[i]:
                    beams[j].append((score + edge_score, i, rank, pid))
        final = sorted(beams[n], key=lambda e: -e[0])[:k]

        results: NBestResult = []
        for score, prev, rank, pid in final:
            pieces: EncodeResult = []
            end = n
            while prev >= 0:
                pieces.append((normalized[prev:end], pid))
                end = prev
                score_prev, prev, rank, pid = beams[prev][rank]
            pieces.reverse()
            results.append((pieces, score))
        return results

    def sample(self, normalized: str, alpha: float) -> EncodeResult:
        """Draw one segmentation with probability proportional to exp(alpha * score)."""
        if not normalized:
            return []
        n = len(normalized)
        lattice = self._lattice(normalized)
        incoming: List[List[Tuple[int, int, float]]] = [[] for _ in range(n + 1)]
        for i, edges in enumerate(lattice):
            for j, pid, score in edges:
                incoming[j].append((i, pid, alpha * score))

        forward = [-math.inf] * (n + 1)
        forward[0] = 0.0
        for j in range(1, n + 1):
            forward[j] = _logsumexp([forward[i] + s for i, _pid, s in incoming[j]])

        out: EncodeResult = []
        pos = n
        while pos > 0:
            cands = incoming[pos]
            weights = [math.exp(forward[i] + s - forward[pos]) for i, _pid, s in cands]
            i, pid, _s = self._rng.choices(cands, weights=weights, k=1)[0]
            out.append((normalized[i:pos], pid))
            pos = i
        out.reverse()
        return out

    def verify_outputs_equivalent(self, expected: str, actual: str) -> bool:
        if expected == actual:
            return True

        def total(s: str) -> float:
            return sum(self.get_score(self.piece_to_id(w)) for w in s.split())

        return abs(total(expected) - total(actual)) <= 1e-6


def _logsumexp(values: Sequence[float]) -> float:
    top = max(values) if values else -math.inf
    if top == -math.inf:
        return -math.inf
    return top + math.log(sum(math.exp(v - top) for v in values))
