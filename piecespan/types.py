#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

# Raw segmentation output: ordered (piece, id) pairs.
EncodeResult = List[Tuple[str, int]]
NBestResult = List[Tuple[EncodeResult, float]]


def utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


@dataclass
class SpanPiece:
    """One piece with its surface and [begin, end) byte span.

    Offsets point into the original input on the encode side and into the
    reconstructed text on the decode side.
    """

    piece: str
    id: int
    surface: str = ""
    begin: int = 0
    end: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "piece": self.piece,
            "id": self.id,
            "surface": self.surface,
            "begin": self.begin,
            "end": self.end,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "SpanPiece":
        return cls(
            piece=str(data.get("piece", "")),
            id=int(data.get("id", 0)),  # type: ignore[arg-type]
            surface=str(data.get("surface", "")),
            begin=int(data.get("begin", 0)),  # type: ignore[arg-type]
            end=int(data.get("end", 0)),  # type: ignore[arg-type]
        )


@dataclass
class AnnotatedText:
    text: str = ""
    pieces: List[SpanPiece] = field(default_factory=list)
    score: Optional[float] = None

    def piece_strs(self) -> List[str]:
        return [p.piece for p in self.pieces]

    def ids(self) -> List[int]:
        return [p.id for p in self.pieces]

    def surfaces(self) -> List[str]:
        return [p.surface for p in self.pieces]

    def spans(self) -> List[Tuple[int, int]]:
        return [(p.begin, p.end) for p in self.pieces]

    def __len__(self) -> int:
        return len(self.pieces)

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "text": self.text,
            "pieces": [p.to_dict() for p in self.pieces],
        }
        if self.score is not None:
            out["score"] = self.score
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "AnnotatedText":
        raw_pieces = data.get("pieces") or []
        pieces = [SpanPiece.from_dict(p) for p in raw_pieces if isinstance(p, dict)]  # type: ignore[union-attr]
        score = data.get("score")
        return cls(
            text=str(data.get("text", "")),
            pieces=pieces,
            score=(float(score) if score is not None else None),  # type: ignore[arg-type]
        )


@dataclass
class NBestText:
    nbests: List[AnnotatedText] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.nbests)

    def __iter__(self):
        return iter(self.nbests)

    def __getitem__(self, index: int) -> AnnotatedText:
        return self.nbests[index]

    def to_dict(self) -> Dict[str, object]:
        return {"nbests": [n.to_dict() for n in self.nbests]}


def join_pieces(pieces: Sequence[SpanPiece]) -> str:
    return "".join(p.surface for p in pieces)
