#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import List, Optional, Sequence

from piecespan.errors import EncodingError, IntegrityError
from piecespan.model import UnigramModel, byte_to_piece
from piecespan.options import ExtraOption, apply_extra_options
from piecespan.types import AnnotatedText, EncodeResult, SpanPiece, utf8_len


def _surface(data: bytes, begin: int, end: int) -> str:
    try:
        return data[begin:end].decode("utf-8")
    except UnicodeDecodeError as ex:
        raise EncodingError(f"byte span [{begin}, {end}) is not valid UTF-8") from ex


def annotate(
    original: str,
    normalized: str,
    offset_map: Sequence[int],
    result: EncodeResult,
    model: UnigramModel,
    options: Sequence[ExtraOption] = (),
    score: Optional[float] = None,
) -> AnnotatedText:
    """Turn raw (piece, id) pairs into SpanPieces with spans in `original`.

    `offset_map` maps each byte of `normalized` (plus one end sentinel) to a
    byte position in `original`. Unknown pieces are split into <0xNN> byte
    pieces when the model has byte fallback; otherwise consecutive unknown
    pieces are merged into one record.
    """
    data = original.encode("utf-8")
    norm_size = utf8_len(normalized)
    map_size = len(offset_map)
    if map_size < norm_size + 1:
        raise IntegrityError(f"offset map has {map_size} entries for {norm_size} normalized bytes")

    pieces: List[SpanPiece] = []
    consumed = 0
    is_prev_unk = False
    for piece, pid in result:
        if not piece:
            raise IntegrityError("empty piece is not allowed")
        is_unk = model.is_unknown(pid)

        if model.is_control(pid):
            # No source surface for control symbols.
            pos = offset_map[consumed]
            pieces.append(SpanPiece(piece=piece, id=pid, surface="", begin=pos, end=pos))
            is_prev_unk = False
            continue

        size = utf8_len(piece)
        begin = consumed
        end = consumed + size
        if end >= map_size:
            raise IntegrityError(f"piece {piece!r} runs past the normalized text ({end} >= {map_size})")
        orig_begin = offset_map[begin]
        orig_end = offset_map[end]
        if orig_begin > len(data) or orig_end > len(data) or orig_begin > orig_end:
            raise IntegrityError(f"offset map gives invalid span [{orig_begin}, {orig_end}) for {piece!r}")
        surface = _surface(data, orig_begin, orig_end)

        if is_unk and model.byte_fallback_enabled():
            raw = piece.encode("utf-8")
            last = len(raw) - 1
            for i, b in enumerate(raw):
                bp = byte_to_piece(b)
                if i == last:
                    pieces.append(SpanPiece(piece=bp, id=model.piece_to_id(bp), surface=surface, begin=orig_begin, end=orig_end))
                else:
                    pieces.append(SpanPiece(piece=bp, id=model.piece_to_id(bp), surface="", begin=orig_begin, end=orig_begin))
        elif is_prev_unk and is_unk:
            # Merged pieces stay unknown: known pieces never contain unknown characters.
            prev = pieces[-1]
            prev.piece += piece
            prev.surface += surface
            prev.end = orig_end
        else:
            pieces.append(SpanPiece(piece=piece, id=pid, surface=surface, begin=orig_begin, end=orig_end))

        consumed += size
        is_prev_unk = is_unk

    if consumed != norm_size:
        raise IntegrityError(f"all normalized characters are not consumed ({consumed} != {norm_size})")

    apply_extra_options(options, pieces, model, end_offset=len(data))
    return AnnotatedText(text=original, pieces=pieces, score=score)
