#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Decode side: rebuild text from pieces and give every piece its surface.

Byte pieces (<0xNN>) are grouped, decoded as UTF-8 and re-encoded one code
point at a time, so a character split into N byte pieces comes back as N
records where only the last one carries the character. This mirrors how
piecespan.annotate decomposes unknown characters.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from piecespan.errors import EncodingError, IntegrityError
from piecespan.model import UnigramModel, piece_to_byte
from piecespan.normalizer import SPACE_SYMBOL, Normalizer, NormalizerSpec
from piecespan.options import ExtraOption, apply_extra_options
from piecespan.types import AnnotatedText, SpanPiece, utf8_len

REPLACEMENT_CHAR = "\ufffd"


def _utf8_size(lead: int) -> int:
    if lead < 0x80:
        return 1
    if 0xC2 <= lead <= 0xDF:
        return 2
    if 0xE0 <= lead <= 0xEF:
        return 3
    if 0xF0 <= lead <= 0xF4:
        return 4
    return 0


def iter_utf8(data: bytes) -> Iterator[Tuple[Optional[str], int]]:
    """Yield (char, size) per code point; invalid bytes yield (None, 1)."""
    i = 0
    n = len(data)
    while i < n:
        size = _utf8_size(data[i])
        if size and i + size <= n:
            try:
                ch = data[i : i + size].decode("utf-8")
            except UnicodeDecodeError:
                pass
            else:
                yield ch, size
                i += size
                continue
        yield None, 1
        i += 1


def decode_piece_surface(
    piece: str,
    pid: int,
    model: UnigramModel,
    spec: NormalizerSpec,
    is_bos_ws: bool,
    is_eos_ws: bool,
) -> str:
    if model.is_control(pid):
        return ""
    if model.is_unknown(pid):
        if model.id_to_piece(pid) == piece:
            return model.trainer.unk_surface
        return piece

    # The normalizer only injects a marker when it adds a dummy prefix or collapses spaces.
    if spec.add_dummy_prefix or spec.remove_extra_whitespaces:
        if not spec.treat_whitespace_as_suffix:
            if is_bos_ws and piece.startswith(SPACE_SYMBOL):
                piece = piece[len(SPACE_SYMBOL):]
        elif is_eos_ws and piece.endswith(SPACE_SYMBOL):
            piece = piece[: -len(SPACE_SYMBOL)]
    return piece.replace(SPACE_SYMBOL, " ")


class _TextBuilder:
    def __init__(self, records: List[SpanPiece]) -> None:
        self.records = records
        self.buf = bytearray()

    def set_surface(self, index: int, surface: str) -> None:
        rec = self.records[index]
        rec.surface = surface
        rec.begin = len(self.buf)
        self.buf.extend(surface.encode("utf-8"))
        rec.end = len(self.buf)

    def process_byte_pieces(self, begin: int, end: int) -> None:
        if begin >= end:
            return
        raw = bytearray()
        for i in range(begin, end):
            value = piece_to_byte(self.records[i].piece)
            if value < 0:
                raise EncodingError(f"not a byte piece: {self.records[i].piece!r}")
            raw.append(value)
        i = begin
        for ch, _size in iter_utf8(bytes(raw)):
            if ch is None:
                self.set_surface(i, REPLACEMENT_CHAR)
                i += 1
                continue
            n = utf8_len(ch)
            for j in range(n):
                self.set_surface(i, ch if j == n - 1 else "")
                i += 1
        if i != end:
            raise IntegrityError(f"byte pieces [{begin}, {end}) decoded into {i - begin} records")


def remap_denormalized(text: str, records: Sequence[SpanPiece], denormalizer: Normalizer) -> str:
    """Point every record at the denormalized text and return that text.

    The denormalizer maps denormalized bytes back to the decoded text; the
    first occurrence of each decoded position is inverted and each record's
    old surface is walked byte by byte to find its new byte range.
    """
    denorm_text, norm_to_orig = denormalizer.normalize(text)
    denorm = denorm_text.encode("utf-8")
    orig_to_norm: Dict[int, int] = {}
    for i, orig in enumerate(norm_to_orig):
        orig_to_norm.setdefault(orig, i)

    text_pos = 0
    out_pos = 0
    last_consumed = -1
    for rec in records:
        old_size = utf8_len(rec.surface)
        new_surface = bytearray()
        for j in range(text_pos, text_pos + old_size):
            idx = orig_to_norm.get(j + 1)
            if idx is not None:
                new_surface.extend(denorm[last_consumed + 1 : idx])
                last_consumed = idx - 1
        text_pos += old_size
        try:
            rec.surface = new_surface.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise EncodingError(f"denormalized surface for {rec.piece!r} splits a character") from ex
        rec.begin = out_pos
        out_pos += len(new_surface)
        rec.end = out_pos
    return denorm_text


def reconstruct(
    items: Sequence[Tuple[str, int]],
    model: UnigramModel,
    spec: NormalizerSpec,
    options: Sequence[ExtraOption] = (),
    denormalizer: Optional[Normalizer] = None,
) -> AnnotatedText:
    records = [SpanPiece(piece=piece, id=pid) for piece, pid in items]
    apply_extra_options(options, records, model)

    builder = _TextBuilder(records)
    last = len(records) - 1
    byte_start = 0
    for i, rec in enumerate(records):
        if model.is_byte(rec.id):
            continue
        builder.process_byte_pieces(byte_start, i)
        byte_start = i + 1
        surface = decode_piece_surface(rec.piece, rec.id, model, spec, not builder.buf, i == last)
        builder.set_surface(i, surface)
    builder.process_byte_pieces(byte_start, len(records))

    text = builder.buf.decode("utf-8")
    if denormalizer is not None:
        text = remap_denormalized(text, records, denormalizer)
    return AnnotatedText(text=text, pieces=records)
