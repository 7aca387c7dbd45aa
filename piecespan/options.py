#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import enum
from typing import List, Sequence

from piecespan.errors import ConfigurationError
from piecespan.model import UnigramModel
from piecespan.types import SpanPiece


class ExtraOption(enum.Enum):
    BOS = "bos"
    EOS = "eos"
    REVERSE = "reverse"


def parse_extra_options(spec: str, model: UnigramModel) -> List[ExtraOption]:
    """Parse a colon-separated option list such as "bos:eos" or "reverse:bos"."""
    if not spec:
        return []
    out: List[ExtraOption] = []
    for name in spec.split(":"):
        try:
            opt = ExtraOption(name)
        except ValueError:
            raise ConfigurationError(f'option "{name}" is not available') from None
        if opt is ExtraOption.BOS and model.is_unknown(model.piece_to_id(model.bos_piece)):
            raise ConfigurationError(f"id for `{model.bos_piece}` is not defined")
        if opt is ExtraOption.EOS and model.is_unknown(model.piece_to_id(model.eos_piece)):
            raise ConfigurationError(f"id for `{model.eos_piece}` is not defined")
        out.append(opt)
    return out


def format_extra_options(options: Sequence[ExtraOption]) -> str:
    return ":".join(opt.value for opt in options)


def apply_extra_options(
    options: Sequence[ExtraOption],
    pieces: List[SpanPiece],
    model: UnigramModel,
    end_offset: int = 0,
) -> List[SpanPiece]:
    """Apply options in order, editing `pieces` in place.

    Added bos/eos records are control pieces: BOS sits at offset 0 and EOS at
    `end_offset`, both with an empty span.
    """
    for opt in options:
        if opt is ExtraOption.REVERSE:
            pieces.reverse()
        elif opt is ExtraOption.EOS:
            pieces.append(
                SpanPiece(
                    piece=model.eos_piece,
                    id=model.piece_to_id(model.eos_piece),
                    begin=end_offset,
                    end=end_offset,
                )
            )
        elif opt is ExtraOption.BOS:
            pieces.insert(0, SpanPiece(piece=model.bos_piece, id=model.piece_to_id(model.bos_piece)))
        else:
            raise ConfigurationError(f"unknown extra option: {opt!r}")
    return pieces
