#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
piecespan package

Surface-faithful post-processing for sub-word tokenization: every piece the
segmentation model emits is mapped back to its exact byte span in the input,
and decoding reverses byte fallback and whitespace escaping. pieceSpan.py is
the command-line entrypoint.
"""

from __future__ import annotations

from piecespan.errors import ConfigurationError, EncodingError, IntegrityError, PieceSpanError
from piecespan.processor import SpanProcessor
from piecespan.repeat import END_REPEAT, START_REPEAT, compress_repeats, expand_repeats
from piecespan.types import AnnotatedText, SpanPiece

__version__ = "0.3.0"

__all__ = [
    "AnnotatedText",
    "ConfigurationError",
    "END_REPEAT",
    "EncodingError",
    "IntegrityError",
    "PieceSpanError",
    "START_REPEAT",
    "SpanPiece",
    "SpanProcessor",
    "compress_repeats",
    "expand_repeats",
]
