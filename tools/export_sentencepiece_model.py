#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Export a SentencePiece unigram model into a piecespan model descriptor.

This script requires `sentencepiece` *only for exporting* the model.
Runtime encode/decode in piecespan does NOT depend on sentencepiece.

Usage:
  python tools/export_sentencepiece_model.py --spm m.model --out models/m.json
  python tools/export_sentencepiece_model.py --train --vocab_size 800 --out models/m.json.zst corpus1.txt corpus2.txt
  python tools/export_sentencepiece_model.py --spm m.model --out m.json --self-test samples.txt
"""

from __future__ import annotations

import argparse
import os
import tempfile
from typing import List, Optional

from piecespan.descriptor import ModelDescriptor, SelfTestSample, save_descriptor
from piecespan.digits import DIGIT_TOKENS
from piecespan.model import BYTE, CONTROL, NORMAL, UNKNOWN, UNUSED, USER_DEFINED, ModelPiece, TrainerSpec
from piecespan.normalizer import NORMALIZER_NAMES, NormalizerSpec
from piecespan.repeat import MARKER_TOKENS, compress_repeats


def _read_corpus(paths: List[str]) -> str:
    parts: List[str] = []
    for p in paths:
        with open(p, "r", encoding="utf-8", errors="ignore") as f:
            parts.append(f.read())
    return "\n".join(parts)


def _piece_type(sp, pid: int, user_defined: List[str]) -> str:
    if sp.is_unknown(pid):
        return UNKNOWN
    if sp.is_control(pid):
        return CONTROL
    if sp.is_byte(pid):
        return BYTE
    if sp.is_unused(pid):
        return UNUSED
    if sp.id_to_piece(pid) in user_defined:
        return USER_DEFINED
    return NORMAL


def export_pieces(sp, user_defined: List[str]) -> List[ModelPiece]:
    pieces = [
        ModelPiece(piece=sp.id_to_piece(pid), score=float(sp.get_score(pid)), type=_piece_type(sp, pid, user_defined))
        for pid in range(sp.get_piece_size())
    ]
    known = {p.piece for p in pieces}
    normal_scores = [p.score for p in pieces if p.type == NORMAL]
    floor = min(normal_scores) if normal_scores else 0.0

    # Repeat markers and digits are needed by the plain-token API.
    for marker in MARKER_TOKENS:
        if marker not in known:
            pieces.append(ModelPiece(piece=marker, score=0.0, type=USER_DEFINED))
    for digit in DIGIT_TOKENS:
        if digit not in known:
            pieces.append(ModelPiece(piece=digit, score=floor, type=NORMAL))
    return pieces


def _train(spm, corpus: List[str], workdir: str, vocab_size: int, normalizer: str, byte_fallback: bool, user_defined: List[str]) -> str:
    corpus_text = _read_corpus(corpus)
    if not corpus_text.strip():
        raise SystemExit("empty corpus")
    corpus_path = os.path.join(workdir, "corpus.txt")
    model_prefix = os.path.join(workdir, "spm")
    with open(corpus_path, "w", encoding="utf-8") as f:
        f.write(corpus_text)
    spm.SentencePieceTrainer.Train(
        input=corpus_path,
        model_prefix=model_prefix,
        vocab_size=int(vocab_size),
        model_type="unigram",
        character_coverage=1.0,
        normalization_rule_name=normalizer,
        byte_fallback=byte_fallback,
        user_defined_symbols=list(MARKER_TOKENS) + user_defined,
        pad_id=3,
    )
    return model_prefix + ".model"


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--out", required=True, help="Output descriptor (.json, or .zst for zstd-compressed)")
    ap.add_argument("--spm", default=None, help="Existing SentencePiece .model file (unigram)")
    ap.add_argument("--train", action="store_true", help="Train a unigram model from the corpus files first")
    ap.add_argument("--vocab_size", type=int, default=800, help="SentencePiece vocab size for --train")
    ap.add_argument("--normalizer", default="nmt_nfkc", choices=NORMALIZER_NAMES, help="Normalization rule set (default: nmt_nfkc)")
    ap.add_argument("--byte-fallback", action="store_true", help="Train with byte fallback pieces")
    ap.add_argument("--no-dummy-prefix", action="store_true", help="Do not add a leading whitespace marker")
    ap.add_argument("--suffix-whitespace", action="store_true", help="Whitespace marker goes after the word")
    ap.add_argument("--user-defined", default="", help="Comma-separated user-defined pieces")
    ap.add_argument("--self-test", default=None, help="Text file; each line becomes a self-test sample")
    ap.add_argument("corpus", nargs="*", help="Input text files for --train")
    args = ap.parse_args(argv)

    if bool(args.train) == bool(args.spm):
        ap.error("give exactly one of --spm or --train")

    try:
        import sentencepiece as spm  # type: ignore
    except Exception as ex:
        raise SystemExit(f"sentencepiece is required to export a model: {ex}")

    user_defined = [s for s in str(args.user_defined).split(",") if s]

    with tempfile.TemporaryDirectory(prefix="piecespan_spm_") as td:
        model_file = args.spm
        if args.train:
            if not args.corpus:
                ap.error("--train needs corpus files")
            model_file = _train(spm, args.corpus, td, args.vocab_size, args.normalizer, bool(args.byte_fallback), user_defined)
        sp = spm.SentencePieceProcessor(model_file=model_file)
        pieces = export_pieces(sp, user_defined + list(MARKER_TOKENS))

        samples: List[SelfTestSample] = []
        if args.self_test:
            with open(args.self_test, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.rstrip("\n")
                    if not line:
                        continue
                    expected = " ".join(compress_repeats(sp.encode(line, out_type=str)))
                    samples.append(SelfTestSample(input=line, expected=expected))

        has_bytes = any(p.type == BYTE for p in pieces)
        desc = ModelDescriptor(
            pieces=pieces,
            trainer=TrainerSpec(
                byte_fallback=has_bytes,
                unk_piece=sp.id_to_piece(sp.unk_id()),
                bos_piece=sp.id_to_piece(sp.bos_id()) if sp.bos_id() >= 0 else "<s>",
                eos_piece=sp.id_to_piece(sp.eos_id()) if sp.eos_id() >= 0 else "</s>",
                pad_piece=sp.id_to_piece(sp.pad_id()) if sp.pad_id() >= 0 else "<pad>",
            ),
            normalizer=NormalizerSpec(
                name=args.normalizer,
                add_dummy_prefix=not args.no_dummy_prefix,
                treat_whitespace_as_suffix=bool(args.suffix_whitespace),
            ),
            self_test=samples,
        )
        save_descriptor(desc, str(args.out))

    print(f"Wrote {len(pieces)} pieces ({len(samples)} self-test samples) to {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
