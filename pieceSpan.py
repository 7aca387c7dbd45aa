#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
pieceSpan.py: encode text into span-annotated sub-word pieces and decode
pieces back to text, using a piecespan model descriptor.

Examples:
    pieceSpan.py encode --model m.json "Hello world"
    echo "▁Hello ▁world" | pieceSpan.py decode --model m.json
    pieceSpan.py decode --model m.json --ids "5 9 9"
    pieceSpan.py nbest --model m.json --nbest-size 3 --output json "Hello"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Iterable, List, Optional, Sequence

from piecespan import __version__
from piecespan.config import DEFAULTS, LOG_LEVELS, OUTPUT_FORMATS, load_config, merge_config
from piecespan.errors import ConfigurationError, PieceSpanError
from piecespan.processor import SpanProcessor

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

log = logging.getLogger("pieceSpan")


def eprint(*args: Any) -> None:
    print(*args, file=sys.stderr)


def setup_logging(level: str, log_file: str = "") -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )


def iter_inputs(texts: Sequence[str]) -> Iterable[str]:
    if texts:
        yield from texts
        return
    for line in sys.stdin:
        yield line.rstrip("\r\n")


def emit(obj: Any, output: str) -> None:
    if output == "json":
        print(json.dumps(obj, ensure_ascii=False))
    elif isinstance(obj, list):
        print(" ".join(str(x) for x in obj))
    else:
        print(obj)


# ----------------------------
# Subcommands
# ----------------------------


def cmd_encode(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    output = str(cfg["output"])
    for text in iter_inputs(args.text):
        if output == "json":
            emit(proc.encode(text).to_dict(), output)
        elif output == "ids":
            emit(proc.encode_as_ids(text), output)
        elif output == "text":
            emit("\t".join(proc.encode(text).surfaces()), output)
        else:
            emit(proc.encode_as_pieces(text), output)
    return 0


def cmd_decode(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    output = str(cfg["output"])
    for line in iter_inputs(args.text):
        tokens = line.split()
        if args.ids:
            try:
                ids = [int(t) for t in tokens]
            except ValueError:
                raise ConfigurationError(f"not an id list: {line!r}") from None
            annotated = proc.decode_ids_annotated(ids)
        else:
            annotated = proc.decode_pieces_annotated(tokens)
        emit(annotated.to_dict() if output == "json" else annotated.text, output)
    return 0


def cmd_nbest(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    output = str(cfg["output"])
    nbest_size = int(cfg["nbest_size"])  # type: ignore[arg-type]
    for text in iter_inputs(args.text):
        nbests = proc.nbest_encode(text, nbest_size)
        if output == "json":
            emit(nbests.to_dict(), output)
            continue
        for cand in nbests:
            if output == "ids":
                emit(cand.ids(), output)
            elif output == "text":
                emit("\t".join(cand.surfaces()), output)
            else:
                emit(cand.piece_strs(), output)
    return 0


def cmd_sample(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    output = str(cfg["output"])
    nbest_size = int(cfg["nbest_size"])  # type: ignore[arg-type]
    alpha = float(cfg["alpha"])  # type: ignore[arg-type]
    if cfg.get("seed") is not None:
        proc.set_random_seed(int(cfg["seed"]))  # type: ignore[arg-type]
    for text in iter_inputs(args.text):
        annotated = proc.sample_encode(text, nbest_size, alpha)
        if output == "json":
            emit(annotated.to_dict(), output)
        elif output == "ids":
            emit(annotated.ids(), output)
        elif output == "text":
            emit("\t".join(annotated.surfaces()), output)
        else:
            emit(annotated.piece_strs(), output)
    return 0


def cmd_normalize(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    output = str(cfg["output"])
    for text in iter_inputs(args.text):
        normalized, offsets = proc.normalize_with_offsets(text)
        if output == "json":
            emit({"text": text, "normalized": normalized, "offsets": offsets}, output)
        else:
            emit(normalized, output)
    return 0


def cmd_info(proc: SpanProcessor, args: argparse.Namespace, cfg: Dict[str, object]) -> int:
    spec = proc.normalizer_spec
    info: Dict[str, object] = {
        "model": cfg["model"],
        "piece_size": proc.piece_size(),
        "unk_id": proc.unk_id(),
        "bos_id": proc.bos_id(),
        "eos_id": proc.eos_id(),
        "pad_id": proc.pad_id(),
        "byte_fallback": proc.model.byte_fallback_enabled(),
        "normalizer": spec.name,
        "add_dummy_prefix": spec.add_dummy_prefix,
        "treat_whitespace_as_suffix": spec.treat_whitespace_as_suffix,
    }
    if cfg["output"] == "json":
        emit(info, "json")
    else:
        for key, value in info.items():
            print(f"{key}: {value}")
    return 0


COMMANDS = {
    "encode": cmd_encode,
    "decode": cmd_decode,
    "nbest": cmd_nbest,
    "sample": cmd_sample,
    "normalize": cmd_normalize,
    "info": cmd_info,
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="JSON config file (keys as in piecespan.config.DEFAULTS).")
    common.add_argument("--model", default=None, help="model descriptor (.json or zstd-compressed .zst).")
    common.add_argument("--extra-options", dest="extra_options", default=None, help="colon-separated extra options: bos, eos, reverse.")
    common.add_argument("--output", default=None, choices=OUTPUT_FORMATS, help=f"output format (default: {DEFAULTS['output']}).")
    common.add_argument("--log-file", dest="log_file", default=None, help="append log lines to this file.")
    common.add_argument("--log-level", dest="log_level", default=None, choices=LOG_LEVELS, help=f"log level (default: {DEFAULTS['log_level']}).")

    ap = argparse.ArgumentParser(
        prog="pieceSpan.py",
        description="pieceSpan.py: span-faithful sub-word encode/decode.",
        epilog=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("encode", parents=[common], help="encode text into pieces.")
    p.add_argument("text", nargs="*", help="input text (default: read lines from stdin).")

    p = sub.add_parser("decode", parents=[common], help="decode space-separated pieces (or ids) into text.")
    p.add_argument("--ids", action="store_true", help="input lines are piece ids.")
    p.add_argument("text", nargs="*", help="input lines (default: read lines from stdin).")

    p = sub.add_parser("nbest", parents=[common], help="print the n best segmentations.")
    p.add_argument("--nbest-size", dest="nbest_size", type=int, default=None, help=f"number of candidates (default: {DEFAULTS['nbest_size']}).")
    p.add_argument("text", nargs="*", help="input text (default: read lines from stdin).")

    p = sub.add_parser("sample", parents=[common], help="sample one segmentation.")
    p.add_argument("--nbest-size", dest="nbest_size", type=int, default=None, help="<0: full lattice, 0/1: best, >1: draw from n-best.")
    p.add_argument("--alpha", type=float, default=None, help=f"smoothing parameter (default: {DEFAULTS['alpha']}).")
    p.add_argument("--seed", type=int, default=None, help="random seed for reproducible sampling.")
    p.add_argument("text", nargs="*", help="input text (default: read lines from stdin).")

    p = sub.add_parser("normalize", parents=[common], help="print the normalized text.")
    p.add_argument("text", nargs="*", help="input text (default: read lines from stdin).")

    sub.add_parser("info", parents=[common], help="print model summary.")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        file_cfg = load_config(args.config)
        cli: Dict[str, object] = {
            "model": args.model,
            "output": args.output,
            "log_file": args.log_file,
            "log_level": args.log_level,
            "nbest_size": getattr(args, "nbest_size", None),
            "alpha": getattr(args, "alpha", None),
            "seed": getattr(args, "seed", None),
        }
        if args.command == "decode":
            cli["decode_extra_options"] = args.extra_options
        else:
            cli["encode_extra_options"] = args.extra_options
        cfg = merge_config(DEFAULTS, file_cfg, cli)

        setup_logging(str(cfg["log_level"]), str(cfg.get("log_file") or ""))
        if not cfg["model"]:
            raise ConfigurationError("no model given (use --model or the 'model' config key)")

        proc = SpanProcessor.from_file(str(cfg["model"]))
        proc.set_encode_extra_options(str(cfg.get("encode_extra_options") or ""))
        proc.set_decode_extra_options(str(cfg.get("decode_extra_options") or ""))
        log.debug("command %s with model %s", args.command, cfg["model"])
        return COMMANDS[args.command](proc, args, cfg)
    except (PieceSpanError, OSError) as ex:
        eprint(f"error: {ex}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
