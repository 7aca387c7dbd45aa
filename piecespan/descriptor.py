#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Model descriptor files.

A descriptor is a JSON object:

    {
      "type": "piecespan_model_v1",
      "trainer_spec": {"byte_fallback": true, "unk_piece": "<unk>", ...},
      "normalizer_spec": {"name": "nmt_nfkc", "add_dummy_prefix": true, ...},
      "denormalizer_spec": {"name": "identity", "rules": {"a": "A"}},   (optional)
      "pieces": [{"piece": "<unk>", "score": 0.0, "type": "unknown"}, ...],
      "self_test": [{"input": "...", "expected": "▁piece ▁list"}]
    }

Files may be zstandard-compressed (detected by the frame magic, so the
extension does not matter on load). Everything that goes wrong while reading
becomes ConfigurationError before the processor accepts any call.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import zstandard

from piecespan.errors import ConfigurationError
from piecespan.model import ModelPiece, PIECE_TYPES, TrainerSpec
from piecespan.normalizer import NormalizerSpec

logger = logging.getLogger(__name__)

DESCRIPTOR_TYPE = "piecespan_model_v1"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
ZSTD_LEVEL = 10


@dataclass(frozen=True)
class SelfTestSample:
    input: str
    expected: str


@dataclass
class ModelDescriptor:
    pieces: List[ModelPiece]
    trainer: TrainerSpec = field(default_factory=TrainerSpec)
    normalizer: NormalizerSpec = field(default_factory=NormalizerSpec)
    denormalizer: Optional[NormalizerSpec] = None
    self_test: List[SelfTestSample] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: object) -> "ModelDescriptor":
        if not isinstance(data, dict):
            raise ConfigurationError("model descriptor must be a JSON object")
        if data.get("type") != DESCRIPTOR_TYPE:
            raise ConfigurationError(f"unsupported model descriptor type: {data.get('type')!r}")

        raw_pieces = data.get("pieces")
        if not isinstance(raw_pieces, list) or not raw_pieces:
            raise ConfigurationError("model descriptor has no pieces")
        pieces: List[ModelPiece] = []
        for idx, entry in enumerate(raw_pieces):
            if not isinstance(entry, dict) or not isinstance(entry.get("piece"), str):
                raise ConfigurationError(f"malformed piece entry at index {idx}")
            ptype = str(entry.get("type", "normal"))
            if ptype not in PIECE_TYPES:
                raise ConfigurationError(f"unknown piece type {ptype!r} at index {idx}")
            try:
                score = float(entry.get("score", 0.0))
            except (TypeError, ValueError):
                raise ConfigurationError(f"invalid score at index {idx}") from None
            pieces.append(ModelPiece(piece=entry["piece"], score=score, type=ptype))

        denorm: Optional[NormalizerSpec] = None
        raw_denorm = data.get("denormalizer_spec")
        if raw_denorm is not None:
            if not isinstance(raw_denorm, dict):
                raise ConfigurationError("denormalizer spec must be an object")
            parsed = NormalizerSpec.from_dict({"name": "identity", **raw_denorm})
            if parsed.rules or parsed.name != "identity":
                denorm = NormalizerSpec.denormalizer(parsed.rules, name=parsed.name)

        samples: List[SelfTestSample] = []
        for entry in data.get("self_test") or []:
            if not isinstance(entry, dict):
                raise ConfigurationError("malformed self_test entry")
            samples.append(SelfTestSample(input=str(entry.get("input", "")), expected=str(entry.get("expected", ""))))

        return cls(
            pieces=pieces,
            trainer=TrainerSpec.from_dict(data.get("trainer_spec")),
            normalizer=NormalizerSpec.from_dict(data.get("normalizer_spec")),
            denormalizer=denorm,
            self_test=samples,
        )

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "type": DESCRIPTOR_TYPE,
            "trainer_spec": self.trainer.to_dict(),
            "normalizer_spec": self.normalizer.to_dict(),
            "pieces": [p.to_dict() for p in self.pieces],
        }
        if self.denormalizer is not None:
            out["denormalizer_spec"] = {"name": self.denormalizer.name, "rules": dict(self.denormalizer.rules)}
        if self.self_test:
            out["self_test"] = [{"input": s.input, "expected": s.expected} for s in self.self_test]
        return out


def descriptor_fingerprint(raw: bytes) -> str:
    """Short stable fingerprint for logs (SHA-256, 16 hex chars)."""
    return hashlib.sha256(bytes(raw)).hexdigest()[:16]


def loads_descriptor(raw: bytes) -> ModelDescriptor:
    data = bytes(raw)
    if data.startswith(ZSTD_MAGIC):
        try:
            data = zstandard.ZstdDecompressor().decompress(data)
        except zstandard.ZstdError as ex:
            raise ConfigurationError(f"corrupt zstd model descriptor: {ex}") from ex
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as ex:
        raise ConfigurationError(f"model descriptor is not valid JSON: {ex}") from ex
    return ModelDescriptor.from_dict(payload)


def load_descriptor(path: str) -> ModelDescriptor:
    if not path:
        raise ConfigurationError("model file path should not be empty")
    try:
        with open(path, "rb") as f:
            raw = f.read()
    except OSError as ex:
        raise ConfigurationError(f"cannot read model descriptor {path}: {ex}") from ex
    desc = loads_descriptor(raw)
    logger.info("loaded model %s (%d pieces, fp=%s)", path, len(desc.pieces), descriptor_fingerprint(raw))
    return desc


def dumps_descriptor(desc: ModelDescriptor, compress: bool = False) -> bytes:
    raw = json.dumps(desc.to_dict(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    if compress:
        return zstandard.ZstdCompressor(level=ZSTD_LEVEL).compress(raw)
    return raw


def save_descriptor(desc: ModelDescriptor, path: str, compress: Optional[bool] = None) -> None:
    if not path:
        raise ConfigurationError("model file path should not be empty")
    if compress is None:
        compress = path.endswith(".zst")
    data = dumps_descriptor(desc, compress=compress)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "wb") as f:
        f.write(data)
    os.replace(tmp, path)
    logger.info("saved model %s (%d bytes, fp=%s)", path, len(data), descriptor_fingerprint(data))
