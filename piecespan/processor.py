#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from piecespan.annotate import annotate
from piecespan.descriptor import ModelDescriptor, dumps_descriptor, load_descriptor
from piecespan.errors import ConfigurationError, IntegrityError
from piecespan.model import UnigramModel
from piecespan.normalizer import Normalizer, NormalizerSpec
from piecespan.options import ExtraOption, format_extra_options, parse_extra_options
from piecespan.reconstruct import reconstruct
from piecespan.repeat import (
    RepeatIds,
    compress_repeat_ids,
    compress_repeats,
    expand_repeat_ids,
    expand_repeats,
)
from piecespan.types import AnnotatedText, EncodeResult, NBestText

logger = logging.getLogger(__name__)

MAX_SAMPLE_NBEST_SIZE = 512


class SpanProcessor:
    """Encode text into span-annotated pieces and decode pieces back to text.

    The plain-token APIs (encode_as_pieces / encode_as_ids) apply repeat
    compression, and decode_pieces / decode_ids expand it again before
    rebuilding the text.
    """

    def __init__(self) -> None:
        self._descriptor: Optional[ModelDescriptor] = None
        self._model: Optional[UnigramModel] = None
        self._normalizer: Optional[Normalizer] = None
        self._denormalizer: Optional[Normalizer] = None
        self._encode_options: List[ExtraOption] = []
        self._decode_options: List[ExtraOption] = []
        self._repeat_ids: Optional[RepeatIds] = None
        self._repeat_ids_checked = False

    # ----------------------------
    # Loading
    # ----------------------------

    @classmethod
    def from_file(cls, path: str) -> "SpanProcessor":
        proc = cls()
        proc.load(path)
        return proc

    @classmethod
    def from_descriptor(cls, desc: ModelDescriptor) -> "SpanProcessor":
        proc = cls()
        proc.load_descriptor(desc)
        return proc

    def load(self, path: str) -> None:
        self.load_descriptor(load_descriptor(path))

    def load_descriptor(self, desc: ModelDescriptor) -> None:
        model = UnigramModel(desc.pieces, desc.trainer)
        self._install(desc, model)
        try:
            self._run_self_test(desc)
        except ConfigurationError:
            self._reset()
            raise

    def _install(self, desc: ModelDescriptor, model: UnigramModel) -> None:
        self._descriptor = desc
        self._model = model
        self._normalizer = Normalizer(desc.normalizer, protected=model.user_defined_pieces())
        self._denormalizer = Normalizer(desc.denormalizer) if desc.denormalizer is not None else None
        self._encode_options = []
        self._decode_options = []
        self._repeat_ids = None
        self._repeat_ids_checked = False

    def _reset(self) -> None:
        self._descriptor = None
        self._model = None
        self._normalizer = None
        self._denormalizer = None

    def _run_self_test(self, desc: ModelDescriptor) -> None:
        if not desc.self_test:
            return
        model = self._require_model()
        errors: List[str] = []
        for sample in desc.self_test:
            result = " ".join(self.encode_as_pieces(sample.input))
            if not model.verify_outputs_equivalent(sample.expected, result):
                errors.append(f"{sample.input}\t{sample.expected}\t{result}")
        if errors:
            logger.info("%d/%d samples did not pass the test.", len(errors), len(desc.self_test))
            for line in errors:
                logger.info("%s", line)
            raise ConfigurationError(f"self-test failures ({len(errors)} of {len(desc.self_test)}), see log")

    def status(self) -> None:
        if self._model is None:
            raise ConfigurationError("model is not initialized")
        if self._normalizer is None:
            raise ConfigurationError("normalizer is not initialized")

    def _require_model(self) -> UnigramModel:
        self.status()
        assert self._model is not None
        return self._model

    def _require(self) -> Tuple[UnigramModel, Normalizer]:
        self.status()
        assert self._model is not None and self._normalizer is not None
        return self._model, self._normalizer

    @property
    def model(self) -> UnigramModel:
        return self._require_model()

    @property
    def normalizer_spec(self) -> NormalizerSpec:
        return self._require()[1].spec

    def serialized_model(self, compress: bool = False) -> bytes:
        model = self._require_model()
        assert self._descriptor is not None
        desc = ModelDescriptor(
            pieces=list(model.pieces),
            trainer=model.trainer,
            normalizer=self._descriptor.normalizer,
            denormalizer=self._descriptor.denormalizer,
            self_test=list(self._descriptor.self_test),
        )
        return dumps_descriptor(desc, compress=compress)

    # ----------------------------
    # Options
    # ----------------------------

    def set_encode_extra_options(self, extra_options: str) -> None:
        self._encode_options = parse_extra_options(extra_options, self._require_model())
        logger.debug("encode extra options: %s", format_extra_options(self._encode_options) or "none")

    def set_decode_extra_options(self, extra_options: str) -> None:
        self._decode_options = parse_extra_options(extra_options, self._require_model())
        logger.debug("decode extra options: %s", format_extra_options(self._decode_options) or "none")

    def set_vocabulary(self, valid_vocab: Iterable[str]) -> None:
        model = self._require_model()
        self._model = model.restrict_vocabulary(valid_vocab)

    def reset_vocabulary(self) -> None:
        self._model = self._require_model().reset_vocabulary()

    def set_random_seed(self, seed: Optional[int]) -> None:
        self._require_model().set_random_seed(seed)

    def _get_repeat_ids(self) -> Optional[RepeatIds]:
        if not self._repeat_ids_checked:
            model = self._require_model()
            try:
                self._repeat_ids = RepeatIds.from_lookup(model.piece_to_id, model.is_unknown)
            except ConfigurationError as ex:
                logger.debug("repeat ids unavailable: %s", ex)
                self._repeat_ids = None
            self._repeat_ids_checked = True
        return self._repeat_ids

    # ----------------------------
    # Encode
    # ----------------------------

    def normalize(self, text: str) -> str:
        return self._require()[1].normalize(text)[0]

    def normalize_with_offsets(self, text: str) -> Tuple[str, List[int]]:
        return self._require()[1].normalize(text)

    def _populate(self, text: str, normalized: str, offset_map: Sequence[int], result: EncodeResult, score: Optional[float] = None) -> AnnotatedText:
        return annotate(text, normalized, offset_map, result, self._require_model(), self._encode_options, score=score)

    def encode(self, text: str) -> AnnotatedText:
        model, normalizer = self._require()
        normalized, offset_map = normalizer.normalize(text)
        return self._populate(text, normalized, offset_map, model.encode(normalized))

    def encode_as_pieces(self, text: str) -> List[str]:
        return compress_repeats(self.encode(text).piece_strs())

    def encode_as_ids(self, text: str) -> List[int]:
        ids = self.encode(text).ids()
        if all(a != b for a, b in zip(ids, ids[1:])):
            return ids
        repeat_ids = self._get_repeat_ids()
        if repeat_ids is None:
            raise ConfigurationError("id output needs repeat marker and digit pieces in the vocabulary")
        return compress_repeat_ids(ids, repeat_ids)

    def nbest_encode(self, text: str, nbest_size: int) -> NBestText:
        model, normalizer = self._require()
        normalized, offset_map = normalizer.normalize(text)
        if not model.is_nbest_available():
            raise ConfigurationError("NBestEncode is not available for the current model")
        nbests = model.n_best(normalized, nbest_size)
        if not nbests:
            raise IntegrityError("NBestEncode returns empty result")
        return NBestText([self._populate(text, normalized, offset_map, result, score) for result, score in nbests])

    def nbest_encode_as_pieces(self, text: str, nbest_size: int) -> List[List[str]]:
        return [n.piece_strs() for n in self.nbest_encode(text, nbest_size)]

    def nbest_encode_as_ids(self, text: str, nbest_size: int) -> List[List[int]]:
        return [n.ids() for n in self.nbest_encode(text, nbest_size)]

    def sample_encode(self, text: str, nbest_size: int, alpha: float) -> AnnotatedText:
        """Draw one segmentation.

        nbest_size < 0 (or a model without n-best) samples from the full
        lattice; 0 and 1 return the best segmentation; larger values draw
        from the n-best list with weights exp(alpha * score).
        """
        if nbest_size > MAX_SAMPLE_NBEST_SIZE:
            raise ConfigurationError(f"nbest_size must be nbest_size <= {MAX_SAMPLE_NBEST_SIZE}")
        model, normalizer = self._require()
        normalized, offset_map = normalizer.normalize(text)

        if not model.is_nbest_available() or nbest_size < 0:
            if not model.is_sample_available():
                raise ConfigurationError("SampleEncode is not available for the current model")
            result = model.sample(normalized, alpha)
        elif nbest_size in (0, 1):
            result = model.encode(normalized)
        else:
            nbests = model.n_best(normalized, nbest_size)
            if not nbests:
                raise IntegrityError("NBestEncode returns empty result")
            top = max(score for _r, score in nbests)
            weights = [math.exp(alpha * (score - top)) for _r, score in nbests]
            result = nbests[model.draw_index(weights)][0]
        return self._populate(text, normalized, offset_map, result)

    def sample_encode_as_pieces(self, text: str, nbest_size: int, alpha: float) -> List[str]:
        return self.sample_encode(text, nbest_size, alpha).piece_strs()

    def sample_encode_as_ids(self, text: str, nbest_size: int, alpha: float) -> List[int]:
        return self.sample_encode(text, nbest_size, alpha).ids()

    # ----------------------------
    # Decode
    # ----------------------------

    def _reconstruct(self, items: Sequence[Tuple[str, int]]) -> AnnotatedText:
        model, normalizer = self._require()
        return reconstruct(items, model, normalizer.spec, self._decode_options, self._denormalizer)

    def decode_pieces_annotated(self, pieces: Sequence[str]) -> AnnotatedText:
        model = self._require_model()
        expanded = expand_repeats(pieces)
        return self._reconstruct([(p, model.piece_to_id(p)) for p in expanded])

    def decode_ids_annotated(self, ids: Sequence[int]) -> AnnotatedText:
        model = self._require_model()
        repeat_ids = self._get_repeat_ids()
        expanded = expand_repeat_ids(ids, repeat_ids) if repeat_ids is not None else list(ids)
        return self._reconstruct([(model.id_to_piece(i), i) for i in expanded])

    def decode_pieces(self, pieces: Sequence[str]) -> str:
        return self.decode_pieces_annotated(pieces).text

    def decode_ids(self, ids: Sequence[int]) -> str:
        return self.decode_ids_annotated(ids).text

    # ----------------------------
    # Vocabulary
    # ----------------------------

    def piece_size(self) -> int:
        return self._require_model().piece_size()

    def piece_to_id(self, piece: str) -> int:
        return self._require_model().piece_to_id(piece)

    def id_to_piece(self, pid: int) -> str:
        return self._require_model().id_to_piece(pid)

    def get_score(self, pid: int) -> float:
        return self._require_model().get_score(pid)

    def is_control(self, pid: int) -> bool:
        return self._require_model().is_control(pid)

    def is_unknown(self, pid: int) -> bool:
        return self._require_model().is_unknown(pid)

    def is_unused(self, pid: int) -> bool:
        return self._require_model().is_unused(pid)

    def is_byte(self, pid: int) -> bool:
        return self._require_model().is_byte(pid)

    def unk_id(self) -> int:
        model = self._require_model()
        pid = model.piece_to_id(model.unk_piece)
        return pid if model.is_unknown(pid) else -1

    def bos_id(self) -> int:
        model = self._require_model()
        pid = model.piece_to_id(model.bos_piece)
        return pid if model.is_control(pid) else -1

    def eos_id(self) -> int:
        model = self._require_model()
        pid = model.piece_to_id(model.eos_piece)
        return pid if model.is_control(pid) else -1

    def pad_id(self) -> int:
        model = self._require_model()
        pid = model.piece_to_id(model.pad_piece)
        return pid if model.is_control(pid) else -1
