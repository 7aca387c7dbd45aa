#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import unittest

from piecespan.annotate import annotate
from piecespan.errors import EncodingError, IntegrityError
from piecespan.model import ModelPiece, TrainerSpec, UnigramModel, byte_to_piece
from piecespan.normalizer import Normalizer, NormalizerSpec
from piecespan.options import ExtraOption
from piecespan.reconstruct import REPLACEMENT_CHAR, decode_piece_surface, iter_utf8, reconstruct

from model_fixtures import BASE_PIECES, ID_SPACE, ID_THE


def _model(byte_fallback: bool = False) -> UnigramModel:
    pieces = [ModelPiece(piece=p, score=s, type=t) for p, s, t in BASE_PIECES]
    if byte_fallback:
        pieces += [ModelPiece(byte_to_piece(b), 0.0, "byte") for b in range(256)]
    return UnigramModel(pieces, TrainerSpec(byte_fallback=byte_fallback))


def _encode(model: UnigramModel, text: str, options=()):
    normalized, offsets = Normalizer(NormalizerSpec()).normalize(text)
    return annotate(text, normalized, offsets, model.encode(normalized), model, options)


class AnnotateTests(unittest.TestCase):
    def test_spans_point_into_original(self) -> None:
        annotated = _encode(_model(), "the the the")
        self.assertEqual(annotated.piece_strs(), ["▁the"] * 3)
        self.assertEqual(annotated.surfaces(), ["the", " the", " the"])
        self.assertEqual(annotated.spans(), [(0, 3), (3, 7), (7, 11)])

    def test_collapsed_spaces_stay_in_surface(self) -> None:
        annotated = _encode(_model(), "the  cat")
        self.assertEqual(annotated.surfaces(), ["the", "  cat"])
        self.assertEqual("".join(annotated.surfaces()), "the  cat")

    def test_spans_are_contiguous(self) -> None:
        text = "hello the dog"
        annotated = _encode(_model(), text)
        prev_end = 0
        for piece in annotated.pieces:
            self.assertEqual(piece.begin, prev_end)
            prev_end = piece.end
        self.assertEqual(prev_end, len(text.encode("utf-8")))

    def test_surfaces_cover_mapped_input(self) -> None:
        # Surfaces are slices of the input, so their sizes add up to the
        # mapped input range, not to the normalized size (which counts
        # three bytes per "▁").
        cases = [
            (False, "the cat"),
            (False, "the  cat"),
            (False, "  the cat  "),
            (False, "the xyz "),
            (True, "  the é € "),
            (True, "€"),
        ]
        for byte_fallback, text in cases:
            with self.subTest(text=text, byte_fallback=byte_fallback):
                model = _model(byte_fallback=byte_fallback)
                normalized, offsets = Normalizer(NormalizerSpec()).normalize(text)
                result = model.encode(normalized)
                self.assertEqual(sum(len(p.encode("utf-8")) for p, _ in result), len(normalized.encode("utf-8")))

                annotated = annotate(text, normalized, offsets, result, model)
                data = text.encode("utf-8")
                surfaces = [p.surface for p in annotated.pieces if not model.is_control(p.id)]
                self.assertEqual("".join(surfaces).encode("utf-8"), data[offsets[0] : offsets[-1]])
                self.assertEqual(sum(len(s.encode("utf-8")) for s in surfaces), offsets[-1] - offsets[0])

    def test_consecutive_unknowns_merge(self) -> None:
        annotated = _encode(_model(), "the xyz")
        self.assertEqual(annotated.piece_strs(), ["▁the", "▁", "xyz"])
        self.assertEqual(annotated.ids(), [ID_THE, ID_SPACE, 0])
        self.assertEqual(annotated.pieces[-1].surface, "xyz")
        self.assertEqual(annotated.spans()[-1], (4, 7))

    def test_byte_fallback_two_byte_char(self) -> None:
        model = _model(byte_fallback=True)
        annotated = _encode(model, "the é")
        self.assertEqual(annotated.piece_strs(), ["▁the", "▁", "<0xC3>", "<0xA9>"])
        self.assertEqual(annotated.surfaces(), ["the", " ", "", "é"])
        self.assertEqual(annotated.spans(), [(0, 3), (3, 4), (4, 4), (4, 6)])
        self.assertTrue(all(model.is_byte(i) for i in annotated.ids()[2:]))

    def test_byte_fallback_three_byte_char(self) -> None:
        annotated = _encode(_model(byte_fallback=True), "€")
        self.assertEqual(annotated.piece_strs(), ["▁", "<0xE2>", "<0x82>", "<0xAC>"])
        self.assertEqual(annotated.surfaces(), ["", "", "", "€"])
        self.assertEqual(annotated.spans()[-1], (0, 3))

    def test_control_pieces_have_empty_span(self) -> None:
        model = _model()
        normalized, offsets = Normalizer(NormalizerSpec()).normalize("the")
        annotated = annotate("the", normalized, offsets, [("<s>", 1), ("▁the", ID_THE)], model)
        self.assertEqual(annotated.pieces[0].surface, "")
        self.assertEqual(annotated.spans(), [(0, 0), (0, 3)])

    def test_extra_options(self) -> None:
        model = _model()
        annotated = _encode(model, "the cat", (ExtraOption.BOS, ExtraOption.EOS))
        self.assertEqual(annotated.piece_strs(), ["<s>", "▁the", "▁cat", "</s>"])
        self.assertEqual(annotated.spans()[0], (0, 0))
        self.assertEqual(annotated.spans()[-1], (7, 7))

        annotated = _encode(model, "the cat", (ExtraOption.REVERSE, ExtraOption.BOS))
        self.assertEqual(annotated.piece_strs(), ["<s>", "▁cat", "▁the"])

    def test_contract_violations(self) -> None:
        model = _model()
        normalized, offsets = Normalizer(NormalizerSpec()).normalize("the")
        with self.assertRaises(IntegrityError):
            annotate("the", normalized, offsets[:2], [("▁the", ID_THE)], model)
        with self.assertRaises(IntegrityError):
            annotate("the", normalized, offsets, [("▁", ID_SPACE)], model)
        with self.assertRaises(IntegrityError):
            annotate("the", normalized, offsets, [("", ID_THE)], model)
        with self.assertRaises(IntegrityError):
            annotate("the", normalized, offsets, [("▁the", ID_THE), ("▁the", ID_THE)], model)

    def test_span_splitting_a_character(self) -> None:
        model = _model()
        # "é" is two bytes; a map that cuts it in half cannot give a surface.
        with self.assertRaises(EncodingError):
            annotate("é", "a", [0, 1], [("a", 25)], model)


class ReconstructTests(unittest.TestCase):
    def test_iter_utf8(self) -> None:
        self.assertEqual(list(iter_utf8("aé".encode("utf-8"))), [("a", 1), ("é", 2)])
        self.assertEqual(list(iter_utf8(b"\xff")), [(None, 1)])
        self.assertEqual(list(iter_utf8(b"\xe2\x82")), [(None, 1), (None, 1)])

    def test_surface_rules(self) -> None:
        model = _model()
        spec = NormalizerSpec()
        self.assertEqual(decode_piece_surface("▁the", ID_THE, model, spec, True, False), "the")
        self.assertEqual(decode_piece_surface("▁the", ID_THE, model, spec, False, False), " the")
        self.assertEqual(decode_piece_surface("<s>", 1, model, spec, True, False), "")
        self.assertEqual(decode_piece_surface("<unk>", 0, model, spec, False, False), " ⁇ ")
        self.assertEqual(decode_piece_surface("xyz", 0, model, spec, False, False), "xyz")

        plain = NormalizerSpec(add_dummy_prefix=False, remove_extra_whitespaces=False)
        self.assertEqual(decode_piece_surface("▁the", ID_THE, model, plain, True, False), " the")

    def test_byte_groups(self) -> None:
        model = _model(byte_fallback=True)
        items = [("▁the", ID_THE)] + [(byte_to_piece(b), model.piece_to_id(byte_to_piece(b))) for b in "€".encode("utf-8")]
        annotated = reconstruct(items, model, NormalizerSpec())
        self.assertEqual(annotated.text, "the€")
        self.assertEqual(annotated.surfaces(), ["the", "", "", "€"])
        self.assertEqual(annotated.spans(), [(0, 3), (3, 3), (3, 3), (3, 6)])

    def test_invalid_bytes_become_replacement_chars(self) -> None:
        model = _model(byte_fallback=True)
        items = [(p, model.piece_to_id(p)) for p in ("<0xE2>", "<0x82>", "<0xFF>")]
        annotated = reconstruct(items, model, NormalizerSpec())
        self.assertEqual(annotated.text, REPLACEMENT_CHAR * 3)
        self.assertEqual(len(annotated.pieces), 3)


if __name__ == "__main__":
    unittest.main()
