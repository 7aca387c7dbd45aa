#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import unittest

from piecespan.errors import ConfigurationError, IntegrityError
from piecespan.model import ModelPiece, TrainerSpec, UnigramModel, byte_to_piece, piece_to_byte

from model_fixtures import BASE_PIECES, ID_CAT, ID_THE


def _model(**kwargs) -> UnigramModel:
    pieces = [ModelPiece(piece=p, score=s, type=t) for p, s, t in BASE_PIECES]
    return UnigramModel(pieces, **kwargs)


class BytePieceTests(unittest.TestCase):
    def test_byte_piece_names(self) -> None:
        self.assertEqual(byte_to_piece(0xC3), "<0xC3>")
        self.assertEqual(byte_to_piece(5), "<0x05>")
        self.assertEqual(piece_to_byte("<0xA9>"), 0xA9)
        self.assertEqual(piece_to_byte("<0xa9>"), -1)
        self.assertEqual(piece_to_byte("a"), -1)


class UnigramModelTests(unittest.TestCase):
    def test_viterbi_prefers_whole_words(self) -> None:
        model = _model()
        self.assertEqual(model.encode("▁the▁cat"), [("▁the", ID_THE), ("▁cat", ID_CAT)])
        self.assertEqual(model.encode(""), [])

    def test_unknown_characters(self) -> None:
        model = _model()
        result = model.encode("▁xy")
        self.assertEqual([p for p, _ in result], ["▁", "x", "y"])
        self.assertTrue(all(model.is_unknown(i) for _, i in result[1:]))

    def test_user_defined_piece_wins(self) -> None:
        model = _model()
        result = model.encode("a(#startrepeat)")
        self.assertEqual(result[-1], ("(#startrepeat)", 4))

    def test_nbest_order_and_scores(self) -> None:
        model = _model()
        nbests = model.n_best("▁hello", 3)
        self.assertEqual([[p for p, _ in r] for r, _ in nbests], [["▁hello"], ["▁he", "llo"], ["▁", "he", "llo"]])
        self.assertEqual([s for _, s in nbests], [-1.0, -5.5, -8.5])
        self.assertEqual(model.n_best("", 3), [([], 0.0)])

    def test_sample_covers_input_and_is_seeded(self) -> None:
        model = _model(seed=11)
        first = [model.sample("▁hello▁the", 0.5) for _ in range(8)]
        for result in first:
            self.assertEqual("".join(p for p, _ in result), "▁hello▁the")
        model.set_random_seed(11)
        self.assertEqual([model.sample("▁hello▁the", 0.5) for _ in range(8)], first)

    def test_lookups(self) -> None:
        model = _model()
        self.assertEqual(model.piece_size(), len(BASE_PIECES))
        self.assertEqual(model.piece_to_id("▁the"), ID_THE)
        self.assertEqual(model.piece_to_id("nope"), 0)
        self.assertEqual(model.id_to_piece(ID_CAT), "▁cat")
        self.assertEqual(model.get_score(ID_THE), -1.0)
        self.assertTrue(model.is_control(1))
        self.assertTrue(model.is_user_defined(4))
        self.assertEqual(model.user_defined_pieces(), ["(#startrepeat)", "(#endrepeat)"])
        with self.assertRaises(IntegrityError):
            model.id_to_piece(len(BASE_PIECES))
        with self.assertRaises(IntegrityError):
            model.is_unknown(-1)

    def test_restrict_and_reset_vocabulary(self) -> None:
        model = _model()
        restricted = model.restrict_vocabulary(["▁the"])
        self.assertTrue(restricted.is_unused(ID_CAT))
        self.assertFalse(restricted.is_unused(ID_THE))
        self.assertEqual([p for p, _ in restricted.encode("▁the▁cat")], ["▁the", "▁", "c", "a", "t"])
        restored = restricted.reset_vocabulary()
        self.assertEqual([p for p, _ in restored.encode("▁the▁cat")], ["▁the", "▁cat"])

    def test_verify_outputs_equivalent(self) -> None:
        model = _model()
        self.assertTrue(model.verify_outputs_equivalent("▁the ▁cat", "▁the ▁cat"))
        # Equal score sums count as equivalent.
        self.assertTrue(model.verify_outputs_equivalent("▁cat", "▁dog"))
        self.assertFalse(model.verify_outputs_equivalent("▁the", "▁cat"))


class ModelValidationTests(unittest.TestCase):
    def test_requires_unknown_piece(self) -> None:
        with self.assertRaises(ConfigurationError):
            UnigramModel([ModelPiece("a", -1.0)])

    def test_rejects_duplicates_and_empty(self) -> None:
        with self.assertRaises(ConfigurationError):
            UnigramModel([ModelPiece("<unk>", 0.0, "unknown"), ModelPiece("a"), ModelPiece("a")])
        with self.assertRaises(ConfigurationError):
            UnigramModel([ModelPiece("<unk>", 0.0, "unknown"), ModelPiece("")])
        with self.assertRaises(ConfigurationError):
            UnigramModel([ModelPiece("<unk>", 0.0, "unknown"), ModelPiece("<u2>", 0.0, "unknown")])
        with self.assertRaises(ConfigurationError):
            UnigramModel([])

    def test_byte_fallback_needs_all_bytes(self) -> None:
        with self.assertRaises(ConfigurationError):
            _model(trainer=TrainerSpec(byte_fallback=True))

    def test_trainer_spec_parsing(self) -> None:
        spec = TrainerSpec.from_dict({"byte_fallback": True, "unk_surface": "?"})
        self.assertTrue(spec.byte_fallback)
        self.assertEqual(TrainerSpec.from_dict(spec.to_dict()), spec)
        with self.assertRaises(ConfigurationError):
            TrainerSpec.from_dict({"model_type": "bpe"})


if __name__ == "__main__":
    unittest.main()
