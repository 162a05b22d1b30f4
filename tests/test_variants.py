"""Tests for variant materialization and the variant model."""

import random
from collections import Counter

import pytest

from edmcp_omr.core.errors import VariantFormatError
from edmcp_omr.core.models import ShuffleSettings, Variant, option_label
from edmcp_omr.core.variants import materialize, materialize_with_settings, shuffled

from conftest import make_bank


def option_multiset(question):
    return Counter((o.text, o.is_correct) for o in question.options)


class TestMaterialize:
    """Tests for materialize()."""

    def test_no_shuffle_keeps_bank_order(self, sample_bank):
        variant = materialize(sample_bank)

        assert [q.text for q in variant.questions] == [q.text for q in sample_bank.questions]
        assert [q.correct_label for q in variant.questions][:4] == ["C", "A", "B", "D"]

    def test_labels_are_assigned_after_shuffle(self, sample_bank):
        variant = materialize(sample_bank, shuffle_answers=True, rng=random.Random(7))

        for question in variant.questions:
            assert [o.label for o in question.options] == ["A", "B", "C", "D"]

    def test_shuffle_is_a_permutation(self, sample_bank):
        """Options per question keep their texts and correctness flags."""
        by_text = {q.text: q for q in sample_bank.questions}
        variant = materialize(sample_bank, shuffle_all=True, rng=random.Random(3))

        assert sorted(q.text for q in variant.questions) == sorted(by_text)
        for question in variant.questions:
            assert option_multiset(question) == option_multiset(by_text[question.text])

    def test_correct_content_is_stable_while_label_moves(self, sample_bank):
        by_text = {q.text: q for q in sample_bank.questions}
        labels_seen = set()
        for seed in range(20):
            variant = materialize(sample_bank, shuffle_answers=True, rng=random.Random(seed))
            first = variant.questions[0]
            original = by_text[first.text]
            expected = next(o.text for o in original.options if o.is_correct)
            assert first.correct_text == expected
            labels_seen.add(first.correct_label)

        assert len(labels_seen) > 1

    def test_shuffle_questions_only_keeps_option_order(self, sample_bank):
        by_text = {q.text: q for q in sample_bank.questions}
        variant = materialize(sample_bank, shuffle_questions=True, rng=random.Random(11))

        for question in variant.questions:
            assert [o.text for o in question.options] == [
                o.text for o in by_text[question.text].options
            ]

    def test_shuffle_all_twice_differs_but_keys_match_by_content(self):
        """Two independent shuffles differ in order, not in correct content."""
        bank = make_bank(["C", "A", "B", "D"] * 5)
        first = materialize(bank, shuffle_all=True)
        second = materialize(bank, shuffle_all=True)

        order_first = [(q.text, tuple(o.text for o in q.options)) for q in first.questions]
        order_second = [(q.text, tuple(o.text for o in q.options)) for q in second.questions]
        assert order_first != order_second

        correct_first = {q.text: q.correct_text for q in first.questions}
        correct_second = {q.text: q.correct_text for q in second.questions}
        assert correct_first == correct_second
        assert first.id != second.id

    def test_with_settings(self, sample_bank):
        variant = materialize_with_settings(
            sample_bank, ShuffleSettings(shuffle_questions=True), rng=random.Random(5),
            exam_id="ex_1",
        )

        assert variant.exam_id == "ex_1"
        assert variant.question_count == 10

    def test_shuffled_returns_a_copy(self):
        items = list(range(10))
        result = shuffled(items, random.Random(0))

        assert items == list(range(10))
        assert sorted(result) == items


class TestVariantModel:
    """Tests for Variant structure round trips and validation."""

    def test_structure_round_trip(self, sample_variant):
        restored = Variant.from_structure(
            sample_variant.id, sample_variant.structure(), exam_id="ex_sample"
        )

        assert restored.questions == sample_variant.questions
        assert restored.answer_key() == sample_variant.answer_key()

    @pytest.mark.parametrize(
        "structure",
        [
            None,
            [],
            {"questions": []},
            {"schema_version": 99, "questions": []},
            {"schema_version": 1},
            {"schema_version": 1, "questions": [{"text": "no options"}]},
            {"schema_version": 1, "questions": [{"text": "x", "options": ["A"]}]},
        ],
    )
    def test_invalid_structures(self, structure):
        with pytest.raises(VariantFormatError):
            Variant.from_structure("v1", structure)

    def test_option_labels(self):
        assert [option_label(i) for i in range(4)] == ["A", "B", "C", "D"]
        assert option_label(26) == "AA"
        with pytest.raises(ValueError):
            option_label(-1)
