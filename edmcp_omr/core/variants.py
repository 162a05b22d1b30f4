"""
Variant materialization.

Applies an exam's shuffle policy to a question bank and freezes the result,
labels included, as the answer key for that printed paper.
"""

from __future__ import annotations

import random
import uuid
from typing import List, Optional, Sequence, TypeVar

from .models import (
    Question,
    QuestionBank,
    ShuffleSettings,
    Variant,
    VariantOption,
    VariantQuestion,
    option_label,
)

T = TypeVar("T")

_system_random = random.SystemRandom()


def shuffled(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a uniformly permuted copy of items (in-place Fisher-Yates on a copy)."""
    result = list(items)
    (rng or _system_random).shuffle(result)
    return result


def materialize(
    bank: QuestionBank,
    shuffle_questions: bool = False,
    shuffle_answers: bool = False,
    shuffle_all: bool = False,
    rng: Optional[random.Random] = None,
    variant_id: Optional[str] = None,
    exam_id: Optional[str] = None,
) -> Variant:
    """
    Produce one concrete variant of a bank.

    shuffle_all shuffles question order and, independently, every question's
    options. Otherwise each flag is applied on its own.

    Args:
        bank: Source question bank
        shuffle_questions: Permute question order
        shuffle_answers: Permute option order within each question
        shuffle_all: Permute both; takes precedence over the other flags
        rng: Random source; defaults to a SystemRandom instance
        variant_id: Identifier to assign; a uuid4 is generated when omitted
        exam_id: Owning exam id

    Returns:
        Frozen Variant with post-shuffle labels
    """
    if shuffle_all:
        order_questions = True
        order_answers = True
    else:
        order_questions = shuffle_questions
        order_answers = shuffle_answers

    questions: List[Question] = list(bank.questions)
    if order_questions:
        questions = shuffled(questions, rng)

    variant_questions = []
    for question in questions:
        options = list(question.options)
        if order_answers:
            options = shuffled(options, rng)
        variant_questions.append(
            VariantQuestion(
                text=question.text,
                options=tuple(
                    VariantOption(
                        label=option_label(index),
                        text=option.text,
                        is_correct=option.is_correct,
                    )
                    for index, option in enumerate(options)
                ),
            )
        )

    return Variant(
        id=variant_id or str(uuid.uuid4()),
        questions=tuple(variant_questions),
        exam_id=exam_id,
    )


def materialize_with_settings(
    bank: QuestionBank,
    settings: ShuffleSettings,
    rng: Optional[random.Random] = None,
    exam_id: Optional[str] = None,
) -> Variant:
    return materialize(
        bank,
        shuffle_questions=settings.shuffle_questions,
        shuffle_answers=settings.shuffle_answers,
        shuffle_all=settings.shuffle_all,
        rng=rng,
        exam_id=exam_id,
    )
