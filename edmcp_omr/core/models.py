"""
Exam data model: question banks and materialized variants.

A Variant is the frozen, shuffled copy of a bank that was printed. Its stored
structure is the only answer key consulted when a scan of that paper is graded.
"""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .errors import VariantFormatError

VARIANT_SCHEMA_VERSION = 1


def option_label(index: int) -> str:
    """Display label for a post-shuffle option index (0 -> "A")."""
    if index < 0:
        raise ValueError("option index cannot be negative")
    if index < len(string.ascii_uppercase):
        return string.ascii_uppercase[index]
    return f"{string.ascii_uppercase[index // 26 - 1]}{string.ascii_uppercase[index % 26]}"


@dataclass(frozen=True)
class Option:
    """A single answer option in the bank."""

    text: str
    is_correct: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "is_correct": self.is_correct}


@dataclass(frozen=True)
class Question:
    """A question with its options in authoring order."""

    text: str
    options: Tuple[Option, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "options": [o.to_dict() for o in self.options]}


@dataclass(frozen=True)
class QuestionBank:
    """Ordered, immutable sequence of questions."""

    questions: Tuple[Question, ...]

    def __len__(self) -> int:
        return len(self.questions)

    def to_dict(self) -> Dict[str, Any]:
        return {"questions": [q.to_dict() for q in self.questions]}


@dataclass(frozen=True)
class VariantOption:
    """An option as printed on a variant: its label and whether it is the key."""

    label: str
    text: str
    is_correct: bool


@dataclass(frozen=True)
class VariantQuestion:
    """A question as printed on a variant."""

    text: str
    options: Tuple[VariantOption, ...]

    @property
    def correct_label(self) -> Optional[str]:
        """Label of the correct option, or None if the stored key has none."""
        for option in self.options:
            if option.is_correct:
                return option.label
        return None

    @property
    def correct_text(self) -> Optional[str]:
        for option in self.options:
            if option.is_correct:
                return option.text
        return None


@dataclass(frozen=True)
class ShuffleSettings:
    """Per-exam shuffle policy."""

    shuffle_questions: bool = False
    shuffle_answers: bool = False
    shuffle_all: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "shuffle_questions": self.shuffle_questions,
            "shuffle_answers": self.shuffle_answers,
            "shuffle_all": self.shuffle_all,
        }


@dataclass(frozen=True)
class Variant:
    """One concretely ordered paper, bound to its own answer key."""

    id: str
    questions: Tuple[VariantQuestion, ...]
    exam_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    schema_version: int = VARIANT_SCHEMA_VERSION

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def options_per_question(self) -> List[int]:
        return [len(q.options) for q in self.questions]

    def answer_key(self) -> Dict[int, Optional[str]]:
        """Map of 0-based question index to correct label (None when missing)."""
        return {i: q.correct_label for i, q in enumerate(self.questions)}

    def structure(self) -> Dict[str, Any]:
        """Serializable structure stored alongside the variant record."""
        return {
            "schema_version": self.schema_version,
            "questions": [
                {
                    "text": q.text,
                    "options": [
                        {"label": o.label, "text": o.text, "is_correct": o.is_correct}
                        for o in q.options
                    ],
                }
                for q in self.questions
            ],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exam_id": self.exam_id,
            "created_at": self.created_at,
            "structure": self.structure(),
        }

    @classmethod
    def from_structure(
        cls,
        variant_id: str,
        structure: Any,
        exam_id: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> "Variant":
        """
        Rebuild a Variant from its stored structure.

        Args:
            variant_id: Variant identifier
            structure: Dict produced by Variant.structure()
            exam_id: Owning exam id
            created_at: ISO timestamp of generation

        Returns:
            Variant instance

        Raises:
            VariantFormatError: If the structure is not a supported schema
        """
        if not isinstance(structure, dict):
            raise VariantFormatError("Variant structure must be an object", variant_id)

        version = structure.get("schema_version")
        if version != VARIANT_SCHEMA_VERSION:
            raise VariantFormatError(
                f"Unsupported variant schema version: {version!r}", variant_id
            )

        raw_questions = structure.get("questions")
        if not isinstance(raw_questions, list):
            raise VariantFormatError("Variant structure has no questions list", variant_id)

        questions: List[VariantQuestion] = []
        for q_index, raw in enumerate(raw_questions):
            if not isinstance(raw, dict) or not isinstance(raw.get("options"), list):
                raise VariantFormatError(
                    f"Question {q_index + 1} is missing its options", variant_id
                )
            options = []
            for o_index, opt in enumerate(raw["options"]):
                if not isinstance(opt, dict):
                    raise VariantFormatError(
                        f"Question {q_index + 1} option {o_index + 1} is not an object",
                        variant_id,
                    )
                options.append(
                    VariantOption(
                        label=str(opt.get("label") or option_label(o_index)),
                        text=str(opt.get("text", "")),
                        is_correct=bool(opt.get("is_correct", False)),
                    )
                )
            questions.append(
                VariantQuestion(text=str(raw.get("text", "")), options=tuple(options))
            )

        return cls(
            id=variant_id,
            questions=tuple(questions),
            exam_id=exam_id,
            created_at=created_at or datetime.now().isoformat(),
            schema_version=version,
        )
