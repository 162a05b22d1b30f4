"""
Answer sheet scoring.

Compares the labels read from a sheet with the answer key stored in the
variant that was printed, and builds gradebook exports across submissions.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import MissingAnswerKeyError
from .models import Variant, VariantQuestion


class QuestionStatus(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNANSWERED = "unanswered"
    MULTI_SELECTED = "multi-selected"
    INVALID = "invalid"


@dataclass(frozen=True)
class QuestionOutcome:
    """Scoring of a single question."""

    question: int
    selected_labels: List[str]
    correct_label: Optional[str]
    status: QuestionStatus

    @property
    def is_correct(self) -> bool:
        return self.status is QuestionStatus.CORRECT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "selected": list(self.selected_labels),
            "correct": self.correct_label,
            "is_correct": self.is_correct,
            "is_multi": self.status is QuestionStatus.MULTI_SELECTED,
            "status": self.status.value,
        }


@dataclass
class ScoreResult:
    """Per-question and aggregate result for one submission."""

    correct_count: int
    total: int
    per_question: List[QuestionOutcome] = field(default_factory=list)

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.correct_count / self.total * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.correct_count,
            "total": self.total,
            "percent": self.percent,
            "breakdown": [o.to_dict() for o in self.per_question],
        }


def _normalize_labels(labels: Optional[Iterable[str]]) -> List[str]:
    if not labels:
        return []
    seen: List[str] = []
    for label in labels:
        text = str(label).strip().upper()
        if text and text not in seen:
            seen.append(text)
    return seen


def _correct_label(question: VariantQuestion, index: int) -> str:
    label = question.correct_label
    if label is None:
        raise MissingAnswerKeyError(index)
    return label


def score_question(
    question: VariantQuestion, index: int, selected: Optional[Iterable[str]]
) -> QuestionOutcome:
    """
    Score one question.

    Order: invalid key, unanswered, multi-selected, correct, incorrect.
    """
    labels = _normalize_labels(selected)
    try:
        correct = _correct_label(question, index)
    except MissingAnswerKeyError:
        return QuestionOutcome(index + 1, labels, None, QuestionStatus.INVALID)

    if not labels:
        status = QuestionStatus.UNANSWERED
    elif len(labels) > 1:
        status = QuestionStatus.MULTI_SELECTED
    elif labels[0] == correct:
        status = QuestionStatus.CORRECT
    else:
        status = QuestionStatus.INCORRECT
    return QuestionOutcome(index + 1, labels, correct, status)


def score(
    variant: Variant, selections: Mapping[int, Optional[Sequence[str]]]
) -> ScoreResult:
    """
    Score a submission against the variant's stored answer key.

    Args:
        variant: The printed variant (sole source of the answer key)
        selections: 0-based question index -> selected labels; missing
            questions count as unanswered

    Returns:
        ScoreResult; invalid questions count toward total but never as correct
    """
    outcomes = [
        score_question(question, index, selections.get(index))
        for index, question in enumerate(variant.questions)
    ]
    return ScoreResult(
        correct_count=sum(1 for o in outcomes if o.is_correct),
        total=len(variant.questions),
        per_question=outcomes,
    )


def generate_gradebook_csv(submissions: Sequence[Dict[str, Any]]) -> bytes:
    """
    Build a gradebook CSV from stored submissions.

    Args:
        submissions: Dicts with id, submitter, variant_id, correct_count,
            total_count, created_at

    Returns:
        CSV content as bytes
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["ID", "Submitter", "Variant", "Score", "Total", "Percentage", "Date"])

    for sub in submissions:
        total = sub.get("total_count") or 0
        correct = sub.get("correct_count") or 0
        percent = f"{(correct / total) * 100:.1f}%" if total else "0.0%"
        writer.writerow(
            [
                sub.get("id"),
                sub.get("submitter") or "Anonymous",
                sub.get("variant_id") or "N/A",
                correct,
                total,
                percent,
                sub.get("created_at", ""),
            ]
        )

    return output.getvalue().encode("utf-8")


def get_stats(submissions: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Mean/min/max score and mean percent across submissions."""
    if not submissions:
        return {
            "count": 0,
            "mean_score": 0.0,
            "min_score": 0.0,
            "max_score": 0.0,
            "mean_percent": 0.0,
        }

    scores = [s.get("correct_count") or 0 for s in submissions]
    percents = [
        (s.get("correct_count") or 0) / s["total_count"] * 100 if s.get("total_count") else 0.0
        for s in submissions
    ]
    return {
        "count": len(submissions),
        "mean_score": round(sum(scores) / len(scores), 2),
        "min_score": round(min(scores), 2),
        "max_score": round(max(scores), 2),
        "mean_percent": round(sum(percents) / len(percents), 2),
    }
