"""
Bubble grouping.

Re-derives the layout grid on the scan: the image is cut into the same number
of equal column bands the planner used, and each column's bubbles are read
top to bottom in runs of one question's options.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import SheetGeometry
from .detector import CandidateBubble
from .errors import UnreadableScanError
from .models import option_label

logger = logging.getLogger("edmcp_omr.core.grouper")


@dataclass
class GroupedBubble:
    """A candidate bound to its grid slot."""

    candidate: CandidateBubble
    label: str
    option_index: int
    bubble_index: int
    row_band: int


@dataclass
class QuestionGroup:
    """The bubbles of one question, ordered left to right (A, B, C, ...)."""

    question_index: int
    column: int
    row: int
    bubbles: List[GroupedBubble]

    @property
    def labels(self) -> List[str]:
        return [b.label for b in self.bubbles]


def _band(value: float, size: float, count: int) -> int:
    band = int(value // (size / count))
    return min(max(band, 0), count - 1)


def group(
    candidates: Sequence[CandidateBubble],
    expected_columns: int,
    expected_rows_per_column: int,
    options_per_question: int,
    image_size: Tuple[int, int],
    question_offset: int = 0,
    question_count: Optional[int] = None,
) -> List[QuestionGroup]:
    """
    Assign candidates to (question, option) slots.

    Args:
        candidates: Detected bubbles
        expected_columns: Column count of the printed grid page
        expected_rows_per_column: Questions per column
        options_per_question: Bubbles per question
        image_size: (width, height) of the scan in pixels
        question_offset: Global index of the page's first question
        question_count: Questions printed on the page; groups past it are dropped

    Returns:
        Accepted groups in (column, row) order

    Raises:
        UnreadableScanError: If no complete question group was formed
    """
    if expected_columns <= 0 or expected_rows_per_column <= 0 or options_per_question <= 0:
        raise ValueError("Grid dimensions must be positive")

    width, height = image_size
    by_column: Dict[int, List[Tuple[CandidateBubble, int]]] = {
        col: [] for col in range(expected_columns)
    }
    for candidate in candidates:
        column = _band(candidate.cx, width, expected_columns)
        row_band = _band(candidate.cy, height, expected_rows_per_column)
        by_column[column].append((candidate, row_band))

    groups: List[QuestionGroup] = []
    discarded = 0
    for column in range(expected_columns):
        column_bubbles = sorted(by_column[column], key=lambda item: item[0].cy)
        for row in range(expected_rows_per_column):
            start = row * options_per_question
            run = column_bubbles[start : start + options_per_question]
            if not run:
                break
            if len(run) != options_per_question:
                discarded += 1
                continue

            local_index = column * expected_rows_per_column + row
            if question_count is not None and local_index >= question_count:
                discarded += 1
                continue

            run = sorted(run, key=lambda item: item[0].cx)
            base_index = (
                column * expected_rows_per_column * options_per_question
                + row * options_per_question
            )
            groups.append(
                QuestionGroup(
                    question_index=question_offset + local_index,
                    column=column,
                    row=row,
                    bubbles=[
                        GroupedBubble(
                            candidate=candidate,
                            label=option_label(option_index),
                            option_index=option_index,
                            bubble_index=base_index + option_index,
                            row_band=row_band,
                        )
                        for option_index, (candidate, row_band) in enumerate(run)
                    ],
                )
            )

    logger.info(
        "Formed %d question groups from %d candidates (%d runs discarded)",
        len(groups),
        len(candidates),
        discarded,
    )
    if not groups:
        raise UnreadableScanError(
            "Could not read sheet: no valid question groups found",
            candidates=len(candidates),
        )
    return groups


def group_page(
    candidates: Sequence[CandidateBubble],
    geometry: SheetGeometry,
    question_count: int,
    options_per_question: int,
    image_size: Tuple[int, int],
    page: int = 0,
) -> List[QuestionGroup]:
    """Group candidates for one grid page using the shared page shape."""
    shape = geometry.page_shape(question_count, page)
    return group(
        candidates,
        expected_columns=shape.columns,
        expected_rows_per_column=shape.rows_per_column,
        options_per_question=options_per_question,
        image_size=image_size,
        question_offset=shape.question_offset,
        question_count=shape.question_count,
    )
