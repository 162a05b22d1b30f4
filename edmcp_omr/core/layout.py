"""
Bubble grid layout planning.

Places one bubble per (question, option) on a multi-column, multi-page grid.
The placement is a pure function of question/option counts and SheetGeometry;
the scan grouper recomputes the same page shapes from the same geometry
instead of reading a stored descriptor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..config import SheetGeometry
from .errors import MalformedBankError
from .models import option_label

logger = logging.getLogger("edmcp_omr.core.layout")


@dataclass(frozen=True)
class BubbleSlot:
    """One printed bubble. Coordinates are PDF points, bottom-left origin."""

    question_index: int
    option_index: int
    label: str
    page: int
    column: int
    row: int
    x: float
    y: float


@dataclass(frozen=True)
class GridPage:
    """Per-page grid parameters the renderer needs for headers and labels."""

    page: int
    question_offset: int
    question_count: int
    columns: int
    max_options: int
    column_band_width: float


@dataclass(frozen=True)
class Layout:
    """Ordered bubble slots for a whole sheet."""

    slots: Tuple[BubbleSlot, ...]
    pages: Tuple[GridPage, ...]
    question_count: int
    geometry_version: int

    def slots_for_question(self, question_index: int) -> List[BubbleSlot]:
        return [s for s in self.slots if s.question_index == question_index]

    def slots_for_page(self, page: int) -> List[BubbleSlot]:
        return [s for s in self.slots if s.page == page]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geometry_version": self.geometry_version,
            "question_count": self.question_count,
            "pages": [
                {
                    "page": p.page,
                    "question_offset": p.question_offset,
                    "question_count": p.question_count,
                    "columns": p.columns,
                    "max_options": p.max_options,
                }
                for p in self.pages
            ],
            "slots": [
                {
                    "question": s.question_index + 1,
                    "option": s.label,
                    "page": s.page,
                    "column": s.column,
                    "row": s.row,
                    "x": round(s.x, 3),
                    "y": round(s.y, 3),
                }
                for s in self.slots
            ],
        }


def column_base_x(
    geometry: SheetGeometry, columns: int, column: int, max_options: int
) -> float:
    """
    X of the first (option A) bubble centre in a column.

    The page width is divided into `columns` equal bands and the bubble block is
    centred inside its band.
    """
    band = geometry.page_width / columns
    block = (
        geometry.label_width
        + (max_options - 1) * geometry.option_step
        + geometry.bubble_diameter
    )
    if block > band:
        raise ValueError(
            f"Question grid cannot fit: {max_options} options need {block:.1f}pt "
            f"but each of {columns} columns is {band:.1f}pt wide. "
            "Reduce options per question or bubble size."
        )
    left = column * band + (band - block) / 2.0
    return left + geometry.label_width + geometry.bubble_radius


def row_y(geometry: SheetGeometry, row: int) -> float:
    """Y of a bubble row centre; row 0 sits one row height below the header."""
    base_y = geometry.grid_top - geometry.row_height
    return base_y - row * geometry.row_height


def _normalize_option_counts(
    question_count: int, options_per_question: Union[int, Sequence[Optional[int]]]
) -> List[int]:
    if question_count <= 0:
        raise MalformedBankError("Question bank has no questions")

    if isinstance(options_per_question, int):
        counts: List[Optional[int]] = [options_per_question] * question_count
    elif options_per_question is None:
        raise MalformedBankError("Option counts are missing")
    else:
        counts = list(options_per_question)
        if len(counts) != question_count:
            raise MalformedBankError(
                f"Expected {question_count} option counts, got {len(counts)}"
            )

    normalized: List[int] = []
    for index, count in enumerate(counts):
        if count is None:
            raise MalformedBankError(f"Question {index + 1} is missing its options")
        if count <= 0:
            raise MalformedBankError(f"Question {index + 1} has no options")
        normalized.append(int(count))
    return normalized


def plan(
    question_count: int,
    options_per_question: Union[int, Sequence[Optional[int]]],
    geometry: Optional[SheetGeometry] = None,
) -> Layout:
    """
    Compute every bubble position for a sheet.

    Args:
        question_count: Number of questions on the sheet
        options_per_question: One count for all questions, or a count per question
        geometry: Shared sheet geometry; defaults to SheetGeometry()

    Returns:
        Layout with slots in (page, column, row, option) order

    Raises:
        MalformedBankError: If there are no questions or a question has no options
        ValueError: If a column band is too narrow for the bubble block
    """
    geometry = geometry or SheetGeometry()
    counts = _normalize_option_counts(question_count, options_per_question)

    slots: List[BubbleSlot] = []
    pages: List[GridPage] = []
    for page in range(geometry.page_count(question_count)):
        shape = geometry.page_shape(question_count, page)
        page_counts = counts[shape.question_offset : shape.question_offset + shape.question_count]
        max_options = max(page_counts)
        pages.append(
            GridPage(
                page=page,
                question_offset=shape.question_offset,
                question_count=shape.question_count,
                columns=shape.columns,
                max_options=max_options,
                column_band_width=geometry.page_width / shape.columns,
            )
        )

        for local_index, option_count in enumerate(page_counts):
            column = local_index // shape.rows_per_column
            row = local_index % shape.rows_per_column
            base_x = column_base_x(geometry, shape.columns, column, max_options)
            y = row_y(geometry, row)
            for option_index in range(option_count):
                slots.append(
                    BubbleSlot(
                        question_index=shape.question_offset + local_index,
                        option_index=option_index,
                        label=option_label(option_index),
                        page=page,
                        column=column,
                        row=row,
                        x=base_x + option_index * geometry.option_step,
                        y=y,
                    )
                )

    logger.debug(
        "Planned %d bubbles for %d questions over %d grid page(s)",
        len(slots),
        question_count,
        len(pages),
    )
    return Layout(
        slots=tuple(slots),
        pages=tuple(pages),
        question_count=question_count,
        geometry_version=geometry.version,
    )


def _options_of(question: Any) -> Optional[Sequence[Any]]:
    if isinstance(question, dict):
        options = question.get("options")
    else:
        options = getattr(question, "options", None)
    if options is None or isinstance(options, (str, bytes)):
        return None
    try:
        len(options)
    except TypeError:
        return None
    return options


def plan_for_questions(
    questions: Any, geometry: Optional[SheetGeometry] = None
) -> Layout:
    """
    Plan a layout straight from a question structure.

    Args:
        questions: Sequence of question dicts or objects exposing `options`

    Raises:
        MalformedBankError: If the structure is missing, empty, or a question
            has no option list
    """
    if questions is None or isinstance(questions, (str, bytes, dict)):
        raise MalformedBankError("Missing or malformed questions structure")
    try:
        question_list = list(questions)
    except TypeError:
        raise MalformedBankError("Missing or malformed questions structure")

    counts: List[Optional[int]] = []
    for question in question_list:
        options = _options_of(question)
        counts.append(len(options) if options is not None else None)
    return plan(len(question_list), counts, geometry)
