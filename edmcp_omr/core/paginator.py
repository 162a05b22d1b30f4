"""
Question text pagination.

Wraps question and option text with reportlab font metrics and packs each
question's block into columns and pages. Packing is restartable from any
question index so callers can keep adding pages until every question is placed.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from reportlab.pdfbase.pdfmetrics import stringWidth

from ..config import SheetGeometry
from .models import option_label

logger = logging.getLogger("edmcp_omr.core.paginator")

QUESTION_WRAP_INSET = 10.0
OPTION_WRAP_INSET = 20.0
OPTION_INDENT = 10.0
OPTION_SPACING = 2.0


@dataclass(frozen=True)
class TextBlock:
    """A question's wrapped lines placed in one column of one text page."""

    page: int
    column: int
    question_index: int
    question_lines: Tuple[str, ...]
    option_lines: Tuple[Tuple[str, ...], ...]
    x: float
    y: float
    height: float

    @property
    def lines(self) -> Tuple[str, ...]:
        """Question lines followed by every option's lines, in drawing order."""
        flat: List[str] = list(self.question_lines)
        for lines in self.option_lines:
            flat.extend(lines)
        return tuple(flat)


def wrap_text(
    text: str, max_width: float, font_name: str = "Helvetica", font_size: float = 12.0
) -> List[str]:
    """
    Greedy word wrap.

    Words are added to the current line while its rendered width stays within
    max_width. A single word wider than max_width gets a line of its own.
    """
    lines: List[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if current and stringWidth(candidate, font_name, font_size) > max_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def text_column_count(question_count: int, geometry: SheetGeometry) -> int:
    """Columns per text page; scales with the number of questions like the grid."""
    capped = min(geometry.max_questions_per_grid_page, max(1, question_count))
    return math.ceil(capped / geometry.questions_per_column)


def column_width(columns: int, geometry: SheetGeometry) -> float:
    usable = geometry.page_width - 2 * geometry.page_margin
    return (usable - (columns - 1) * geometry.text_column_gap) / columns


def _paragraph_height(line_count: int, geometry: SheetGeometry) -> float:
    if line_count == 0:
        return 0.0
    return line_count * geometry.text_font_size + (line_count - 1) * geometry.text_line_gap


def _question_parts(question: Any) -> Tuple[str, List[str]]:
    if isinstance(question, dict):
        text = question.get("text") or ""
        options = question.get("options") or []
        option_texts = [
            (o.get("text") or "") if isinstance(o, dict) else str(o) for o in options
        ]
    else:
        text = getattr(question, "text", "") or ""
        option_texts = [getattr(o, "text", "") or "" for o in getattr(question, "options", ())]
    return text, option_texts


def _build_block(
    question: Any,
    question_index: int,
    width: float,
    geometry: SheetGeometry,
) -> Tuple[Tuple[str, ...], Tuple[Tuple[str, ...], ...], float]:
    text, option_texts = _question_parts(question)
    font, size = geometry.text_font_name, geometry.text_font_size

    question_lines = wrap_text(
        f"{question_index + 1}. {text}", width - QUESTION_WRAP_INSET, font, size
    )
    height = _paragraph_height(len(question_lines), geometry) + geometry.text_block_spacing

    option_lines: List[Tuple[str, ...]] = []
    for index, option_text in enumerate(option_texts):
        lines = wrap_text(
            f"{option_label(index)}. {option_text}", width - OPTION_WRAP_INSET, font, size
        )
        option_lines.append(tuple(lines))
        height += _paragraph_height(len(lines), geometry) + OPTION_SPACING

    height += geometry.text_block_spacing
    return tuple(question_lines), tuple(option_lines), height


def paginate_page(
    questions: Sequence[Any],
    start_index: int,
    geometry: Optional[SheetGeometry] = None,
    page: int = 0,
) -> Tuple[List[TextBlock], int]:
    """
    Fill one text page starting at start_index.

    Blocks go down a column until the next block would cross the bottom limit,
    then move to the next column. A block never spans two columns.

    Args:
        questions: Questions in presentation order
        start_index: First question to place on this page
        geometry: Shared sheet geometry
        page: Page number recorded on the produced blocks

    Returns:
        (blocks placed on this page, index of the first question not placed)
    """
    geometry = geometry or SheetGeometry()
    columns = text_column_count(len(questions), geometry)
    width = column_width(columns, geometry)
    start_y = geometry.page_height - geometry.page_margin - geometry.text_font_size
    min_y = geometry.page_margin + geometry.text_bottom_clearance

    blocks: List[TextBlock] = []
    column = 0
    cursor_y = start_y
    column_used = False
    index = start_index

    while index < len(questions):
        question_lines, option_lines, height = _build_block(
            questions[index], index, width, geometry
        )
        if cursor_y - height < min_y:
            if column_used:
                column += 1
                if column >= columns:
                    break
                cursor_y = start_y
                column_used = False
                continue
            logger.warning(
                "Question %d is taller than a column (%.1fpt); placing it alone",
                index + 1,
                height,
            )

        blocks.append(
            TextBlock(
                page=page,
                column=column,
                question_index=index,
                question_lines=question_lines,
                option_lines=option_lines,
                x=geometry.page_margin + column * (width + geometry.text_column_gap),
                y=cursor_y,
                height=height,
            )
        )
        cursor_y -= height
        column_used = True
        index += 1

    return blocks, index


def paginate(
    questions: Sequence[Any], geometry: Optional[SheetGeometry] = None
) -> List[TextBlock]:
    """
    Place every question on as many text pages as needed.

    Returns:
        Blocks ordered by page, column, then question
    """
    geometry = geometry or SheetGeometry()
    blocks: List[TextBlock] = []
    page = 0
    next_index = 0
    while next_index < len(questions):
        page_blocks, next_index = paginate_page(questions, next_index, geometry, page)
        blocks.extend(page_blocks)
        page += 1
    return blocks
