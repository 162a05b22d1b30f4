"""Synthetic scans of a planned bubble grid, for calibration and tests."""

from __future__ import annotations

from typing import Mapping, Optional, Sequence, Union

import cv2
import numpy as np

from ..config import SheetGeometry
from .layout import plan

BLACK = (0, 0, 0)


def simulate_marked_scan(
    question_count: int,
    options_per_question: Union[int, Sequence[int]],
    marked: Mapping[int, Sequence[str]],
    page: int = 0,
    scale: float = 2.0,
    geometry: Optional[SheetGeometry] = None,
    outline_thickness: int = 2,
) -> np.ndarray:
    """
    Draw one grid page as a white BGR image with the given bubbles filled.

    Args:
        question_count: Questions on the sheet
        options_per_question: Option count(s), as passed to the planner
        marked: 0-based question index -> labels to fill in
        page: Grid page to draw
        scale: Pixels per PDF point
        geometry: Sheet geometry used by the planner

    Returns:
        uint8 BGR image of the full page
    """
    geometry = geometry or SheetGeometry()
    layout = plan(question_count, options_per_question, geometry)

    width = int(round(geometry.page_width * scale))
    height = int(round(geometry.page_height * scale))
    image = np.full((height, width, 3), 255, dtype=np.uint8)
    radius = int(round(geometry.bubble_radius * scale))

    for slot in layout.slots_for_page(page):
        center = (
            int(round(slot.x * scale)),
            int(round((geometry.page_height - slot.y) * scale)),
        )
        cv2.circle(image, center, radius, BLACK, outline_thickness)
        if slot.label in marked.get(slot.question_index, ()):
            cv2.circle(image, center, radius, BLACK, -1)

    return image
