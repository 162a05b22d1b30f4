"""
Fill classification.

Measures how much of each bubble is ink and decides, per question, which
options were marked using a threshold adapted to that question's contrast.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np

from ..config import DetectionSettings
from .detector import CandidateBubble
from .grouper import QuestionGroup


@dataclass
class QuestionMarks:
    """Classification of one question."""

    question_index: int
    selected: List[str]
    fills: Dict[str, float]
    threshold: float


def fill_ratio(candidate: CandidateBubble, binary: np.ndarray) -> float:
    """
    Ink pixels inside the bubble's filled contour / pixels in that contour.

    Reads binary without modifying it, so calls may run concurrently.
    """
    x, y, w, h = candidate.bbox
    roi = binary[y : y + h, x : x + w]
    if roi.size == 0:
        return 0.0

    mask = np.zeros(roi.shape[:2], dtype=np.uint8)
    shifted = candidate.contour - np.array([[x, y]], dtype=candidate.contour.dtype)
    cv2.drawContours(mask, [shifted], -1, 255, thickness=cv2.FILLED)

    inside = mask > 0
    total = int(np.count_nonzero(inside))
    if total == 0:
        return 0.0
    ink = int(np.count_nonzero(roi[inside]))
    return ink / float(total)


def effective_threshold(fills: Sequence[float], settings: DetectionSettings) -> float:
    """min(global threshold, midpoint of the question's fills + margin)."""
    midpoint = (min(fills) + max(fills)) / 2.0
    return min(settings.fill_threshold, midpoint + settings.fill_margin)


class FillClassifier:
    """Decides which bubbles of each question are marked."""

    def __init__(self, settings: Optional[DetectionSettings] = None):
        """
        Args:
            settings: Detection tunables (fill threshold, margin, worker count)
        """
        self.settings = settings or DetectionSettings()

    def _measure(self, groups: Sequence[QuestionGroup], binary: np.ndarray) -> List[List[float]]:
        candidates = [b.candidate for g in groups for b in g.bubbles]
        with ThreadPoolExecutor(max_workers=self.settings.max_workers) as executor:
            flat = list(executor.map(lambda c: fill_ratio(c, binary), candidates))

        # all fills are known here; thresholds below need whole questions
        per_group: List[List[float]] = []
        position = 0
        for g in groups:
            per_group.append(flat[position : position + len(g.bubbles)])
            position += len(g.bubbles)
        return per_group

    def _decide(self, group: QuestionGroup, fills: List[float]) -> QuestionMarks:
        if not fills:
            return QuestionMarks(group.question_index, [], {}, self.settings.fill_threshold)
        threshold = effective_threshold(fills, self.settings)
        selected = [b.label for b, fill in zip(group.bubbles, fills) if fill > threshold]
        return QuestionMarks(
            question_index=group.question_index,
            selected=selected,
            fills={b.label: fill for b, fill in zip(group.bubbles, fills)},
            threshold=threshold,
        )

    def classify(self, group: QuestionGroup, binary: np.ndarray) -> QuestionMarks:
        """
        Classify a single question group.

        Args:
            group: Bubbles of one question
            binary: Binarized scan the group was detected on

        Returns:
            QuestionMarks with every option above the effective threshold
        """
        return self._decide(group, self._measure([group], binary)[0])

    def classify_all(
        self, groups: Sequence[QuestionGroup], binary: np.ndarray
    ) -> List[QuestionMarks]:
        """Classify every group, measuring all bubbles in one parallel pass."""
        fills = self._measure(groups, binary)
        return [self._decide(g, f) for g, f in zip(groups, fills)]
