"""
Bubble candidate detection.

Keeps outer contours of the binary raster that look like printed bubbles:
the right size, roughly square bounding box, and round enough.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import DetectionSettings

logger = logging.getLogger("edmcp_omr.core.detector")


@dataclass
class CandidateBubble:
    """A contour that passed the bubble filters."""

    contour: np.ndarray
    area: float
    centroid: Tuple[float, float]
    bbox: Tuple[int, int, int, int]
    circularity: float

    @property
    def cx(self) -> float:
        return self.centroid[0]

    @property
    def cy(self) -> float:
        return self.centroid[1]


def circularity(area: float, perimeter: float) -> float:
    """4*pi*area / perimeter^2; 1.0 for a perfect circle."""
    if perimeter <= 0:
        return 0.0
    return 4.0 * math.pi * area / (perimeter * perimeter)


def _centroid(contour: np.ndarray, bbox: Tuple[int, int, int, int]) -> Tuple[float, float]:
    moments = cv2.moments(contour)
    if moments["m00"] == 0:
        x, y, w, h = bbox
        return x + w / 2.0, y + h / 2.0
    return moments["m10"] / moments["m00"], moments["m01"] / moments["m00"]


def detect(
    binary: np.ndarray, settings: Optional[DetectionSettings] = None
) -> List[CandidateBubble]:
    """
    Extract bubble-shaped contours from a binarized scan.

    Args:
        binary: uint8 raster with ink as 255
        settings: Area band, aspect range, and circularity minimum

    Returns:
        Candidates in contour order (unspecified)
    """
    settings = settings or DetectionSettings()
    aspect_min, aspect_max = settings.aspect_ratio_range

    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    candidates: List[CandidateBubble] = []
    for contour in contours:
        area = cv2.contourArea(contour)
        if area < settings.min_bubble_area or area > settings.max_bubble_area:
            continue

        x, y, w, h = cv2.boundingRect(contour)
        if h == 0:
            continue
        aspect = w / float(h)
        if aspect < aspect_min or aspect > aspect_max:
            continue

        roundness = circularity(area, cv2.arcLength(contour, True))
        if roundness < settings.circularity_min:
            continue

        bbox = (int(x), int(y), int(w), int(h))
        candidates.append(
            CandidateBubble(
                contour=contour,
                area=float(area),
                centroid=_centroid(contour, bbox),
                bbox=bbox,
                circularity=roundness,
            )
        )

    logger.debug("Kept %d of %d contours as bubble candidates", len(candidates), len(contours))
    return candidates


def drop_area_outliers(
    candidates: Sequence[CandidateBubble], area_range: Tuple[float, float] = (0.5, 2.0)
) -> List[CandidateBubble]:
    """
    Keep candidates whose area is within area_range times the median area.

    Printed bubbles outnumber stray round marks (digits, letters) on a grid
    page, so the median is a bubble.
    """
    if not candidates:
        return []
    low, high = area_range
    median = float(np.median([c.area for c in candidates]))
    kept = [c for c in candidates if low * median <= c.area <= high * median]
    if len(kept) != len(candidates):
        logger.debug(
            "Dropped %d candidates outside %.0f-%.0f px area",
            len(candidates) - len(kept),
            low * median,
            high * median,
        )
    return kept
