"""
Answer Sheet Scanner

Runs scan pages through binarization, bubble detection, grid grouping and
fill classification, producing the selected labels per question. A paper
with several grid pages is read page by page and merged into one set of
selections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import cv2
import numpy as np

from ..config import OmrSettings, SheetGeometry
from .classifier import FillClassifier, QuestionMarks
from .detector import detect, drop_area_outliers
from .errors import UnreadableScanError
from .grouper import QuestionGroup, group_page
from .models import Variant
from .preprocess import binarize, to_grayscale

logger = logging.getLogger("edmcp_omr.core.scanner")

MARKED_COLOR = (0, 0, 255)
UNMARKED_COLOR = (255, 0, 0)


@dataclass
class ScanResult:
    """Result of scanning a single answer sheet image."""

    page: int
    selections: Dict[int, List[str]]
    marks: List[QuestionMarks]
    groups: List[QuestionGroup]
    candidates: int
    dpi: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "page": self.page,
            "dpi": round(self.dpi),
            "answers": {str(k + 1): v for k, v in sorted(self.selections.items())},
            "candidates": self.candidates,
            "groups": len(self.groups),
            "fills": {
                str(m.question_index + 1): {
                    "fills": {k: round(v, 3) for k, v in m.fills.items()},
                    "threshold": round(m.threshold, 3),
                }
                for m in self.marks
            },
            "grid": {
                str(g.question_index + 1): {
                    "column": g.column,
                    "row": g.row,
                    "row_bands": sorted({b.row_band for b in g.bubbles}),
                }
                for g in self.groups
            },
            "warnings": self.warnings,
        }


@dataclass
class PaperScan:
    """All grid pages read from one student's paper."""

    pages: List[ScanResult]
    warnings: List[str] = field(default_factory=list)

    @property
    def selections(self) -> Dict[int, List[str]]:
        merged: Dict[int, List[str]] = {}
        for result in self.pages:
            merged.update(result.selections)
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": [result.to_dict() for result in self.pages],
            "candidates": sum(result.candidates for result in self.pages),
            "warnings": self.warnings,
        }


def pixels_per_point(image: np.ndarray, geometry: SheetGeometry) -> float:
    """Scale of a full-page scan, from its height and the printed page height."""
    return image.shape[0] / geometry.page_height


def mask_outside_grid(binary: np.ndarray, geometry: SheetGeometry) -> np.ndarray:
    """
    Blank the header and footer of a full-page binary raster.

    Only the strip from SheetGeometry.grid_band() is kept, so title, variant
    id, option headers and footer text never reach the detector.
    """
    scale = pixels_per_point(binary, geometry)
    top, bottom = geometry.grid_band()
    top_px = max(0, int(round((geometry.page_height - top) * scale)))
    bottom_px = min(binary.shape[0], int(round((geometry.page_height - bottom) * scale)))

    masked = np.zeros_like(binary)
    masked[top_px:bottom_px] = binary[top_px:bottom_px]
    return masked


class AnswerSheetScanner:
    """Scanner for photographed or scanned answer sheets."""

    def __init__(self, settings: Optional[OmrSettings] = None):
        """
        Initialize scanner with shared settings.

        Args:
            settings: Geometry and detection settings; must match the ones the
                sheet was generated with
        """
        self.settings = settings or OmrSettings()
        self.classifier = FillClassifier(self.settings.detection)

    def scan_image(
        self,
        image: np.ndarray,
        question_count: int,
        options_per_question: Union[int, Sequence[int]],
        page: int = 0,
    ) -> ScanResult:
        """
        Scan a single answer sheet image.

        The image must show the whole printed page, upright. Its resolution is
        taken from the image height, and the bubble area band is scaled to it.

        Args:
            image: OpenCV image (gray, BGR or BGRA)
            question_count: Questions on the whole sheet
            options_per_question: Options per question (int or per question)
            page: 0-indexed grid page shown in the image

        Returns:
            ScanResult with selected labels keyed by 0-based question index

        Raises:
            UnreadableScanError: If no complete question group is found
        """
        geometry = self.settings.geometry
        shape = geometry.page_shape(question_count, page)
        if isinstance(options_per_question, int):
            grid_options = options_per_question
        else:
            page_counts = list(options_per_question)[
                shape.question_offset : shape.question_offset + shape.question_count
            ]
            grid_options = max(page_counts)

        dpi = pixels_per_point(image, geometry) * 72.0
        detection = self.settings.detection.at_dpi(dpi)

        binary = mask_outside_grid(binarize(image, detection), geometry)
        found = detect(binary, detection)
        candidates = drop_area_outliers(found, detection.median_area_range)
        height, width = binary.shape[:2]
        groups = group_page(
            candidates,
            geometry,
            question_count,
            grid_options,
            (width, height),
            page=page,
        )

        marks = self.classifier.classify_all(groups, binary)
        selections = {m.question_index: m.selected for m in marks}

        warnings: List[str] = []
        if len(groups) < shape.question_count:
            warnings.append(
                f"Read {len(groups)} of {shape.question_count} questions on page {page + 1}; "
                "unread questions are scored as unanswered."
            )
        for m in marks:
            if len(m.selected) > 1:
                warnings.append(
                    f"Question {m.question_index + 1}: multiple marks ({', '.join(m.selected)})."
                )

        logger.info(
            "Page %d at %.0f dpi: %d candidates (%d outliers), %d groups, %d questions marked",
            page + 1,
            dpi,
            len(candidates),
            len(found) - len(candidates),
            len(groups),
            sum(1 for m in marks if m.selected),
        )
        return ScanResult(
            page=page,
            selections=selections,
            marks=marks,
            groups=groups,
            candidates=len(candidates),
            dpi=dpi,
            warnings=warnings,
        )

    def scan_variant(self, image: np.ndarray, variant: Variant, page: int = 0) -> ScanResult:
        """Scan an image of the given variant's grid page."""
        return self.scan_image(
            image, variant.question_count, variant.options_per_question(), page=page
        )

    def scan_pages(
        self, images: Sequence[np.ndarray], variant: Variant, first_page: int = 0
    ) -> PaperScan:
        """
        Scan consecutive grid pages of one paper.

        Args:
            images: Page images in order; images[i] shows grid page first_page + i
            variant: Variant printed on the paper
            first_page: Grid page shown in the first image

        Returns:
            PaperScan whose selections cover every page read. Images past the
            variant's last grid page (e.g. question pages) are skipped.

        Raises:
            ValueError: If there are no images or first_page is out of range
            UnreadableScanError: If any grid page cannot be read
        """
        if not images:
            raise ValueError("No pages to scan")
        grid_pages = self.settings.geometry.page_count(variant.question_count)
        if first_page < 0 or first_page >= grid_pages:
            raise ValueError(
                f"first_page must be between 0 and {max(0, grid_pages - 1)}, got {first_page}"
            )

        pages: List[ScanResult] = []
        warnings: List[str] = []
        for offset, image in enumerate(images):
            page = first_page + offset
            if page >= grid_pages:
                warnings.append(
                    f"Ignored {len(images) - offset} page(s) after grid page {grid_pages}."
                )
                break
            try:
                result = self.scan_variant(image, variant, page=page)
            except UnreadableScanError as e:
                raise UnreadableScanError(
                    f"Grid page {page + 1}: {e}", candidates=e.candidates
                ) from e
            pages.append(result)
            warnings.extend(result.warnings)

        scanned = {result.page for result in pages}
        for page in range(grid_pages):
            if page not in scanned:
                warnings.append(
                    f"Grid page {page + 1} was not submitted; its questions are scored "
                    "as unanswered."
                )
        return PaperScan(pages=pages, warnings=warnings)


def draw_debug_overlay(image: np.ndarray, result: ScanResult) -> np.ndarray:
    """
    Draw each grouped bubble's contour, centre and index on a copy of the image.

    Marked bubbles are red, unmarked blue.
    """
    gray = to_grayscale(image)
    overlay = cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)
    selected = {m.question_index: set(m.selected) for m in result.marks}

    for question in result.groups:
        marked = selected.get(question.question_index, set())
        for bubble in question.bubbles:
            color = MARKED_COLOR if bubble.label in marked else UNMARKED_COLOR
            candidate = bubble.candidate
            cv2.drawContours(overlay, [candidate.contour], -1, color, 2)
            center = (int(round(candidate.cx)), int(round(candidate.cy)))
            cv2.circle(overlay, center, 2, color, -1)
            x, y, _, _ = candidate.bbox
            cv2.putText(
                overlay,
                str(bubble.bubble_index),
                (x, max(0, y - 5)),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.5,
                color,
                1,
            )
    return overlay


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("Failed to encode image as PNG")
    return buffer.tobytes()
