"""
Central configuration loading for the OMR exam workflow.

Layout geometry and detection tunables are plain value objects so that the
exact same settings can be handed to sheet generation and to scan grading.
Environment overrides come from a shared .env file loaded with python-dotenv.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

MM_TO_POINTS = 72.0 / 25.4
A4_POINTS = (595.28, 841.89)

GEOMETRY_VERSION = 1


def mm_to_points(value: float) -> float:
    return value * MM_TO_POINTS


@dataclass(frozen=True)
class PageShape:
    """Questions placed on one bubble-grid page."""

    page: int
    question_offset: int
    question_count: int
    columns: int
    rows_per_column: int


@dataclass(frozen=True)
class SheetGeometry:
    """
    Page and bubble-grid constants shared by sheet generation and scanning.

    All lengths are PDF points (1/72 inch) with a bottom-left origin, the same
    convention the renderer draws in.
    """

    page_width: float = A4_POINTS[0]
    page_height: float = A4_POINTS[1]
    page_margin: float = 28.35
    bubble_diameter: float = mm_to_points(8.5)
    bubble_margin: float = mm_to_points(4.0)
    questions_per_column: int = 10
    max_questions_per_grid_page: int = 30
    label_width: float = 24.0
    title_font_size: float = 24.0
    grid_top_offset: float = 60.0
    text_font_name: str = "Helvetica"
    text_font_size: float = 12.0
    text_line_gap: float = 2.0
    text_block_spacing: float = 6.0
    text_column_gap: float = 40.0
    text_bottom_clearance: float = 30.0
    version: int = GEOMETRY_VERSION

    @property
    def bubble_radius(self) -> float:
        return self.bubble_diameter / 2.0

    @property
    def option_step(self) -> float:
        return self.bubble_diameter + self.bubble_margin

    @property
    def row_height(self) -> float:
        return self.bubble_diameter + mm_to_points(2.0) + 18.0

    @property
    def grid_top(self) -> float:
        """Y of the option header row; the first bubble row sits one row below."""
        return (
            self.page_height
            - self.page_margin
            - self.title_font_size
            - self.grid_top_offset
        )

    def grid_band(self) -> Tuple[float, float]:
        """
        (top, bottom) Y of the strip of a grid page that holds bubbles.

        Each edge sits halfway between the nearest bubble row and the printed
        text beyond it (option headers above, footer below). The scanner
        ignores everything outside this strip.
        """
        first_row_top = self.grid_top - self.row_height + self.bubble_radius
        top = (self.grid_top + first_row_top) / 2.0
        last_row_bottom = (
            self.grid_top - self.questions_per_column * self.row_height - self.bubble_radius
        )
        bottom = max(last_row_bottom - self.row_height / 2.0, self.page_margin + 12.0)
        return top, bottom

    def page_count(self, question_count: int) -> int:
        """Number of bubble-grid pages needed for question_count questions."""
        if question_count <= 0:
            return 0
        return math.ceil(question_count / self.max_questions_per_grid_page)

    def page_shape(self, question_count: int, page: int) -> PageShape:
        """
        Shape of grid page `page` (0-indexed) for a sheet with question_count questions.

        This is the one place that decides how many questions and columns a page
        carries; the planner and the scan grouper both call it.
        """
        pages = self.page_count(question_count)
        if page < 0 or page >= pages:
            raise ValueError(
                f"page must be between 0 and {max(0, pages - 1)} for "
                f"{question_count} questions, got {page}"
            )
        offset = page * self.max_questions_per_grid_page
        on_page = min(self.max_questions_per_grid_page, question_count - offset)
        columns = math.ceil(on_page / self.questions_per_column)
        return PageShape(
            page=page,
            question_offset=offset,
            question_count=on_page,
            columns=columns,
            rows_per_column=self.questions_per_column,
        )


@dataclass(frozen=True)
class DetectionSettings:
    """
    Tunables for binarization, bubble detection, and fill classification.

    Bubble areas are in square pixels at reference_dpi; the scanner rescales
    them to the resolution of each page it reads.
    """

    min_bubble_area: float = 200.0
    max_bubble_area: float = 5000.0
    aspect_ratio_range: Tuple[float, float] = (0.7, 1.3)
    circularity_min: float = 0.6
    median_area_range: Tuple[float, float] = (0.5, 2.0)
    reference_dpi: float = 150.0
    fill_threshold: float = 0.5
    fill_margin: float = 0.08
    blur_kernel: int = 5
    adaptive_block_size: Optional[int] = None
    adaptive_c: float = 25.0
    max_workers: Optional[int] = None

    def at_dpi(self, dpi: float) -> "DetectionSettings":
        """Copy with the bubble area band scaled from reference_dpi to dpi."""
        factor = (dpi / self.reference_dpi) ** 2
        return replace(
            self,
            min_bubble_area=self.min_bubble_area * factor,
            max_bubble_area=self.max_bubble_area * factor,
            reference_dpi=dpi,
        )


@dataclass(frozen=True)
class OmrSettings:
    """Complete configuration surface: grid geometry plus detection tunables."""

    geometry: SheetGeometry = field(default_factory=SheetGeometry)
    detection: DetectionSettings = field(default_factory=DetectionSettings)


def get_omr_root() -> Path:
    """
    Find the project root directory by looking for the .env file.

    Searches from the package location first, then upward from the current
    working directory.

    Returns:
        Path to the directory holding .env (or the package parent as fallback).
    """
    current = Path(__file__).resolve().parent.parent
    if (current / ".env").exists() or (current / ".env.example").exists():
        return current

    current = Path.cwd().resolve()
    for _ in range(10):
        if (current / ".env").exists() or (current / ".env.example").exists():
            return current
        if current.parent == current:
            break
        current = current.parent

    return Path(__file__).resolve().parent.parent


def load_omr_config(override: bool = False) -> Path:
    """
    Load environment variables from the central .env file.

    Args:
        override: If True, override existing environment variables.

    Returns:
        Path to the .env file that was loaded (or would be loaded if it exists).
    """
    env_path = get_omr_root() / ".env"
    load_dotenv(env_path, override=override)
    return env_path


def get_env(key: str, default: str | None = None) -> str | None:
    """Get an environment variable with optional default."""
    return os.environ.get(key, default)


def _env_float(key: str, default: float) -> float:
    value = get_env(key)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}")


def _env_int(key: str, default: Optional[int]) -> Optional[int]:
    value = get_env(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def load_settings(base: Optional[OmrSettings] = None) -> OmrSettings:
    """
    Build OmrSettings from OMR_* environment variables over the defaults.

    Args:
        base: Settings to start from. Defaults to OmrSettings().

    Returns:
        New OmrSettings with any environment overrides applied.
    """
    load_omr_config()
    base = base or OmrSettings()
    geometry = replace(
        base.geometry,
        bubble_diameter=mm_to_points(
            _env_float("OMR_BUBBLE_DIAMETER_MM", base.geometry.bubble_diameter / MM_TO_POINTS)
        ),
        bubble_margin=mm_to_points(
            _env_float("OMR_BUBBLE_MARGIN_MM", base.geometry.bubble_margin / MM_TO_POINTS)
        ),
        questions_per_column=_env_int(
            "OMR_QUESTIONS_PER_COLUMN", base.geometry.questions_per_column
        ),
        max_questions_per_grid_page=_env_int(
            "OMR_MAX_QUESTIONS_PER_GRID_PAGE", base.geometry.max_questions_per_grid_page
        ),
    )

    aspect_min = _env_float("OMR_ASPECT_RATIO_MIN", base.detection.aspect_ratio_range[0])
    aspect_max = _env_float("OMR_ASPECT_RATIO_MAX", base.detection.aspect_ratio_range[1])
    detection = replace(
        base.detection,
        min_bubble_area=_env_float("OMR_MIN_BUBBLE_AREA", base.detection.min_bubble_area),
        max_bubble_area=_env_float("OMR_MAX_BUBBLE_AREA", base.detection.max_bubble_area),
        aspect_ratio_range=(aspect_min, aspect_max),
        circularity_min=_env_float("OMR_CIRCULARITY_MIN", base.detection.circularity_min),
        reference_dpi=_env_float("OMR_REFERENCE_DPI", base.detection.reference_dpi),
        fill_threshold=_env_float("OMR_FILL_THRESHOLD", base.detection.fill_threshold),
        fill_margin=_env_float("OMR_FILL_MARGIN", base.detection.fill_margin),
        adaptive_block_size=_env_int(
            "OMR_ADAPTIVE_BLOCK_SIZE", base.detection.adaptive_block_size
        ),
        adaptive_c=_env_float("OMR_ADAPTIVE_C", base.detection.adaptive_c),
        max_workers=_env_int("OMR_MAX_WORKERS", base.detection.max_workers),
    )
    return OmrSettings(geometry=geometry, detection=detection)


def get_db_path() -> Path:
    """Database location: OMR_DB_PATH or data/edmcp_omr.db under the project root."""
    load_omr_config()
    configured = get_env("OMR_DB_PATH")
    if configured:
        return Path(configured)
    return get_omr_root() / "data" / "edmcp_omr.db"
