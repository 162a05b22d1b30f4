"""Tests for configuration loading and shared page shapes."""

import pytest

from edmcp_omr.config import (
    DetectionSettings,
    OmrSettings,
    SheetGeometry,
    get_db_path,
    load_settings,
    mm_to_points,
)


class TestSheetGeometry:
    """Tests for the geometry shared by the planner and the grouper."""

    def test_bubble_size(self):
        geometry = SheetGeometry()

        assert geometry.bubble_diameter == pytest.approx(mm_to_points(8.5))
        assert geometry.option_step == pytest.approx(mm_to_points(12.5))

    @pytest.mark.parametrize(
        "count,pages", [(1, 1), (30, 1), (31, 2), (60, 2), (61, 3)]
    )
    def test_page_count(self, count, pages):
        assert SheetGeometry().page_count(count) == pages

    def test_page_shape(self):
        shape = SheetGeometry().page_shape(45, 1)

        assert shape.question_offset == 30
        assert shape.question_count == 15
        assert shape.columns == 2
        assert shape.rows_per_column == 10

    def test_page_shape_out_of_range(self):
        with pytest.raises(ValueError):
            SheetGeometry().page_shape(10, 1)

    def test_grid_band_holds_every_bubble_row(self):
        geometry = SheetGeometry()
        top, bottom = geometry.grid_band()
        first_row = geometry.grid_top - geometry.row_height
        last_row = geometry.grid_top - geometry.questions_per_column * geometry.row_height

        assert first_row + geometry.bubble_radius < top < geometry.grid_top
        assert geometry.page_margin < bottom < last_row - geometry.bubble_radius


class TestLoadSettings:
    """Tests for OMR_* environment overrides."""

    def test_defaults(self, monkeypatch):
        for key in ("OMR_FILL_THRESHOLD", "OMR_MIN_BUBBLE_AREA", "OMR_QUESTIONS_PER_COLUMN"):
            monkeypatch.delenv(key, raising=False)

        settings = load_settings()

        assert settings.detection.fill_threshold == DetectionSettings().fill_threshold
        assert settings.geometry.questions_per_column == 10

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("OMR_FILL_THRESHOLD", "0.6")
        monkeypatch.setenv("OMR_MIN_BUBBLE_AREA", "150")
        monkeypatch.setenv("OMR_QUESTIONS_PER_COLUMN", "8")
        monkeypatch.setenv("OMR_BUBBLE_DIAMETER_MM", "7")

        settings = load_settings()

        assert settings.detection.fill_threshold == 0.6
        assert settings.detection.min_bubble_area == 150
        assert settings.geometry.questions_per_column == 8
        assert settings.geometry.bubble_diameter == pytest.approx(mm_to_points(7))

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("OMR_FILL_THRESHOLD", "high")

        with pytest.raises(ValueError, match="OMR_FILL_THRESHOLD"):
            load_settings()

    def test_base_settings_are_not_mutated(self, monkeypatch):
        monkeypatch.setenv("OMR_FILL_MARGIN", "0.2")
        base = OmrSettings()

        settings = load_settings(base)

        assert settings.detection.fill_margin == 0.2
        assert base.detection.fill_margin == DetectionSettings().fill_margin

    def test_db_path_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OMR_DB_PATH", str(tmp_path / "custom.db"))

        assert get_db_path() == tmp_path / "custom.db"
