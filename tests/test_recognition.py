"""Tests for binarization, bubble detection, grouping and fill classification."""

import cv2
import numpy as np
import pytest

from edmcp_omr.config import DetectionSettings
from edmcp_omr.core.classifier import FillClassifier, effective_threshold, fill_ratio
from edmcp_omr.core.detector import CandidateBubble, circularity, detect, drop_area_outliers
from edmcp_omr.core.errors import UnreadableScanError
from edmcp_omr.core.grouper import group
from edmcp_omr.core.preprocess import (
    adaptive_block_size,
    binarize,
    decode_image,
    decode_pages,
    to_grayscale,
)


def make_candidate(cx, cy, radius=10):
    """Candidate with a square contour around (cx, cy); only position matters."""
    contour = np.array(
        [[[cx - radius, cy - radius]], [[cx + radius, cy - radius]],
         [[cx + radius, cy + radius]], [[cx - radius, cy + radius]]],
        dtype=np.int32,
    )
    return CandidateBubble(
        contour=contour,
        area=float((2 * radius) ** 2),
        centroid=(float(cx), float(cy)),
        bbox=(cx - radius, cy - radius, 2 * radius, 2 * radius),
        circularity=0.8,
    )


def grid_candidates(columns=1, rows=10, options=4, column_width=600):
    candidates = []
    for column in range(columns):
        for row in range(rows):
            for option in range(options):
                candidates.append(
                    make_candidate(column * column_width + 100 + 50 * option, 100 + 80 * row)
                )
    return candidates


def bubble_image(filled=(), rings=(), size=(1200, 1200), radius=24):
    """White image with filled discs and hollow rings at the given centres."""
    image = np.full((size[1], size[0]), 255, dtype=np.uint8)
    for center in rings:
        cv2.circle(image, center, radius, 0, 2)
    for center in filled:
        cv2.circle(image, center, radius, 0, -1)
    return image


class TestPreprocess:
    """Tests for decoding and binarization."""

    def test_decode_png(self):
        ok, buffer = cv2.imencode(".png", np.full((50, 40, 3), 200, dtype=np.uint8))
        assert ok

        image = decode_image(buffer.tobytes())

        assert image.shape[:2] == (50, 40)

    @pytest.mark.parametrize("data", [b"", b"not an image at all"])
    def test_undecodable_input(self, data):
        with pytest.raises(UnreadableScanError):
            decode_image(data)

    def test_decode_pdf_pages(self, monkeypatch):
        from PIL import Image

        from edmcp_omr.core import pdf_converter

        pages = [Image.new("RGB", (30, 20), "white"), Image.new("RGB", (60, 40), "black")]
        calls = []

        def fake_convert(data, **kwargs):
            calls.append(kwargs)
            return pages

        monkeypatch.setattr(pdf_converter, "convert_from_bytes", fake_convert)

        images = decode_pages(b"%PDF-1.4 stub", dpi=200)

        assert [image.shape for image in images] == [(20, 30), (40, 60)]
        assert images[1].max() == 0
        assert calls == [{"dpi": 200, "grayscale": True}]

    def test_decode_single_image_as_one_page(self):
        ok, buffer = cv2.imencode(".png", np.full((50, 40, 3), 200, dtype=np.uint8))
        assert ok

        assert len(decode_pages(buffer.tobytes())) == 1

    def test_invalid_pdf_is_unreadable(self, monkeypatch):
        from pdf2image.exceptions import PDFPageCountError

        from edmcp_omr.core import pdf_converter

        def broken(data, **kwargs):
            raise PDFPageCountError("Unable to get page count")

        monkeypatch.setattr(pdf_converter, "convert_from_bytes", broken)

        with pytest.raises(UnreadableScanError):
            decode_pages(b"%PDF-1.4 broken")

    def test_grayscale_conversions(self):
        assert to_grayscale(np.zeros((5, 5), dtype=np.uint8)).shape == (5, 5)
        assert to_grayscale(np.zeros((5, 5, 3), dtype=np.uint8)).shape == (5, 5)
        assert to_grayscale(np.zeros((5, 5, 4), dtype=np.uint8)).shape == (5, 5)

    def test_block_size_is_odd(self):
        assert adaptive_block_size((1684, 1191)) % 2 == 1
        assert adaptive_block_size((100, 100), 20) == 21
        assert adaptive_block_size((10, 10)) >= 3

    def test_blank_page_has_no_ink(self):
        binary = binarize(np.full((600, 400), 255, dtype=np.uint8))

        assert binary.dtype == np.uint8
        assert np.count_nonzero(binary) == 0

    def test_filled_bubble_is_solid_ink(self):
        binary = binarize(bubble_image(filled=[(200, 200)]))

        assert binary[200, 200] == 255
        assert binary[10, 10] == 0


class TestDetector:
    """Tests for bubble candidate filtering."""

    def test_circularity_of_circle(self):
        radius = 10.0
        value = circularity(np.pi * radius ** 2, 2 * np.pi * radius)

        assert value == pytest.approx(1.0)
        assert circularity(10, 0) == 0.0

    def test_blank_image_has_no_candidates(self):
        assert detect(binarize(np.full((600, 400), 255, dtype=np.uint8))) == []

    def test_detects_filled_and_hollow_bubbles(self):
        image = bubble_image(filled=[(100, 100)], rings=[(250, 100), (100, 250)])

        candidates = detect(binarize(image))

        assert len(candidates) == 3
        centres = sorted((round(c.cx), round(c.cy)) for c in candidates)
        for (cx, cy), expected in zip(centres, [(100, 100), (100, 250), (250, 100)]):
            assert abs(cx - expected[0]) <= 2
            assert abs(cy - expected[1]) <= 2

    def test_rejects_wrong_shapes(self):
        image = np.full((400, 400), 255, dtype=np.uint8)
        cv2.rectangle(image, (20, 20), (200, 40), 0, -1)  # long bar
        cv2.circle(image, (300, 300), 3, 0, -1)  # speck

        assert detect(binarize(image)) == []

    def test_area_band_is_configurable(self):
        image = bubble_image(filled=[(100, 100)])
        settings = DetectionSettings(max_bubble_area=100.0)

        assert detect(binarize(image, settings), settings) == []

    def test_area_band_scales_with_resolution(self):
        settings = DetectionSettings().at_dpi(300)

        assert settings.min_bubble_area == pytest.approx(800.0)
        assert settings.max_bubble_area == pytest.approx(20000.0)

    def test_drops_small_glyphs_next_to_bubbles(self):
        bubbles = [make_candidate(100 + 50 * i, 100, radius=20) for i in range(4)]
        digit = make_candidate(40, 100, radius=6)
        smudge = make_candidate(400, 100, radius=40)

        kept = drop_area_outliers(bubbles + [digit, smudge])

        assert len(kept) == 4
        assert all(k is b for k, b in zip(kept, bubbles))
        assert drop_area_outliers([]) == []


class TestGrouper:
    """Tests for grid grouping of candidates."""

    def test_full_single_column(self):
        groups = group(grid_candidates(), 1, 10, 4, image_size=(600, 1000))

        assert len(groups) == 10
        assert [g.question_index for g in groups] == list(range(10))
        assert groups[0].labels == ["A", "B", "C", "D"]
        assert [b.bubble_index for b in groups[1].bubbles] == [4, 5, 6, 7]

    def test_options_sorted_left_to_right(self):
        candidates = list(reversed(grid_candidates()))

        groups = group(candidates, 1, 10, 4, image_size=(600, 1000))

        xs = [b.candidate.cx for b in groups[0].bubbles]
        assert xs == sorted(xs)

    def test_two_columns(self):
        candidates = grid_candidates(columns=2, rows=10, options=3)

        groups = group(candidates, 2, 10, 3, image_size=(1200, 1000))

        assert len(groups) == 20
        assert groups[10].question_index == 10
        assert groups[10].column == 1
        assert groups[10].bubbles[0].bubble_index == 30

    def test_short_final_run_is_discarded(self):
        candidates = grid_candidates()[:-1]

        groups = group(candidates, 1, 10, 4, image_size=(600, 1000))

        assert len(groups) == 9

    def test_question_offset_and_count(self):
        groups = group(
            grid_candidates(), 1, 10, 4, image_size=(600, 1000),
            question_offset=30, question_count=5,
        )

        assert [g.question_index for g in groups] == [30, 31, 32, 33, 34]

    def test_no_candidates_is_unreadable(self):
        with pytest.raises(UnreadableScanError):
            group([], 1, 10, 4, image_size=(600, 1000))

    def test_too_few_candidates_is_unreadable(self):
        with pytest.raises(UnreadableScanError) as exc_info:
            group(grid_candidates()[:3], 1, 10, 4, image_size=(600, 1000))

        assert exc_info.value.candidates == 3


class TestClassifier:
    """Tests for fill measurement and thresholding."""

    def test_fill_ratio_filled_vs_hollow(self):
        image = bubble_image(filled=[(100, 100)], rings=[(250, 100)])
        binary = binarize(image)
        candidates = sorted(detect(binary), key=lambda c: c.cx)

        filled, hollow = (fill_ratio(c, binary) for c in candidates)

        assert filled > 0.9
        assert hollow < 0.45

    @pytest.mark.parametrize(
        "fills,expected",
        [
            ([0.3, 0.3, 0.95, 0.3], 0.5),
            ([0.3, 0.3, 0.3, 0.3], 0.38),
            ([0.1, 0.2], 0.23),
        ],
    )
    def test_effective_threshold(self, fills, expected):
        assert effective_threshold(fills, DetectionSettings()) == pytest.approx(expected)

    def test_classify_marks_only_filled(self):
        centres = [(60 + 70 * i, 100) for i in range(4)]
        image = bubble_image(filled=[centres[2]], rings=centres)
        binary = binarize(image)
        groups = group(detect(binary), 1, 1, 4, image_size=(1200, 1200))

        marks = FillClassifier().classify(groups[0], binary)

        assert marks.selected == ["C"]
        assert marks.fills["C"] > marks.threshold > marks.fills["A"]

    def test_classify_unmarked_question(self):
        centres = [(60 + 70 * i, 100) for i in range(4)]
        binary = binarize(bubble_image(rings=centres))
        groups = group(detect(binary), 1, 1, 4, image_size=(1200, 1200))

        assert FillClassifier().classify_all(groups, binary)[0].selected == []

    def test_classify_double_mark(self):
        centres = [(60 + 70 * i, 100) for i in range(4)]
        image = bubble_image(filled=[centres[0], centres[3]], rings=centres)
        binary = binarize(image)
        groups = group(detect(binary), 1, 1, 4, image_size=(1200, 1200))

        marks = FillClassifier(DetectionSettings(max_workers=2)).classify(groups[0], binary)

        assert marks.selected == ["A", "D"]
