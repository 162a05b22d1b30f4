"""Tests for question text pagination."""

from reportlab.pdfbase.pdfmetrics import stringWidth

from edmcp_omr.config import SheetGeometry
from edmcp_omr.core.paginator import (
    column_width,
    paginate,
    paginate_page,
    text_column_count,
    wrap_text,
)

from conftest import make_bank


def long_question(index, words=40):
    return {
        "text": " ".join(f"word{index}_{w}" for w in range(words)),
        "options": [{"text": f"option {o} for question {index}"} for o in range(4)],
    }


class TestWrapText:
    """Tests for greedy word wrapping."""

    def test_lines_fit_width(self):
        text = "The quick brown fox jumps over the lazy dog " * 5
        lines = wrap_text(text, 150)

        assert len(lines) > 1
        for line in lines:
            assert stringWidth(line, "Helvetica", 12) <= 150

    def test_words_are_preserved_in_order(self):
        text = "alpha beta gamma delta epsilon zeta eta theta"
        lines = wrap_text(text, 60)

        assert " ".join(lines).split() == text.split()

    def test_overlong_word_gets_its_own_line(self):
        lines = wrap_text("a " + "x" * 80 + " b", 50)

        assert lines == ["a", "x" * 80, "b"]

    def test_empty_text(self):
        assert wrap_text("", 100) == []


class TestPaginate:
    """Tests for paginate() and paginate_page()."""

    def test_short_bank_fits_on_one_page(self, sample_variant):
        blocks = paginate(sample_variant.questions[:5])

        assert {b.page for b in blocks} == {0}
        assert [b.question_index for b in blocks] == list(range(5))
        assert {b.column for b in blocks} == {0}

    def test_question_and_option_lines(self, sample_variant):
        block = paginate(sample_variant.questions)[0]

        assert block.question_lines[0].startswith("1. Question number 1?")
        assert block.option_lines[0][0] == "A. Q1 option A"
        assert block.lines[: len(block.question_lines)] == block.question_lines

    def test_is_idempotent(self):
        """Same input and geometry yield the same assignment every call."""
        questions = [long_question(i) for i in range(40)]

        first = paginate(questions)
        second = paginate(questions)

        assert first == second

    def test_every_question_placed_once_in_order(self):
        questions = [long_question(i) for i in range(40)]
        blocks = paginate(questions)

        assert [b.question_index for b in blocks] == list(range(40))
        assert max(b.page for b in blocks) > 0

    def test_blocks_stay_within_page(self):
        """No block crosses the bottom limit unless it is alone in its column."""
        geometry = SheetGeometry()
        min_y = geometry.page_margin + geometry.text_bottom_clearance
        blocks = paginate([long_question(i) for i in range(40)], geometry)

        by_column = {}
        for block in blocks:
            by_column.setdefault((block.page, block.column), []).append(block)
        for column_blocks in by_column.values():
            if len(column_blocks) > 1:
                for block in column_blocks:
                    assert block.y - block.height >= min_y

    def test_restart_from_index(self):
        """A page started at the next unplaced index continues the sequence."""
        questions = [long_question(i) for i in range(40)]
        first_page, next_index = paginate_page(questions, 0)
        second_page, _ = paginate_page(questions, next_index, page=1)

        assert 0 < next_index < 40
        assert first_page[-1].question_index == next_index - 1
        assert second_page[0].question_index == next_index
        assert second_page[0].page == 1

    def test_oversize_block_is_placed_alone(self):
        """A question taller than a column still makes progress."""
        questions = [long_question(0, words=1500), long_question(1)]
        blocks = paginate(questions)

        assert [b.question_index for b in blocks] == [0, 1]
        assert (blocks[0].page, blocks[0].column) != (blocks[1].page, blocks[1].column)

    def test_columns_follow_question_count(self):
        geometry = SheetGeometry()

        assert text_column_count(5, geometry) == 1
        assert text_column_count(15, geometry) == 2
        assert text_column_count(200, geometry) == 3

    def test_column_x_positions(self):
        geometry = SheetGeometry()
        questions = [{"text": q.text, "options": [{"text": o.text} for o in q.options]}
                     for q in make_bank(["A"] * 25).questions]
        blocks = paginate(questions, geometry)

        width = column_width(3, geometry)
        xs = {b.column: b.x for b in blocks}
        assert xs[0] == geometry.page_margin
        for column, x in xs.items():
            assert x == geometry.page_margin + column * (width + geometry.text_column_gap)
