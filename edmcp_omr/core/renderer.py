"""
Answer sheet PDF rendering.

Draws the bubble grid pages from a planned Layout, followed by the wrapped
question pages from the paginator. A variant whose structure cannot be laid
out gets a single diagnostic page instead.
"""

from __future__ import annotations

import io
import logging
from typing import Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from ..config import SheetGeometry
from .errors import MalformedBankError
from .layout import Layout, column_base_x, plan_for_questions
from .models import Variant, option_label
from .paginator import TextBlock, paginate

logger = logging.getLogger("edmcp_omr.core.renderer")

FOOTER_TEXT = "Mark the correct bubble with a dark pen."
DIAGNOSTIC_TEXT = "Invalid or missing variant structure. Cannot render answer grid."


class SheetGenerator:
    """Renders variants to printable PDF bytes."""

    def __init__(self, geometry: Optional[SheetGeometry] = None):
        """
        Args:
            geometry: Sheet geometry; must match the scanner's geometry
        """
        self.geometry = geometry or SheetGeometry()

    def generate(self, variant: Variant, title: str) -> Tuple[bytes, Optional[Layout]]:
        """
        Render the cover grid and question pages for a variant.

        Args:
            variant: Materialized variant
            title: Exam title printed on the grid pages

        Returns:
            (pdf_bytes, layout); layout is None when a diagnostic page was
            rendered because the variant structure is malformed
        """
        try:
            layout = plan_for_questions(variant.questions, self.geometry)
        except MalformedBankError as e:
            logger.warning("Rendering diagnostic page for variant %s: %s", variant.id, e)
            return self.render_diagnostic(title, variant.id, str(e)), None

        blocks = paginate(variant.questions, self.geometry)
        buffer = io.BytesIO()
        pdf = canvas.Canvas(
            buffer, pagesize=(self.geometry.page_width, self.geometry.page_height)
        )
        self._draw_grid_pages(pdf, layout, title, variant.id)
        self._draw_text_pages(pdf, blocks)
        pdf.save()
        return buffer.getvalue(), layout

    def render_diagnostic(self, title: str, variant_id: str, reason: str = "") -> bytes:
        """Single page explaining that the answer grid could not be drawn."""
        g = self.geometry
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=(g.page_width, g.page_height))
        self._draw_header(pdf, title, variant_id)

        pdf.setFillColor(colors.red)
        pdf.setFont("Helvetica-Bold", 16)
        pdf.drawString(g.page_margin, g.page_height / 2, DIAGNOSTIC_TEXT)
        if reason:
            pdf.setFont("Helvetica", 11)
            pdf.drawString(g.page_margin, g.page_height / 2 - 24, reason)
        pdf.setFillColor(colors.black)

        self._draw_footer(pdf)
        pdf.showPage()
        pdf.save()
        return buffer.getvalue()

    def _draw_header(self, pdf: canvas.Canvas, title: str, variant_id: str):
        g = self.geometry
        pdf.setFillColor(colors.black)
        pdf.setFont("Helvetica-Bold", g.title_font_size)
        pdf.drawCentredString(
            g.page_width / 2, g.page_height - g.page_margin - g.title_font_size, title
        )
        pdf.setFont("Courier", 13)
        pdf.drawCentredString(
            g.page_width / 2,
            g.page_height - g.page_margin - g.title_font_size - 30,
            f"Variant UUID: {variant_id}",
        )

    def _draw_footer(self, pdf: canvas.Canvas):
        g = self.geometry
        pdf.setFont("Helvetica", 10)
        pdf.drawCentredString(g.page_width / 2, g.page_margin, FOOTER_TEXT)

    def _draw_grid_pages(
        self, pdf: canvas.Canvas, layout: Layout, title: str, variant_id: str
    ):
        g = self.geometry
        radius = g.bubble_radius
        slots_by_row: Dict[Tuple[int, int, int], List] = {}
        for slot in layout.slots:
            slots_by_row.setdefault((slot.page, slot.column, slot.row), []).append(slot)

        for grid_page in layout.pages:
            self._draw_header(pdf, title, variant_id)

            pdf.setFont("Helvetica-Bold", 9)
            for column in range(grid_page.columns):
                base_x = column_base_x(g, grid_page.columns, column, grid_page.max_options)
                for option_index in range(grid_page.max_options):
                    pdf.drawCentredString(
                        base_x + option_index * g.option_step,
                        g.grid_top + 10,
                        option_label(option_index),
                    )

            for (page, column, row), slots in sorted(slots_by_row.items()):
                if page != grid_page.page:
                    continue
                base_x = column_base_x(g, grid_page.columns, column, grid_page.max_options)
                y = slots[0].y
                question_number = slots[0].question_index + 1

                pdf.setFillColor(colors.black)
                pdf.setFont("Helvetica", 9)
                pdf.drawRightString(base_x - radius - 4, y - 3, str(question_number))

                pdf.setStrokeColor(colors.Color(0.85, 0.85, 0.85))
                pdf.setLineWidth(0.5)
                line_end = base_x + (grid_page.max_options - 1) * g.option_step + radius
                pdf.line(base_x - radius, y - radius - 2, line_end, y - radius - 2)

                pdf.setStrokeColor(colors.black)
                pdf.setLineWidth(1.2)
                pdf.setFillColor(colors.white)
                for slot in slots:
                    pdf.circle(slot.x, slot.y, radius, stroke=1, fill=1)
                pdf.setFillColor(colors.black)

            if grid_page.page == len(layout.pages) - 1:
                self._draw_footer(pdf)
            pdf.showPage()

    def _draw_text_pages(self, pdf: canvas.Canvas, blocks: List[TextBlock]):
        g = self.geometry
        step = g.text_font_size + g.text_line_gap
        current_page = None
        for block in blocks:
            if current_page is not None and block.page != current_page:
                pdf.showPage()
            current_page = block.page

            pdf.setFont(g.text_font_name, g.text_font_size)
            pdf.setFillColor(colors.black)
            y = block.y
            for line in block.question_lines:
                pdf.drawString(block.x, y, line)
                y -= step
            pdf.setFillColor(colors.Color(0.2, 0.2, 0.2))
            for lines in block.option_lines:
                for line in lines:
                    pdf.drawString(block.x + 10, y, line)
                    y -= step
                y -= 2
        if current_page is not None:
            pdf.showPage()
