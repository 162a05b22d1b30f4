"""
Rasterize scanned answer sheet PDFs.

A scanner usually delivers one PDF for the whole paper. Every page becomes a
grayscale array at a known resolution so the scanner can map it back onto the
printed sheet geometry.
"""

from __future__ import annotations

from typing import List

import numpy as np
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError

from .errors import UnreadableScanError


def is_pdf(data: bytes) -> bool:
    return data[:5] == b"%PDF-"


def rasterize_pdf(pdf_bytes: bytes, dpi: float = 150.0) -> List[np.ndarray]:
    """
    Render every page of a scanned PDF.

    Args:
        pdf_bytes: Raw PDF content
        dpi: Rendering resolution; use the detection reference resolution so
            the bubble area band applies unchanged

    Returns:
        uint8 grayscale page images in document order

    Raises:
        UnreadableScanError: If the PDF cannot be parsed or has no pages
    """
    try:
        pil_pages = convert_from_bytes(pdf_bytes, dpi=int(round(dpi)), grayscale=True)
    except (PDFPageCountError, PDFSyntaxError) as e:
        raise UnreadableScanError(f"Could not read sheet: invalid PDF ({e})")

    if not pil_pages:
        raise UnreadableScanError("Could not read sheet: PDF has no pages")
    return [np.array(page.convert("L"), dtype=np.uint8) for page in pil_pages]
