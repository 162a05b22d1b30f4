"""
Scan decoding and binarization.

Turns an arbitrary photo or scan of an answer sheet into a single-channel
raster where 255 marks ink and 0 marks paper.
"""

from __future__ import annotations

from typing import List, Optional

import cv2
import numpy as np

from ..config import DetectionSettings
from .errors import UnreadableScanError
from .pdf_converter import is_pdf, rasterize_pdf


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode PNG/JPEG bytes into an OpenCV image.

    Args:
        data: Raw upload content

    Returns:
        Image array (gray, BGR or BGRA)

    Raises:
        UnreadableScanError: If the bytes cannot be decoded
    """
    if not data:
        raise UnreadableScanError("Could not read sheet: empty upload")

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0:
        raise UnreadableScanError("Could not read sheet: unsupported image data")
    return image


def decode_pages(data: bytes, dpi: float = 150.0) -> List[np.ndarray]:
    """
    Decode one upload into page images: every page of a PDF, or a single photo.

    Args:
        data: Raw upload content
        dpi: Rasterization resolution for PDF uploads

    Returns:
        Page images in upload order
    """
    if data and is_pdf(data):
        return rasterize_pdf(data, dpi=dpi)
    return [decode_image(data)]


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert gray, BGR or BGRA input to 8-bit luminance."""
    if image.ndim == 2:
        gray = image
    elif image.shape[2] == 4:
        gray = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    elif image.shape[2] == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    else:
        gray = image[:, :, 0]

    if gray.dtype != np.uint8:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
    return gray


def adaptive_block_size(shape: tuple, configured: Optional[int] = None) -> int:
    """
    Neighbourhood size for local thresholding.

    When not configured, scales with the shorter image side so the window stays
    wider than a filled bubble and its interior is not hollowed out.
    """
    if configured is not None:
        size = int(configured)
    else:
        size = int(round(min(shape[0], shape[1]) / 12.0))
    size = max(size, 3)
    if size % 2 == 0:
        size += 1
    return size


def binarize(raw_image: np.ndarray, settings: Optional[DetectionSettings] = None) -> np.ndarray:
    """
    Luminance, Gaussian blur, then inverted adaptive mean threshold.

    Args:
        raw_image: Decoded image of any resolution
        settings: Detection tunables

    Returns:
        uint8 raster, 255 where ink was detected
    """
    settings = settings or DetectionSettings()
    gray = to_grayscale(raw_image)

    kernel = max(1, int(settings.blur_kernel))
    if kernel % 2 == 0:
        kernel += 1
    blurred = cv2.GaussianBlur(gray, (kernel, kernel), 0)

    block = adaptive_block_size(gray.shape, settings.adaptive_block_size)
    return cv2.adaptiveThreshold(
        blurred,
        255,
        cv2.ADAPTIVE_THRESH_MEAN_C,
        cv2.THRESH_BINARY_INV,
        block,
        settings.adaptive_c,
    )
