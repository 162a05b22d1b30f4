"""
Submission Manager

Grades answer sheets against the variant they were printed from: decode and
scan every grid page of an uploaded paper (or take typed selections), score
against the stored answer key, and persist one result per paper.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..config import OmrSettings
from .errors import ScoringUnavailableError, VariantFormatError
from .exam_store import ExamStore
from .models import Variant
from .preprocess import decode_pages
from .scanner import AnswerSheetScanner, draw_debug_overlay, encode_png
from .scorer import generate_gradebook_csv, get_stats, score

logger = logging.getLogger("edmcp_omr.core.submission_manager")


class SubmissionManager:
    """Scores and stores answer sheet submissions."""

    def __init__(self, store: ExamStore, settings: Optional[OmrSettings] = None):
        """
        Initialize the submission manager.

        Args:
            store: Exam store shared with the variant manager
            settings: Geometry and detection settings the sheets were printed with
        """
        self.store = store
        self.settings = settings or OmrSettings()
        self.scanner = AnswerSheetScanner(self.settings)

    def _load_variant(self, variant_id: str) -> Variant:
        try:
            return self.store.get_variant(variant_id)
        except VariantFormatError as e:
            logger.error("Stored variant %s is unusable: %s", variant_id, e)
            raise ScoringUnavailableError(
                f"Scoring unavailable for variant {variant_id}: {e}"
            ) from e

    def submit_scan(
        self,
        variant_id: str,
        uploads: Union[bytes, Sequence[bytes]],
        submitter: Optional[str] = None,
        first_page: int = 0,
        include_overlay: bool = False,
    ) -> Dict[str, Any]:
        """
        Scan every grid page of one filled paper, score it and store one result.

        Args:
            variant_id: Variant printed on the paper
            uploads: Photo or scan bytes (PNG/JPEG/PDF), or a list of them in
                page order. A PDF contributes all of its pages.
            submitter: Optional student name or identifier
            first_page: Grid page shown by the first uploaded page (0-indexed)
            include_overlay: Return base64 PNGs marking the detected bubbles

        Returns:
            Dict with submission_id, result, per-page scan details and warnings

        Raises:
            VariantNotFoundError: If the variant does not exist
            ScoringUnavailableError: If its stored structure is unusable
            UnreadableScanError: If a grid page cannot be read; nothing is stored
        """
        variant = self._load_variant(variant_id)
        if isinstance(uploads, (bytes, bytearray)):
            uploads = [bytes(uploads)]

        images = []
        for data in uploads:
            images.extend(decode_pages(data, dpi=self.settings.detection.reference_dpi))
        paper = self.scanner.scan_pages(images, variant, first_page=first_page)

        result = score(variant, paper.selections)
        submission_id = self.store.store_submission(
            exam_id=variant.exam_id,
            variant_id=variant.id,
            result=result.to_dict(),
            submitter=submitter,
            warnings=paper.warnings,
        )
        logger.info(
            "Submission %s: %d/%d on variant %s from %d grid page(s)",
            submission_id,
            result.correct_count,
            result.total,
            variant.id,
            len(paper.pages),
        )

        response: Dict[str, Any] = {
            "submission_id": submission_id,
            "variant_id": variant.id,
            "result": result.to_dict(),
            "scan": paper.to_dict(),
            "warnings": paper.warnings,
        }
        if include_overlay:
            response["overlays_png_base64"] = [
                base64.b64encode(
                    encode_png(draw_debug_overlay(images[scan.page - first_page], scan))
                ).decode("utf-8")
                for scan in paper.pages
            ]
        return response

    def submit_answers(
        self,
        variant_id: str,
        selections: Mapping[int, Sequence[str]],
        submitter: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Score manually entered selections and store the result.

        Args:
            variant_id: Variant the answers belong to
            selections: 0-based question index -> selected labels
            submitter: Optional student name or identifier

        Returns:
            Dict with submission_id and result

        Raises:
            VariantNotFoundError: If the variant does not exist
            ScoringUnavailableError: If its stored structure is unusable
        """
        variant = self._load_variant(variant_id)
        result = score(variant, selections)
        submission_id = self.store.store_submission(
            exam_id=variant.exam_id,
            variant_id=variant.id,
            result=result.to_dict(),
            submitter=submitter,
        )
        return {
            "submission_id": submission_id,
            "variant_id": variant.id,
            "result": result.to_dict(),
            "warnings": [],
        }

    def export_gradebook(self, exam_id: str) -> bytes:
        """Gradebook CSV for every submission of an exam."""
        self.store.require_exam(exam_id)
        return generate_gradebook_csv(self.store.list_submissions(exam_id=exam_id))

    def get_stats(self, exam_id: str) -> Dict[str, Any]:
        """Score statistics across an exam's submissions."""
        self.store.require_exam(exam_id)
        return get_stats(self.store.list_submissions(exam_id=exam_id))

    def list_submissions(self, exam_id: str) -> List[Dict[str, Any]]:
        self.store.require_exam(exam_id)
        return self.store.list_submissions(exam_id=exam_id)
