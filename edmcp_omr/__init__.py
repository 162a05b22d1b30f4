"""edmcp-omr: printable multiple-choice exam variants with optical mark grading."""

from edmcp_omr.config import DetectionSettings, OmrSettings, SheetGeometry
from edmcp_omr.core.exam_store import ExamStore
from edmcp_omr.core.submission_manager import SubmissionManager
from edmcp_omr.core.variant_manager import VariantManager

__all__ = [
    "DetectionSettings",
    "OmrSettings",
    "SheetGeometry",
    "ExamStore",
    "SubmissionManager",
    "VariantManager",
]
