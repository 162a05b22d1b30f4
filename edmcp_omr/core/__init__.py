"""Core modules for exam variants, answer sheet rendering and scan grading."""

from .exam_store import ExamStore
from .renderer import SheetGenerator
from .scanner import AnswerSheetScanner
from .submission_manager import SubmissionManager
from .variant_manager import VariantManager

__all__ = [
    "ExamStore",
    "SheetGenerator",
    "AnswerSheetScanner",
    "SubmissionManager",
    "VariantManager",
]
