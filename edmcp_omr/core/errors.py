"""Exception types for exam generation and scan grading."""

from __future__ import annotations

from typing import Optional


class OmrError(Exception):
    """Base class for all edmcp-omr errors."""

    pass


class BankFormatError(OmrError):
    """Question bank text or JSON is structurally invalid."""

    pass


class MalformedBankError(OmrError):
    """Question/option structure is missing or empty at layout time."""

    pass


class UnreadableScanError(OmrError):
    """The scan could not be decoded or produced no valid question groups."""

    def __init__(self, message: str, candidates: int = 0):
        super().__init__(message)
        self.candidates = candidates


class MissingAnswerKeyError(OmrError):
    """A stored question has no option marked correct."""

    def __init__(self, question_index: int):
        super().__init__(f"Question {question_index + 1} has no correct option")
        self.question_index = question_index


class VariantFormatError(OmrError):
    """A stored variant structure cannot be parsed."""

    def __init__(self, message: str, variant_id: Optional[str] = None):
        super().__init__(message)
        self.variant_id = variant_id


class ScoringUnavailableError(OmrError):
    """Scoring cannot run for a variant because its stored record is unusable."""

    pass


class ExamNotFoundError(OmrError):
    """Exam id does not exist."""

    pass


class VariantNotFoundError(OmrError):
    """Variant id does not exist."""

    pass
