"""
Variant Manager

Orchestrates variant generation: shuffle the exam's bank under its settings,
render the printable sheet and persist both together.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Optional

from ..config import OmrSettings
from .bank import bank_from_dict
from .errors import BankFormatError, ExamNotFoundError
from .exam_store import ExamStore
from .renderer import SheetGenerator
from .variants import materialize_with_settings

logger = logging.getLogger("edmcp_omr.core.variant_manager")

MAX_COPIES = 200


class VariantManager:
    """Generates and stores printable exam variants."""

    def __init__(
        self,
        store: ExamStore,
        settings: Optional[OmrSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the variant manager.

        Args:
            store: Exam store shared with the submission manager
            settings: Geometry used to render sheets
            rng: Random source for shuffling; SystemRandom when omitted
        """
        self.store = store
        self.settings = settings or OmrSettings()
        self.generator = SheetGenerator(self.settings.geometry)
        self.rng = rng

    def generate_variants(self, exam_id: str, copies: int = 1) -> List[Dict[str, Any]]:
        """
        Materialize, render and store `copies` variants of an exam.

        Args:
            exam_id: Exam with an imported question bank
            copies: Number of independently shuffled papers

        Returns:
            List of summaries with id, question_count, page_count, diagnostic

        Raises:
            ExamNotFoundError: If the exam does not exist
            BankFormatError: If the exam has no question bank
            ValueError: If copies is out of range
        """
        if copies < 1 or copies > MAX_COPIES:
            raise ValueError(f"copies must be between 1 and {MAX_COPIES}, got {copies}")

        exam = self.store.get_exam(exam_id)
        if exam is None:
            raise ExamNotFoundError(f"Exam not found: {exam_id}")

        bank_data = self.store.get_bank_data(exam_id)
        if bank_data is None:
            raise BankFormatError("Exam has no question bank. Import one first.")
        bank = bank_from_dict(bank_data)
        shuffle = self.store.get_settings(exam_id)

        summaries = []
        for _ in range(copies):
            variant = materialize_with_settings(bank, shuffle, rng=self.rng, exam_id=exam_id)
            pdf_bytes, layout = self.generator.generate(variant, exam["name"])
            self.store.store_variant(variant, pdf_bytes)
            summaries.append(
                {
                    "id": variant.id,
                    "question_count": variant.question_count,
                    "grid_pages": len(layout.pages) if layout else 0,
                    "diagnostic": layout is None,
                    "created_at": variant.created_at,
                }
            )

        logger.info(
            "Generated %d variant(s) for exam %s (%s)", copies, exam_id, shuffle.to_dict()
        )
        return summaries

    def get_variant_details(self, variant_id: str, include_answers: bool = False) -> Dict[str, Any]:
        """
        Describe a stored variant.

        Args:
            variant_id: Variant ID
            include_answers: Include the answer key per question

        Raises:
            VariantNotFoundError: If the variant does not exist
            VariantFormatError: If its stored structure cannot be parsed
        """
        variant = self.store.get_variant(variant_id)
        key = variant.answer_key() if include_answers else {}
        questions = []
        for index, question in enumerate(variant.questions):
            item: Dict[str, Any] = {
                "number": index + 1,
                "text": question.text,
                "options": [{"label": o.label, "text": o.text} for o in question.options],
            }
            if include_answers:
                item["correct"] = key[index]
            questions.append(item)

        return {
            "id": variant.id,
            "exam_id": variant.exam_id,
            "created_at": variant.created_at,
            "schema_version": variant.schema_version,
            "question_count": variant.question_count,
            "questions": questions,
        }
