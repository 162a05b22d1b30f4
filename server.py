"""
OMR Exam MCP Server - FastMCP server for shuffled multiple-choice exams.

Tools for creating exams, importing question banks, generating printable
variants, and grading photographed or scanned answer sheets.
"""

import base64
import json
from pathlib import Path
from typing import List, Optional, Union

from fastmcp import FastMCP

from edmcp_omr.config import OmrSettings, load_settings
from edmcp_omr.core import ExamStore, SubmissionManager, VariantManager
from edmcp_omr.core.bank import bank_from_dict, parse_bank_text
from edmcp_omr.core.errors import OmrError, UnreadableScanError
from edmcp_omr.core.models import ShuffleSettings


# Initialize MCP server
mcp = FastMCP("OMR Exam Server")

# Database location; None uses OMR_DB_PATH or the default data directory
DB_PATH: Optional[Union[str, Path]] = None

# Lazy initialization of settings, store and workflow managers
_settings: Optional[OmrSettings] = None
_store: Optional[ExamStore] = None
_variant_manager: Optional[VariantManager] = None
_submission_manager: Optional[SubmissionManager] = None


def get_settings() -> OmrSettings:
    """Get or load the OMR settings."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_store() -> ExamStore:
    """Get or create the exam store."""
    global _store
    if _store is None:
        _store = ExamStore(DB_PATH)
    return _store


def get_variant_manager() -> VariantManager:
    """Get or create the variant manager."""
    global _variant_manager
    if _variant_manager is None:
        _variant_manager = VariantManager(get_store(), get_settings())
    return _variant_manager


def get_submission_manager() -> SubmissionManager:
    """Get or create the submission manager."""
    global _submission_manager
    if _submission_manager is None:
        _submission_manager = SubmissionManager(get_store(), get_settings())
    return _submission_manager


def _error(message: str, **extra) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


@mcp.tool()
def ping() -> str:
    """
    Health check endpoint.

    Returns:
        "pong" if the server is running
    """
    return json.dumps({
        "status": "success",
        "message": "pong",
    })


@mcp.tool()
def create_exam(name: str, description: str = "") -> str:
    """
    Create a new exam record.

    Args:
        name: User-friendly exam name (e.g., "Unit 3 Test")
        description: Optional description of the exam

    Returns:
        JSON with exam_id and status
    """
    if not name.strip():
        return _error("Exam name cannot be empty")

    exam_id = get_store().create_exam(name=name, description=description or None)

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "message": f"Created exam '{name}' with ID: {exam_id}",
    })


@mcp.tool()
def import_question_bank(exam_id: str, bank: str, format: str = "text") -> str:
    """
    Import or replace the question bank of an exam.

    Args:
        exam_id: The exam ID
        bank: Bank content. In "text" format, lines starting with "?" are
              questions, "+" the correct option and "-" wrong options.
              In "json" format, {"questions": [{"text": ..., "options":
              [{"text": ..., "is_correct": true}]}]}
        format: "text" or "json"

    Returns:
        JSON with status and question count
    """
    store = get_store()
    if not store.get_exam(exam_id):
        return _error(f"Exam not found: {exam_id}")

    try:
        if format == "text":
            question_bank = parse_bank_text(bank)
        elif format == "json":
            question_bank = bank_from_dict(json.loads(bank))
        else:
            return _error(f"Unknown bank format: {format}. Use 'text' or 'json'.")

        store.set_bank(exam_id, question_bank)

    except json.JSONDecodeError as e:
        return _error(f"Invalid JSON: {str(e)}")
    except OmrError as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "question_count": len(question_bank),
        "message": f"Imported {len(question_bank)} questions",
    })


@mcp.tool()
def set_shuffle_settings(
    exam_id: str,
    shuffle_questions: bool = False,
    shuffle_answers: bool = False,
    shuffle_all: bool = False,
) -> str:
    """
    Set how future variants of an exam are shuffled.

    Args:
        exam_id: The exam ID
        shuffle_questions: Permute question order per variant
        shuffle_answers: Permute option order within each question
        shuffle_all: Permute both (takes precedence over the other flags)

    Returns:
        JSON with the stored settings
    """
    settings = ShuffleSettings(
        shuffle_questions=shuffle_questions,
        shuffle_answers=shuffle_answers,
        shuffle_all=shuffle_all,
    )
    try:
        get_store().set_settings(exam_id, settings)
    except OmrError as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "settings": settings.to_dict(),
    })


@mcp.tool()
def generate_variants(exam_id: str, copies: int = 1) -> str:
    """
    Generate printable variants of an exam.

    Each variant is shuffled independently under the exam's settings and
    stores its own answer key together with its PDF.

    Args:
        exam_id: The exam ID (must have a question bank)
        copies: Number of variants to generate

    Returns:
        JSON with variant summaries
    """
    try:
        variants = get_variant_manager().generate_variants(exam_id, copies)
    except (OmrError, ValueError) as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "count": len(variants),
        "variants": variants,
    })


@mcp.tool()
def get_variant(variant_id: str, include_answers: bool = False) -> str:
    """
    Get a variant's questions in printed order.

    Args:
        variant_id: The variant ID (printed on the sheet)
        include_answers: Include each question's correct label

    Returns:
        JSON with variant details
    """
    try:
        details = get_variant_manager().get_variant_details(variant_id, include_answers)
    except OmrError as e:
        return _error(str(e))

    return json.dumps({"status": "success", **details})


@mcp.tool()
def download_variant_pdf(variant_id: str) -> str:
    """
    Download the printable PDF for a variant.

    Args:
        variant_id: The variant ID

    Returns:
        JSON with base64-encoded PDF content
    """
    pdf_bytes = get_store().get_variant_pdf(variant_id)
    if not pdf_bytes:
        return _error(f"No PDF found for variant: {variant_id}")

    pdf_base64 = base64.b64encode(pdf_bytes).decode("utf-8")

    return json.dumps({
        "status": "success",
        "variant_id": variant_id,
        "content_type": "application/pdf",
        "encoding": "base64",
        "data": pdf_base64,
    })


@mcp.tool()
def submit_scan(
    variant_id: str,
    image_base64: str,
    submitter: str = "",
    extra_pages_base64: Optional[List[str]] = None,
    first_page: int = 0,
    include_overlay: bool = False,
) -> str:
    """
    Grade a photo or scan of a filled answer paper.

    A paper with more than one grid page is graded as one submission: upload
    a PDF of the whole paper, or the first page here and the rest in
    extra_pages_base64.

    Args:
        variant_id: The variant ID printed on the sheet
        image_base64: Base64-encoded PNG, JPEG or PDF (a PDF may hold every page)
        submitter: Optional student name or identifier
        extra_pages_base64: Further pages of the same paper, in order
        first_page: Grid page shown by the first uploaded page (0 = first)
        include_overlay: Return PNGs highlighting the detected bubbles

    Returns:
        JSON with score, per-question breakdown and scan warnings
    """
    try:
        uploads = [
            base64.b64decode(data, validate=True)
            for data in [image_base64] + list(extra_pages_base64 or [])
        ]
    except ValueError as e:
        return _error(f"Invalid base64 data: {str(e)}")

    try:
        result = get_submission_manager().submit_scan(
            variant_id,
            uploads,
            submitter=submitter or None,
            first_page=first_page,
            include_overlay=include_overlay,
        )
    except UnreadableScanError as e:
        return _error(str(e), candidates=e.candidates)
    except (OmrError, ValueError) as e:
        return _error(str(e))

    return json.dumps({"status": "success", **result})


@mcp.tool()
def submit_answers(variant_id: str, answers: str, submitter: str = "") -> str:
    """
    Grade answers entered by hand instead of scanned.

    Args:
        variant_id: The variant ID
        answers: JSON object mapping 1-based question numbers to a label or
                 a list of labels, e.g. '{"1": "C", "2": ["A", "B"]}'
        submitter: Optional student name or identifier

    Returns:
        JSON with score and per-question breakdown
    """
    try:
        raw = json.loads(answers)
        if not isinstance(raw, dict):
            raise ValueError("answers must be a JSON object")
        selections = {}
        for number, labels in raw.items():
            index = int(number) - 1
            if index < 0:
                raise ValueError(f"Question numbers start at 1, got {number}")
            if isinstance(labels, str):
                labels = [labels] if labels else []
            elif labels is None:
                labels = []
            elif not isinstance(labels, list):
                raise ValueError(f"Question {number}: expected a label or list of labels")
            selections[index] = [str(label) for label in labels]

        result = get_submission_manager().submit_answers(
            variant_id, selections, submitter=submitter or None
        )
    except json.JSONDecodeError as e:
        return _error(f"Invalid JSON: {str(e)}")
    except (OmrError, ValueError) as e:
        return _error(str(e))

    return json.dumps({"status": "success", **result})


@mcp.tool()
def list_submissions(exam_id: str) -> str:
    """
    List graded submissions for an exam.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with submissions and score statistics
    """
    manager = get_submission_manager()
    try:
        submissions = manager.list_submissions(exam_id)
        stats = manager.get_stats(exam_id)
    except OmrError as e:
        return _error(str(e))

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "count": len(submissions),
        "submissions": submissions,
        "stats": stats,
    })


@mcp.tool()
def get_submission(submission_id: str) -> str:
    """
    Get a submission with its per-question breakdown.

    Args:
        submission_id: The submission ID

    Returns:
        JSON with submission details
    """
    submission = get_store().get_submission(submission_id)
    if not submission:
        return _error(f"Submission not found: {submission_id}")

    return json.dumps({"status": "success", "submission": submission})


@mcp.tool()
def download_gradebook(exam_id: str) -> str:
    """
    Download the gradebook CSV for an exam.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with base64-encoded CSV content
    """
    try:
        csv_bytes = get_submission_manager().export_gradebook(exam_id)
    except OmrError as e:
        return _error(str(e))

    csv_base64 = base64.b64encode(csv_bytes).decode("utf-8")

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "content_type": "text/csv",
        "encoding": "base64",
        "data": csv_base64,
    })


@mcp.tool()
def list_exams(
    limit: int = 50,
    offset: int = 0,
    status: Optional[str] = None,
    search: Optional[str] = None,
    include_archived: bool = False,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> str:
    """
    List exams with filtering, sorting, and pagination.

    Args:
        limit: Maximum number of exams to return (default 50)
        offset: Number of exams to skip for pagination
        status: Filter by status - CREATED, BANK_IMPORTED, VARIANTS_GENERATED
        search: Search text in name and description
        include_archived: Include archived exams (default false)
        sort_by: Sort field - created_at, name, status
        sort_order: Sort direction - asc or desc

    Returns:
        JSON with exams list and pagination info
    """
    result = get_store().list_exams(
        limit=limit,
        offset=offset,
        status=status,
        search=search,
        include_archived=include_archived,
        sort_by=sort_by,
        sort_order=sort_order,
    )

    return json.dumps({
        "status": "success",
        "count": len(result["exams"]),
        "total": result["total"],
        "limit": result["limit"],
        "offset": result["offset"],
        "exams": result["exams"],
    })


@mcp.tool()
def get_exam(exam_id: str) -> str:
    """
    Get exam details with variants.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with exam details
    """
    store = get_store()
    exam = store.get_exam(exam_id)
    if not exam:
        return _error(f"Exam not found: {exam_id}")

    return json.dumps({
        "status": "success",
        "exam": exam,
        "variants": store.list_variants(exam_id),
    })


@mcp.tool()
def rename_exam(exam_id: str, name: str) -> str:
    """
    Rename an exam. Already printed variants keep their printed title.

    Args:
        exam_id: The exam ID
        name: New name

    Returns:
        JSON with status
    """
    if not name.strip():
        return _error("Exam name cannot be empty")
    if not get_store().rename_exam(exam_id, name):
        return _error(f"Exam not found: {exam_id}")

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "name": name,
    })


@mcp.tool()
def archive_exam(exam_id: str) -> str:
    """
    Archive an exam (soft delete). Archived exams are hidden from list_exams.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with status
    """
    if not get_store().archive_exam(exam_id):
        return _error(f"Exam not found or already archived: {exam_id}")

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "message": "Exam archived",
    })


@mcp.tool()
def unarchive_exam(exam_id: str) -> str:
    """
    Restore an archived exam.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with status
    """
    if not get_store().unarchive_exam(exam_id):
        return _error(f"Exam not found or not archived: {exam_id}")

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "message": "Exam restored",
    })


@mcp.tool()
def delete_exam(exam_id: str) -> str:
    """
    Permanently delete an exam with its variants and submissions.

    Args:
        exam_id: The exam ID

    Returns:
        JSON with status
    """
    if not get_store().delete_exam(exam_id):
        return _error(f"Exam not found: {exam_id}")

    return json.dumps({
        "status": "success",
        "exam_id": exam_id,
        "message": "Exam deleted",
    })


if __name__ == "__main__":
    mcp.run()
