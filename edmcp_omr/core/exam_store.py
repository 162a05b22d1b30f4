"""
Exam Store - Database operations for exams, variants and submissions.

Stores question banks, shuffle settings, every generated variant (its frozen
structure and printed PDF) and graded submissions in one sqlite database.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..config import get_db_path
from ..db import DatabaseManager
from .errors import ExamNotFoundError, VariantFormatError, VariantNotFoundError
from .models import QuestionBank, ShuffleSettings, Variant


class ExamStore:
    """Manages exam data in the database."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        """
        Initialize the exam store.

        Args:
            db_path: Path to database file. If None, uses OMR_DB_PATH or the
                default data directory.
        """
        if db_path is None:
            db_path = get_db_path()

        self.db = DatabaseManager(db_path)
        self._create_tables()

    def _create_tables(self):
        """Create exam tables if they don't exist."""
        cursor = self.db.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS exams (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                created_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'CREATED',
                bank_json TEXT,
                archived INTEGER NOT NULL DEFAULT 0
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS exam_settings (
                exam_id TEXT PRIMARY KEY,
                shuffle_questions INTEGER NOT NULL DEFAULT 0,
                shuffle_answers INTEGER NOT NULL DEFAULT 0,
                shuffle_all INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (exam_id) REFERENCES exams (id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS variants (
                id TEXT PRIMARY KEY,
                exam_id TEXT NOT NULL,
                created_at TEXT NOT NULL,
                schema_version INTEGER NOT NULL,
                structure_json TEXT NOT NULL,
                pdf_content BLOB,
                FOREIGN KEY (exam_id) REFERENCES exams (id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS submissions (
                id TEXT PRIMARY KEY,
                exam_id TEXT NOT NULL,
                variant_id TEXT NOT NULL,
                submitter TEXT,
                created_at TEXT NOT NULL,
                correct_count INTEGER NOT NULL,
                total_count INTEGER NOT NULL,
                result_json TEXT NOT NULL,
                warnings_json TEXT,
                FOREIGN KEY (exam_id) REFERENCES exams (id),
                FOREIGN KEY (variant_id) REFERENCES variants (id)
            )
        """)

        self.db.conn.commit()

    # ------------------------------------------------------------------
    # Exams
    # ------------------------------------------------------------------

    def create_exam(self, name: str, description: Optional[str] = None) -> str:
        """
        Create a new exam.

        Args:
            name: User-friendly exam name
            description: Optional description

        Returns:
            Exam ID (e.g., "ex_20260125_143052_abc12345")
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        unique_suffix = str(uuid.uuid4())[:8]
        exam_id = f"ex_{timestamp}_{unique_suffix}"
        created_at = datetime.now().isoformat()

        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            INSERT INTO exams (id, name, description, created_at, status)
            VALUES (?, ?, ?, ?, 'CREATED')
            """,
            (exam_id, name, description, created_at),
        )
        cursor.execute(
            "INSERT INTO exam_settings (exam_id) VALUES (?)",
            (exam_id,),
        )
        self.db.conn.commit()

        return exam_id

    def get_exam(self, exam_id: str) -> Optional[Dict[str, Any]]:
        """
        Get exam details with status info.

        Args:
            exam_id: Exam ID

        Returns:
            Exam dict with keys: id, name, description, created_at, status,
            archived, question_count, variant_count, submission_count,
            settings; or None if not found
        """
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM exams WHERE id = ?", (exam_id,))
        row = cursor.fetchone()
        if not row:
            return None

        exam = dict(row)
        bank_json = exam.pop("bank_json")
        exam["question_count"] = (
            len(json.loads(bank_json)["questions"]) if bank_json else 0
        )
        exam["archived"] = bool(exam["archived"])

        cursor.execute(
            "SELECT COUNT(*) as count FROM variants WHERE exam_id = ?", (exam_id,)
        )
        exam["variant_count"] = cursor.fetchone()["count"]
        cursor.execute(
            "SELECT COUNT(*) as count FROM submissions WHERE exam_id = ?", (exam_id,)
        )
        exam["submission_count"] = cursor.fetchone()["count"]
        exam["settings"] = self.get_settings(exam_id).to_dict()

        return exam

    def require_exam(self, exam_id: str) -> Dict[str, Any]:
        """Like get_exam, but raises ExamNotFoundError when missing."""
        exam = self.get_exam(exam_id)
        if exam is None:
            raise ExamNotFoundError(f"Exam not found: {exam_id}")
        return exam

    def list_exams(
        self,
        limit: int = 50,
        offset: int = 0,
        status: Optional[str] = None,
        search: Optional[str] = None,
        include_archived: bool = False,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """
        List exams with filtering, sorting, and pagination.

        Args:
            limit: Maximum number of exams to return
            offset: Number of exams to skip (for pagination)
            status: Filter by status (CREATED, BANK_IMPORTED, VARIANTS_GENERATED)
            search: Search in name and description
            include_archived: Whether to include archived exams
            sort_by: Field to sort by (created_at, name, status)
            sort_order: Sort direction (asc, desc)

        Returns:
            Dict with keys: exams (list), total (int), limit (int), offset (int)
        """
        cursor = self.db.conn.cursor()

        conditions = []
        params: List[Any] = []

        if not include_archived:
            conditions.append("e.archived = 0")

        if status:
            conditions.append("e.status = ?")
            params.append(status)

        if search:
            conditions.append("(e.name LIKE ? OR e.description LIKE ?)")
            search_pattern = f"%{search}%"
            params.extend([search_pattern, search_pattern])

        where_clause = " AND ".join(conditions) if conditions else "1=1"

        valid_sort_fields = {"created_at", "name", "status"}
        if sort_by not in valid_sort_fields:
            sort_by = "created_at"

        sort_direction = "DESC" if sort_order.lower() == "desc" else "ASC"

        cursor.execute(
            f"SELECT COUNT(*) as total FROM exams e WHERE {where_clause}", params
        )
        total = cursor.fetchone()["total"]

        query = f"""
            SELECT e.id, e.name, e.description, e.created_at, e.status, e.archived,
                   (SELECT COUNT(*) FROM variants WHERE exam_id = e.id) as variant_count,
                   (SELECT COUNT(*) FROM submissions WHERE exam_id = e.id) as submission_count
            FROM exams e
            WHERE {where_clause}
            ORDER BY e.{sort_by} {sort_direction}
            LIMIT ? OFFSET ?
        """
        params.extend([limit, offset])
        cursor.execute(query, params)

        exams = []
        for row in cursor.fetchall():
            exam = dict(row)
            exam["archived"] = bool(exam["archived"])
            exams.append(exam)

        return {
            "exams": exams,
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def rename_exam(self, exam_id: str, name: str) -> bool:
        """
        Rename an exam.

        Returns:
            True if renamed, False if not found
        """
        cursor = self.db.conn.cursor()
        cursor.execute("UPDATE exams SET name = ? WHERE id = ?", (name, exam_id))
        self.db.conn.commit()
        return cursor.rowcount > 0

    def archive_exam(self, exam_id: str) -> bool:
        """
        Archive an exam (soft delete).

        Returns:
            True if archived, False if not found or already archived
        """
        cursor = self.db.conn.cursor()
        cursor.execute(
            "UPDATE exams SET archived = 1 WHERE id = ? AND archived = 0",
            (exam_id,),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def unarchive_exam(self, exam_id: str) -> bool:
        """
        Restore an archived exam.

        Returns:
            True if unarchived, False if not found or not archived
        """
        cursor = self.db.conn.cursor()
        cursor.execute(
            "UPDATE exams SET archived = 0 WHERE id = ? AND archived = 1",
            (exam_id,),
        )
        self.db.conn.commit()
        return cursor.rowcount > 0

    def delete_exam(self, exam_id: str) -> bool:
        """
        Delete an exam and all associated variants and submissions.

        Returns:
            True if deleted, False if not found
        """
        cursor = self.db.conn.cursor()

        cursor.execute("SELECT 1 FROM exams WHERE id = ?", (exam_id,))
        if not cursor.fetchone():
            return False

        cursor.execute("DELETE FROM submissions WHERE exam_id = ?", (exam_id,))
        cursor.execute("DELETE FROM variants WHERE exam_id = ?", (exam_id,))
        cursor.execute("DELETE FROM exam_settings WHERE exam_id = ?", (exam_id,))
        cursor.execute("DELETE FROM exams WHERE id = ?", (exam_id,))

        self.db.conn.commit()
        return True

    # ------------------------------------------------------------------
    # Bank and settings
    # ------------------------------------------------------------------

    def set_bank(self, exam_id: str, bank: QuestionBank):
        """
        Store or replace the exam's question bank.

        Variants already generated keep their own frozen structure.

        Raises:
            ExamNotFoundError: If the exam does not exist
        """
        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            UPDATE exams
            SET bank_json = ?,
                status = CASE WHEN status = 'CREATED' THEN 'BANK_IMPORTED' ELSE status END
            WHERE id = ?
            """,
            (json.dumps(bank.to_dict()), exam_id),
        )
        self.db.conn.commit()
        if cursor.rowcount == 0:
            raise ExamNotFoundError(f"Exam not found: {exam_id}")

    def get_bank_data(self, exam_id: str) -> Optional[Dict[str, Any]]:
        """
        Get the stored bank JSON for an exam.

        Returns:
            Bank dict, or None if the exam has no bank yet

        Raises:
            ExamNotFoundError: If the exam does not exist
        """
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT bank_json FROM exams WHERE id = ?", (exam_id,))
        row = cursor.fetchone()
        if not row:
            raise ExamNotFoundError(f"Exam not found: {exam_id}")
        if not row["bank_json"]:
            return None
        return json.loads(row["bank_json"])

    def set_settings(self, exam_id: str, settings: ShuffleSettings):
        """
        Store the exam's shuffle settings.

        Raises:
            ExamNotFoundError: If the exam does not exist
        """
        self.require_exam(exam_id)
        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            INSERT INTO exam_settings (exam_id, shuffle_questions, shuffle_answers, shuffle_all)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(exam_id) DO UPDATE SET
                shuffle_questions = excluded.shuffle_questions,
                shuffle_answers = excluded.shuffle_answers,
                shuffle_all = excluded.shuffle_all
            """,
            (
                exam_id,
                1 if settings.shuffle_questions else 0,
                1 if settings.shuffle_answers else 0,
                1 if settings.shuffle_all else 0,
            ),
        )
        self.db.conn.commit()

    def get_settings(self, exam_id: str) -> ShuffleSettings:
        """Shuffle settings for an exam; all flags off when none are stored."""
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM exam_settings WHERE exam_id = ?", (exam_id,))
        row = cursor.fetchone()
        if not row:
            return ShuffleSettings()
        return ShuffleSettings(
            shuffle_questions=bool(row["shuffle_questions"]),
            shuffle_answers=bool(row["shuffle_answers"]),
            shuffle_all=bool(row["shuffle_all"]),
        )

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def store_variant(self, variant: Variant, pdf_bytes: Optional[bytes] = None):
        """
        Store a generated variant and its printed PDF.

        Args:
            variant: Materialized variant (exam_id must be set)
            pdf_bytes: Rendered sheet
        """
        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            INSERT INTO variants
            (id, exam_id, created_at, schema_version, structure_json, pdf_content)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                variant.id,
                variant.exam_id,
                variant.created_at,
                variant.schema_version,
                json.dumps(variant.structure()),
                pdf_bytes,
            ),
        )
        cursor.execute(
            "UPDATE exams SET status = 'VARIANTS_GENERATED' WHERE id = ?",
            (variant.exam_id,),
        )
        self.db.conn.commit()

    def get_variant(self, variant_id: str) -> Variant:
        """
        Load a variant by id.

        Raises:
            VariantNotFoundError: If no such variant exists
            VariantFormatError: If the stored structure cannot be parsed
        """
        cursor = self.db.conn.cursor()
        cursor.execute(
            "SELECT id, exam_id, created_at, structure_json FROM variants WHERE id = ?",
            (variant_id,),
        )
        row = cursor.fetchone()
        if not row:
            raise VariantNotFoundError(f"Variant not found: {variant_id}")

        try:
            structure = json.loads(row["structure_json"])
        except (TypeError, ValueError) as e:
            raise VariantFormatError(f"Variant structure is not valid JSON: {e}", variant_id)

        return Variant.from_structure(
            row["id"], structure, exam_id=row["exam_id"], created_at=row["created_at"]
        )

    def get_variant_pdf(self, variant_id: str) -> Optional[bytes]:
        """
        Get just the PDF content for a variant.

        Returns:
            PDF bytes or None if not found
        """
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT pdf_content FROM variants WHERE id = ?", (variant_id,))
        row = cursor.fetchone()
        return row["pdf_content"] if row else None

    def list_variants(self, exam_id: str) -> List[Dict[str, Any]]:
        """Summaries of an exam's variants, oldest first."""
        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            SELECT v.id, v.exam_id, v.created_at, v.schema_version,
                   (SELECT COUNT(*) FROM submissions WHERE variant_id = v.id) as submission_count
            FROM variants v
            WHERE v.exam_id = ?
            ORDER BY v.created_at ASC, v.rowid ASC
            """,
            (exam_id,),
        )
        return [dict(row) for row in cursor.fetchall()]

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    def store_submission(
        self,
        exam_id: str,
        variant_id: str,
        result: Dict[str, Any],
        submitter: Optional[str] = None,
        warnings: Optional[List[str]] = None,
    ) -> str:
        """
        Store a graded submission.

        Args:
            exam_id: Owning exam
            variant_id: Variant the submission was graded against
            result: ScoreResult.to_dict()
            submitter: Optional student name or identifier
            warnings: Scan warnings to keep with the result

        Returns:
            Submission ID (e.g., "sub_20260125_143052_abc12345")
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        unique_suffix = str(uuid.uuid4())[:8]
        submission_id = f"sub_{timestamp}_{unique_suffix}"
        created_at = datetime.now().isoformat()

        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            INSERT INTO submissions
            (id, exam_id, variant_id, submitter, created_at, correct_count,
             total_count, result_json, warnings_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                submission_id,
                exam_id,
                variant_id,
                submitter,
                created_at,
                result["score"],
                result["total"],
                json.dumps(result),
                json.dumps(warnings or []),
            ),
        )
        self.db.conn.commit()
        return submission_id

    def get_submission(self, submission_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a submission with its parsed result and warnings.

        Returns:
            Submission dict, or None if not found
        """
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM submissions WHERE id = ?", (submission_id,))
        row = cursor.fetchone()
        if not row:
            return None

        submission = dict(row)
        submission["result"] = json.loads(submission.pop("result_json"))
        warnings_json = submission.pop("warnings_json")
        submission["warnings"] = json.loads(warnings_json) if warnings_json else []
        return submission

    def list_submissions(
        self, exam_id: Optional[str] = None, variant_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        List submissions, oldest first, without their per-question breakdown.

        Args:
            exam_id: Restrict to one exam
            variant_id: Restrict to one variant
        """
        conditions = []
        params: List[Any] = []
        if exam_id:
            conditions.append("exam_id = ?")
            params.append(exam_id)
        if variant_id:
            conditions.append("variant_id = ?")
            params.append(variant_id)
        where_clause = " AND ".join(conditions) if conditions else "1=1"

        cursor = self.db.conn.cursor()
        cursor.execute(
            f"""
            SELECT id, exam_id, variant_id, submitter, created_at,
                   correct_count, total_count
            FROM submissions
            WHERE {where_clause}
            ORDER BY created_at ASC, rowid ASC
            """,
            params,
        )
        return [dict(row) for row in cursor.fetchall()]

    def close(self):
        """Close database connection."""
        self.db.close()
