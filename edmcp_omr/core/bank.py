"""
Question bank reading and validation.

Plain-text banks use one line per item:

    ? What is 2 + 2?
    - 3
    + 4
    - 5

A line starting with "?" opens a question, "+" adds the correct option and "-"
adds a wrong one. Every question needs exactly one "+" option.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .errors import BankFormatError
from .models import Option, Question, QuestionBank


def _finish_question(text: str, options: List[Option], number: int) -> Question:
    correct = sum(1 for o in options if o.is_correct)
    if correct != 1:
        raise BankFormatError(
            f"Question {number} must have exactly one correct answer, found {correct}"
        )
    return Question(text=text, options=tuple(options))


def parse_bank_text(text: str) -> QuestionBank:
    """
    Parse a plain-text question bank.

    Args:
        text: Bank content using "?", "+" and "-" line prefixes

    Returns:
        QuestionBank in authoring order

    Raises:
        BankFormatError: If an option precedes any question or a question does
            not have exactly one correct option
    """
    questions: List[Question] = []
    current_text: Optional[str] = None
    current_options: List[Option] = []

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("?"):
            if current_text is not None:
                questions.append(
                    _finish_question(current_text, current_options, len(questions) + 1)
                )
            current_text = line[1:].strip()
            current_options = []
        elif line.startswith("+") or line.startswith("-"):
            if current_text is None:
                raise BankFormatError("Answer before question")
            current_options.append(
                Option(text=line[1:].strip(), is_correct=line.startswith("+"))
            )

    if current_text is not None:
        questions.append(
            _finish_question(current_text, current_options, len(questions) + 1)
        )

    if not questions:
        raise BankFormatError("Question bank contains no questions")

    return QuestionBank(questions=tuple(questions))


def bank_from_dict(data: Any) -> QuestionBank:
    """
    Build a QuestionBank from its JSON structure.

    Accepts {"questions": [{"text", "options": [{"text", "is_correct"}]}]} and
    the legacy keys "question", "answers" and "isCorrect".

    Raises:
        BankFormatError: If the structure is invalid
    """
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        raise BankFormatError("Bank must be an object with a 'questions' list")

    questions: List[Question] = []
    for index, raw in enumerate(data["questions"], start=1):
        if not isinstance(raw, dict):
            raise BankFormatError(f"Question {index} must be an object")
        text = raw.get("text", raw.get("question"))
        raw_options = raw.get("options", raw.get("answers"))
        if not isinstance(text, str) or not isinstance(raw_options, list):
            raise BankFormatError(f"Question {index} is missing text or options")

        options: List[Option] = []
        for opt in raw_options:
            if not isinstance(opt, dict) or not isinstance(opt.get("text"), str):
                raise BankFormatError(f"Question {index} has an invalid option")
            is_correct = opt.get("is_correct", opt.get("isCorrect", False))
            options.append(Option(text=opt["text"], is_correct=bool(is_correct)))
        questions.append(_finish_question(text, options, index))

    if not questions:
        raise BankFormatError("Question bank contains no questions")

    return QuestionBank(questions=tuple(questions))


def bank_to_dict(bank: QuestionBank) -> Dict[str, Any]:
    return bank.to_dict()
