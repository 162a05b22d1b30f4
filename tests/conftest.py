"""Pytest configuration and fixtures for edmcp-omr tests."""

import random
import sys
from pathlib import Path

import pytest

from edmcp_omr.config import OmrSettings
from edmcp_omr.core import ExamStore, SubmissionManager, VariantManager
from edmcp_omr.core.models import Option, Question, QuestionBank
from edmcp_omr.core.variants import materialize

# Correct option per question for the ten-question sample bank: C, A, B, D, ...
SAMPLE_KEY = ["C", "A", "B", "D", "C", "A", "B", "D", "C", "A"]


def make_bank(key=SAMPLE_KEY, options=4):
    """Bank whose question i has options "Qi option A".. with key[i] correct."""
    questions = []
    for index, correct in enumerate(key):
        correct_index = ord(correct) - ord("A")
        questions.append(
            Question(
                text=f"Question number {index + 1}?",
                options=tuple(
                    Option(
                        text=f"Q{index + 1} option {chr(ord('A') + o)}",
                        is_correct=(o == correct_index),
                    )
                    for o in range(options)
                ),
            )
        )
    return QuestionBank(questions=tuple(questions))


@pytest.fixture
def sample_bank():
    """Ten questions, four options each, answer key C, A, B, D, ..."""
    return make_bank()


@pytest.fixture
def sample_variant(sample_bank):
    """Unshuffled variant of the sample bank."""
    return materialize(sample_bank, variant_id="variant-sample", exam_id="ex_sample")


@pytest.fixture
def sample_bank_text():
    """Plain-text bank with three questions."""
    return """
? What is 2 + 2?
- 3
+ 4
- 5

? Which planet is known as the red planet?
+ Mars
- Venus
- Jupiter
- Saturn

? Water boils at sea level at
- 90 degrees Celsius
+ 100 degrees Celsius
"""


@pytest.fixture
def settings():
    """Default geometry and detection settings."""
    return OmrSettings()


@pytest.fixture
def store(tmp_path):
    """Create an ExamStore with a temporary database."""
    exam_store = ExamStore(tmp_path / "test_omr.db")
    yield exam_store
    exam_store.close()


@pytest.fixture
def variant_manager(store, settings):
    """VariantManager with a seeded random source."""
    return VariantManager(store, settings, rng=random.Random(1234))


@pytest.fixture
def submission_manager(store, settings):
    return SubmissionManager(store, settings)


@pytest.fixture(autouse=True)
def reset_server_state(tmp_path):
    """Reset server global state before each test to ensure isolation."""
    # Add parent directory to path so we can import server module
    sys.path.insert(0, str(Path(__file__).parent.parent))

    import server

    # Reset global state
    server._settings = OmrSettings()
    server._store = None
    server._variant_manager = None
    server._submission_manager = None

    # Point to a temp database for server tests
    server.DB_PATH = tmp_path / "test_server.db"

    yield

    # Clean up after test
    if server._store is not None:
        server._store.close()
    server._settings = None
    server._store = None
    server._variant_manager = None
    server._submission_manager = None
