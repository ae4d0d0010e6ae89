"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pmiprep.core.models import Difficulty, ExamType, Question, User  # noqa: E402
from pmiprep.store.memory import InMemoryDocumentStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require a live backend)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_question(
    qid: str,
    area: str = "Project Risk Management",
    correct: str = "A",
    exam: ExamType = ExamType.PMP,
    difficulty: Difficulty = Difficulty.MEDIUM,
) -> Question:
    return Question(
        id=qid,
        text=f"Question {qid}?",
        options=(f"{qid}-a", f"{qid}-b", f"{qid}-c", f"{qid}-d"),
        correct_answer=correct,
        explanation=f"Because {qid}.",
        knowledge_area=area,
        difficulty=difficulty,
        exam_type=exam,
    )


@pytest.fixture
def clock():
    """Provide a hand-driven monotonic clock."""
    return FakeClock()


@pytest.fixture
def now():
    """Provide a fixed wall-clock instant."""
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    """Provide an empty in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def sample_questions():
    """Provide ten PMP questions across three knowledge areas."""
    areas = (
        ["Project Risk Management"] * 4
        + ["Project Scope Management"] * 3
        + ["Project Cost Management"] * 3
    )
    letters = "ABCD"
    return [make_question(f"q{i}", area=area, correct=letters[i % 4]) for i, area in enumerate(areas)]


@pytest.fixture
def seeded_store(store, sample_questions):
    """Provide a store holding the sample questions plus two CAPM questions."""
    for question in sample_questions:
        store.create_document("questions", question.to_dict(), document_id=question.id)
    for qid in ("c1", "c2"):
        question = make_question(qid, exam=ExamType.CAPM, difficulty=Difficulty.EASY)
        store.create_document("questions", question.to_dict(), document_id=qid)
    return store


@pytest.fixture
def student():
    """Provide a regular signed-in user."""
    return User(id="student-1", email="student@example.com", name="Student")


@pytest.fixture
def admin():
    """Provide a user with the admin account label."""
    return User(id="admin-1", email="admin@example.com", name="Admin", labels=("admin",))


@pytest.fixture
def question_factory():
    """Provide the make_question helper."""
    return make_question
