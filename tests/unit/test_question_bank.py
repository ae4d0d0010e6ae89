"""Unit tests for QuestionBankClient."""

from pmiprep.core.models import Difficulty, ExamType
from pmiprep.quiz.question_bank import QuestionBankClient


class TestFetch:
    """Tests for filtered fetches."""

    def test_filters_by_exam(self, seeded_store):
        questions = QuestionBankClient(seeded_store).fetch(ExamType.CAPM, 10)
        assert {q.id for q in questions} == {"c1", "c2"}

    def test_count_is_an_upper_bound(self, seeded_store):
        questions = QuestionBankClient(seeded_store).fetch("PMP", 4)
        assert len(questions) == 4
        assert all(q.exam_type is ExamType.PMP for q in questions)

    def test_short_bank_returns_what_exists(self, seeded_store):
        assert len(QuestionBankClient(seeded_store).fetch("PMP", 50)) == 10

    def test_knowledge_area_filter(self, seeded_store):
        questions = QuestionBankClient(seeded_store).fetch(
            "PMP", 25, knowledge_areas=["Project Scope Management", "Project Cost Management"]
        )
        assert len(questions) == 6
        assert "Project Risk Management" not in {q.knowledge_area for q in questions}

    def test_difficulty_filter(self, seeded_store):
        bank = QuestionBankClient(seeded_store)
        assert bank.fetch("CAPM", 10, difficulty=Difficulty.EASY)
        assert bank.fetch("CAPM", 10, difficulty="hard") == []

    def test_malformed_document_skipped(self, store, question_factory):
        store.create_document("questions", question_factory("good").to_dict(), document_id="good")
        store.create_document(
            "questions",
            {"examType": "PMP", "questionText": "Broken?", "options": ["a", "b"], "correctAnswer": "A"},
            document_id="broken",
        )
        questions = QuestionBankClient(store).fetch("PMP", 10)
        assert [q.id for q in questions] == ["good"]
