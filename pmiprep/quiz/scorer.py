"""
Scoring for completed sessions.

- score = 100 * correct / total questions; unanswered questions count as wrong
- breakdown groups questions by knowledge area, sorted by area name
- pass/fail compares against the exam's configured passing score
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from pmiprep.core.exams import is_passing
from pmiprep.core.models import ExamType, KnowledgeAreaScore, QuizAnswer, ShuffledQuestion, percentage


@dataclass
class ScoreResult:
    score: float
    correct_answers: int
    total_questions: int
    knowledge_area_breakdown: list[KnowledgeAreaScore] = field(default_factory=list)

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers


class Scorer:
    """Stateless; never raises for unanswered questions or empty sessions."""

    @staticmethod
    def score(
        questions: Sequence[ShuffledQuestion],
        answers: Mapping[str, QuizAnswer],
    ) -> ScoreResult:
        area_totals: dict[str, list[int]] = {}
        correct = 0
        for question in questions:
            answer = answers.get(question.id)
            is_correct = answer is not None and answer.is_correct
            counts = area_totals.setdefault(question.knowledge_area, [0, 0])
            counts[1] += 1
            if is_correct:
                counts[0] += 1
                correct += 1

        breakdown = [
            KnowledgeAreaScore(area=area, correct=c, total=t, accuracy=percentage(c, t))
            for area, (c, t) in sorted(area_totals.items())
        ]
        return ScoreResult(
            score=percentage(correct, len(questions)),
            correct_answers=correct,
            total_questions=len(questions),
            knowledge_area_breakdown=breakdown,
        )

    @staticmethod
    def passed(score: float, exam_type: ExamType | str) -> bool:
        return is_passing(score, exam_type)
