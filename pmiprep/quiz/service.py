"""
Quiz flow against the document store.

fetch -> shuffle -> session -> score -> persist attempt -> merge progress.

Persistence never blocks the results screen: a failed attempt or progress
write is logged and reported on the SubmissionOutcome. The attempt and the
progress merge are separate writes, so a saved attempt with a failed merge
leaves the rolling summary stale until the next successful merge.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from pmiprep.core.errors import NotFoundError, PrepError, TransientRemoteError
from pmiprep.core.models import ExamType, QuizAttempt, QuizSettings, UserProgress
from pmiprep.progress.aggregator import ProgressRepository
from pmiprep.quiz.builder import SessionBuilder
from pmiprep.quiz.question_bank import QuestionBankClient
from pmiprep.quiz.scorer import Scorer
from pmiprep.quiz.session import QuizSession, SessionResult
from pmiprep.store.base import Collection, DocumentStore, equal, user_permissions


@dataclass
class SubmissionOutcome:
    attempt: QuizAttempt
    attempt_saved: bool = False
    progress_saved: bool = False
    progress: UserProgress | None = None
    error: str | None = None


class QuizService:
    def __init__(
        self,
        store: DocumentStore,
        bank: QuestionBankClient | None = None,
        builder: SessionBuilder | None = None,
        progress: ProgressRepository | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.bank = bank or QuestionBankClient(store)
        self.builder = builder or SessionBuilder()
        self.progress = progress or ProgressRepository(store)
        self.clock = clock

    def start_quiz(
        self,
        user_id: str,
        enrollment_id: str,
        exam_type: ExamType | str,
        settings: QuizSettings,
        on_complete: Callable[[SubmissionOutcome], None] | None = None,
    ) -> QuizSession:
        """
        Fetch, shuffle and start a session.

        When the session completes (manually or on expiry) the attempt is
        persisted exactly once and ``on_complete`` receives the outcome.

        Raises:
            NotFoundError: If the bank has no matching questions
        """
        exam = ExamType(exam_type)
        questions = self.bank.fetch(
            exam,
            settings.question_count,
            knowledge_areas=settings.knowledge_areas or None,
            difficulty=settings.difficulty,
        )
        if not questions:
            raise NotFoundError(
                f"No questions available for {exam.value}", collection=Collection.QUESTIONS.value
            )

        def persist(result: SessionResult) -> None:
            outcome = self.finish(user_id, enrollment_id, exam, result)
            if on_complete is not None:
                on_complete(outcome)

        session = QuizSession(settings, self.builder.build(questions), clock=self.clock, on_submit=persist)
        session.start()
        return session

    @staticmethod
    def build_attempt(
        user_id: str, enrollment_id: str, exam_type: ExamType | str, result: SessionResult
    ) -> QuizAttempt:
        exam = ExamType(exam_type)
        return QuizAttempt(
            user_id=user_id,
            enrollment_id=enrollment_id,
            quiz_id=result.quiz_id,
            exam_type=exam.value,
            mode=result.settings.mode,
            answers=list(result.answers),
            score=result.score.score,
            total_questions=result.score.total_questions,
            correct_answers=result.score.correct_answers,
            time_spent_seconds=result.time_spent_seconds,
            knowledge_area_breakdown=list(result.score.knowledge_area_breakdown),
            completed_at=result.completed_at,
            passed=Scorer.passed(result.score.score, exam),
        )

    def finish(
        self, user_id: str, enrollment_id: str, exam_type: ExamType | str, result: SessionResult
    ) -> SubmissionOutcome:
        """Persist the attempt, then merge it into progress. Never raises PrepError."""
        attempt = self.build_attempt(user_id, enrollment_id, exam_type, result)
        outcome = SubmissionOutcome(attempt=attempt)

        try:
            document = self.store.create_document(
                Collection.QUIZ_ATTEMPTS,
                attempt.to_dict(),
                document_id=result.quiz_id,
                permissions=user_permissions(user_id),
            )
        except PrepError as exc:
            logger.error("Failed to save quiz attempt {}: {}", result.quiz_id, exc)
            outcome.error = str(exc)
            return outcome
        outcome.attempt = QuizAttempt.from_dict(document)
        outcome.attempt_saved = True

        try:
            outcome.progress = self.progress.apply_attempt(outcome.attempt)
            outcome.progress_saved = True
        except PrepError as exc:
            logger.error("Attempt {} saved but progress update failed: {}", result.quiz_id, exc)
            outcome.error = str(exc)
        return outcome

    def quiz_history(self, user_id: str, limit: int = 10) -> list[QuizAttempt]:
        try:
            documents = self.store.list_documents(
                Collection.QUIZ_ATTEMPTS,
                [equal("userId", user_id)],
                limit=limit,
                order_by="completedAt",
                descending=True,
            )
        except TransientRemoteError as exc:
            logger.warning("Could not load quiz history for {}: {}", user_id, exc)
            return []
        return [QuizAttempt.from_dict(d) for d in documents]

    def progress_view(self, user_id: str, enrollment_id: str) -> UserProgress | None:
        try:
            return self.progress.get(user_id, enrollment_id)
        except NotFoundError:
            return None
        except TransientRemoteError as exc:
            logger.warning("Could not load progress for {}: {}", user_id, exc)
            return None
