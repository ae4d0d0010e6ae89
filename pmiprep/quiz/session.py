"""
Quiz session state machine.

NOT_STARTED -> ACTIVE -> COMPLETED. Completion happens once, either by an
explicit submit or by the timer noticing the time limit has passed; the
first caller wins and every later submit returns the same result without
side effects. Session mutation is serialized with a lock so a background
SessionTimer can share the session with the thread driving the UI.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NoReturn

from loguru import logger

from pmiprep.core.errors import ValidationError
from pmiprep.core.models import QuizAnswer, QuizSettings, ShuffledQuestion, utcnow
from pmiprep.quiz.scorer import Scorer, ScoreResult


class SessionState(str, Enum):
    NOT_STARTED = "not-started"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class SessionResult:
    """Locally computed outcome of a completed session."""

    quiz_id: str
    settings: QuizSettings
    questions: list[ShuffledQuestion]
    answers: list[QuizAnswer]
    score: ScoreResult
    time_spent_seconds: int
    expired: bool
    completed_at: datetime = field(default_factory=utcnow)


class QuizSession:
    """One run through a fixed, shuffled set of questions."""

    def __init__(
        self,
        settings: QuizSettings,
        questions: Sequence[ShuffledQuestion],
        clock: Callable[[], float] = time.monotonic,
        on_submit: Callable[[SessionResult], None] | None = None,
        quiz_id: str | None = None,
    ) -> None:
        self.settings = settings
        self.questions: tuple[ShuffledQuestion, ...] = tuple(questions)
        self.quiz_id = quiz_id or uuid.uuid4().hex
        self.current_index = 0
        self._clock = clock
        self._on_submit = on_submit
        self._lock = threading.Lock()
        self._state = SessionState.NOT_STARTED
        self._answers: dict[str, QuizAnswer] = {}
        self._time_on_question: dict[str, float] = {}
        self._started_at: float | None = None
        self._question_started_at: float | None = None
        self._ended_at: float | None = None
        self._result: SessionResult | None = None
        self._notified = threading.Event()

    # ========================================
    # State
    # ========================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def result(self) -> SessionResult | None:
        return self._result

    @property
    def current_question(self) -> ShuffledQuestion:
        return self.questions[self.current_index]

    @property
    def answers(self) -> dict[str, QuizAnswer]:
        with self._lock:
            return dict(self._answers)

    @property
    def answered_count(self) -> int:
        return len(self._answers)

    def answer_for(self, question_id: str) -> QuizAnswer | None:
        return self._answers.get(question_id)

    def _require_active(self) -> None:
        if self._state is not SessionState.ACTIVE:
            raise ValidationError(f"Session is {self._state.value}, not active", field="state")

    def _expire(self) -> NoReturn:
        """Auto-submit an expired session and reject the call that noticed it."""
        logger.info("Quiz {} time limit reached, auto-submitting", self.quiz_id)
        self.submit()
        raise ValidationError("Time limit reached, the session has been submitted", field="state")

    # ========================================
    # Timing
    # ========================================

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._ended_at if self._ended_at is not None else self._clock()
        return max(0.0, end - self._started_at)

    @property
    def remaining_seconds(self) -> float | None:
        limit = self.settings.time_limit_seconds
        if limit is None:
            return None
        return max(0.0, limit - self.elapsed_seconds)

    @property
    def is_expired(self) -> bool:
        remaining = self.remaining_seconds
        return remaining is not None and remaining <= 0

    def _charge_current_question(self) -> None:
        now = self._clock()
        if self._question_started_at is not None:
            question_id = self.current_question.id
            spent = now - self._question_started_at
            self._time_on_question[question_id] = self._time_on_question.get(question_id, 0.0) + spent
        self._question_started_at = now

    # ========================================
    # Transitions
    # ========================================

    def start(self) -> None:
        with self._lock:
            if self._state is not SessionState.NOT_STARTED:
                raise ValidationError("Session has already been started", field="state")
            if not self.questions:
                raise ValidationError("Cannot start a session with no questions", field="questions")
            self._started_at = self._clock()
            self._question_started_at = self._started_at
            self._state = SessionState.ACTIVE
        logger.debug(
            "Quiz {} started: {} questions, mode={}, limit={}s",
            self.quiz_id,
            len(self.questions),
            self.settings.mode.value,
            self.settings.time_limit_seconds,
        )

    def select_answer(self, option_text: str) -> QuizAnswer:
        """
        Record (or overwrite) the answer for the current question.

        An answer that arrives after the time limit is not recorded: the
        session is submitted instead and ValidationError is raised.
        """
        with self._lock:
            self._require_active()
            if not self.is_expired:
                return self._record_answer(option_text)
        self._expire()

    def _record_answer(self, option_text: str) -> QuizAnswer:
        question = self.current_question
        try:
            shuffled_index = question.shuffled_options.index(option_text)
        except ValueError:
            raise ValidationError(
                f"{option_text!r} is not an option of question {question.id}",
                field="selectedAnswer",
            ) from None
        self._charge_current_question()
        answer = QuizAnswer(
            question_id=question.id,
            selected_answer=option_text,
            is_correct=question.is_correct_choice(shuffled_index),
            time_spent_seconds=int(self._time_on_question.get(question.id, 0.0)),
        )
        self._answers[question.id] = answer
        return answer

    def go_to(self, index: int) -> int:
        with self._lock:
            self._require_active()
            if not self.is_expired:
                target = min(max(index, 0), len(self.questions) - 1)
                if target != self.current_index:
                    self._charge_current_question()
                    self.current_index = target
                return self.current_index
        self._expire()

    def next_question(self) -> int:
        return self.go_to(self.current_index + 1)

    def previous_question(self) -> int:
        return self.go_to(self.current_index - 1)

    def tick(self) -> SessionState:
        """Timer step: auto-submit once a timed session runs out."""
        with self._lock:
            expired = self._state is SessionState.ACTIVE and self.is_expired
        if expired:
            logger.info("Quiz {} time limit reached, auto-submitting", self.quiz_id)
            self.submit()
        return self._state

    def submit(self) -> SessionResult:
        """
        Complete the session. Only the first call scores and notifies.

        Later callers get the same result once the first caller's
        ``on_submit`` has returned.
        """
        cached = None
        with self._lock:
            if self._result is not None:
                cached = self._result
            elif self._state is SessionState.NOT_STARTED:
                raise ValidationError("Cannot submit a session that was never started", field="state")
            else:
                result = self._complete()
        if cached is not None:
            self._notified.wait()
            return cached

        logger.info(
            "Quiz {} completed: {}/{} correct ({:.1f}%)",
            self.quiz_id,
            result.score.correct_answers,
            result.score.total_questions,
            result.score.score,
        )
        try:
            if self._on_submit is not None:
                self._on_submit(result)
        finally:
            self._notified.set()
        return result

    def _complete(self) -> SessionResult:
        # caller holds the lock
        self._charge_current_question()
        expired = self.is_expired
        self._ended_at = self._clock()
        elapsed = self.elapsed_seconds
        limit = self.settings.time_limit_seconds
        if limit is not None:
            elapsed = min(elapsed, limit)

        answers = [self._answers[q.id] for q in self.questions if q.id in self._answers]
        self._result = SessionResult(
            quiz_id=self.quiz_id,
            settings=self.settings,
            questions=list(self.questions),
            answers=answers,
            score=Scorer.score(self.questions, self._answers),
            time_spent_seconds=int(elapsed),
            expired=expired,
        )
        self._state = SessionState.COMPLETED
        return self._result


class SessionTimer(threading.Thread):
    """Background ticker for timed sessions."""

    def __init__(self, session: QuizSession, interval: float = 1.0) -> None:
        super().__init__(name=f"quiz-timer-{session.quiz_id}", daemon=True)
        self.session = session
        self.interval = interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            if self.session.tick() is SessionState.COMPLETED:
                break
        logger.debug("Timer for quiz {} stopped", self.session.quiz_id)

    def stop(self) -> None:
        self._stop_event.set()
