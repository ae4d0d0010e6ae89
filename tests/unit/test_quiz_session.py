"""
Unit tests for the QuizSession state machine and SessionTimer.

Time is driven by a fake monotonic clock; the timer thread tests use a
short interval and join with a timeout.
"""

import random
import threading
from unittest.mock import Mock

import pytest

from pmiprep.core.errors import ValidationError
from pmiprep.core.models import QuizMode, QuizSettings
from pmiprep.quiz.builder import SessionBuilder
from pmiprep.quiz.session import QuizSession, SessionState, SessionTimer


@pytest.fixture
def shuffled(sample_questions):
    return SessionBuilder(random.Random(5)).build(sample_questions)


@pytest.fixture
def practice(shuffled, clock):
    session = QuizSession(QuizSettings(question_count=10), shuffled, clock=clock)
    session.start()
    return session


def _timed_session(shuffled, clock, on_submit=None, minutes=1):
    settings = QuizSettings(mode=QuizMode.TIMED_EXAM, question_count=10, timed=True, time_limit_minutes=minutes)
    session = QuizSession(settings, shuffled, clock=clock, on_submit=on_submit)
    session.start()
    return session


class TestLifecycle:
    """Tests for state transitions."""

    def test_start_requires_questions(self, clock):
        session = QuizSession(QuizSettings(), [], clock=clock)
        with pytest.raises(ValidationError):
            session.start()
        assert session.state is SessionState.NOT_STARTED

    def test_start_activates(self, practice):
        assert practice.state is SessionState.ACTIVE
        assert practice.current_index == 0

    def test_cannot_start_twice(self, practice):
        with pytest.raises(ValidationError):
            practice.start()

    def test_answer_before_start_rejected(self, shuffled, clock):
        session = QuizSession(QuizSettings(), shuffled, clock=clock)
        with pytest.raises(ValidationError):
            session.select_answer(shuffled[0].shuffled_options[0])

    def test_answer_after_submit_rejected(self, practice):
        practice.submit()
        with pytest.raises(ValidationError):
            practice.select_answer(practice.current_question.shuffled_options[0])

    def test_submit_before_start_rejected(self, shuffled, clock):
        with pytest.raises(ValidationError):
            QuizSession(QuizSettings(), shuffled, clock=clock).submit()


class TestAnswers:
    """Tests for select_answer."""

    def test_correct_answer_detected(self, practice):
        question = practice.current_question
        answer = practice.select_answer(question.correct_option_text)
        assert answer.is_correct
        assert answer.question_id == question.id

    def test_wrong_answer_detected(self, practice):
        question = practice.current_question
        wrong = next(o for o in question.shuffled_options if o != question.correct_option_text)
        assert not practice.select_answer(wrong).is_correct

    def test_reselect_overwrites(self, practice):
        """At most one live answer per question."""
        question = practice.current_question
        wrong = next(o for o in question.shuffled_options if o != question.correct_option_text)
        practice.select_answer(wrong)
        practice.select_answer(question.correct_option_text)

        assert practice.answered_count == 1
        assert practice.answers[question.id].is_correct

    def test_unknown_option_rejected(self, practice):
        with pytest.raises(ValidationError):
            practice.select_answer("not an option")
        assert practice.answered_count == 0

    def test_time_spent_recorded(self, practice, clock):
        clock.advance(12)
        answer = practice.select_answer(practice.current_question.correct_option_text)
        assert answer.time_spent_seconds == 12


class TestNavigation:
    """Tests for next/previous/go_to clamping."""

    def test_previous_at_start_is_noop(self, practice):
        assert practice.previous_question() == 0

    def test_next_at_end_is_noop(self, practice):
        last = len(practice.questions) - 1
        practice.go_to(last)
        assert practice.next_question() == last

    def test_go_to_clamps(self, practice):
        assert practice.go_to(99) == len(practice.questions) - 1
        assert practice.go_to(-5) == 0

    def test_answers_survive_navigation(self, practice):
        first = practice.current_question
        practice.select_answer(first.correct_option_text)
        practice.next_question()
        practice.previous_question()
        assert practice.answer_for(first.id).is_correct


class TestSubmit:
    """Tests for submit and first-caller-wins completion."""

    def test_submit_scores_locally(self, practice):
        for _ in range(len(practice.questions)):
            practice.select_answer(practice.current_question.correct_option_text)
            practice.next_question()
        result = practice.submit()

        assert practice.state is SessionState.COMPLETED
        assert result.score.score == 100
        assert len(result.answers) == 10
        assert not result.expired

    def test_second_submit_returns_same_result(self, shuffled, clock):
        on_submit = Mock()
        session = QuizSession(QuizSettings(), shuffled, clock=clock, on_submit=on_submit)
        session.start()

        first = session.submit()
        second = session.submit()

        assert first is second
        on_submit.assert_called_once_with(first)

    def test_concurrent_submits_notify_once(self, shuffled, clock):
        on_submit = Mock()
        session = QuizSession(QuizSettings(), shuffled, clock=clock, on_submit=on_submit)
        session.start()

        threads = [threading.Thread(target=session.submit) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert on_submit.call_count == 1

    def test_later_submit_waits_for_notification(self, shuffled, clock):
        """A submit that loses the race returns only after on_submit has finished."""
        release = threading.Event()
        entered = threading.Event()
        calls = []

        def slow_on_submit(result):
            entered.set()
            release.wait(timeout=5)
            calls.append(result)

        session = QuizSession(QuizSettings(), shuffled, clock=clock, on_submit=slow_on_submit)
        session.start()

        first = threading.Thread(target=session.submit)
        first.start()
        assert entered.wait(timeout=5)

        seen = []

        def late_submit():
            session.submit()
            seen.append(len(calls))

        second = threading.Thread(target=late_submit)
        second.start()
        second.join(timeout=0.1)
        assert second.is_alive()

        release.set()
        first.join(timeout=5)
        second.join(timeout=5)
        assert seen == [1]

    def test_submit_notifies_even_when_on_submit_fails(self, shuffled, clock):
        session = QuizSession(QuizSettings(), shuffled, clock=clock, on_submit=Mock(side_effect=RuntimeError("boom")))
        session.start()

        with pytest.raises(RuntimeError):
            session.submit()
        assert session.submit() is session.result


class TestTiming:
    """Tests for the timed-session clock and auto-submit."""

    def test_untimed_has_no_remaining(self, practice, clock):
        clock.advance(10_000)
        assert practice.remaining_seconds is None
        assert not practice.is_expired
        assert practice.tick() is SessionState.ACTIVE

    def test_remaining_counts_down_and_floors(self, shuffled, clock):
        session = _timed_session(shuffled, clock)
        clock.advance(30)
        assert session.remaining_seconds == 30
        clock.advance(100)
        assert session.remaining_seconds == 0

    def test_auto_submit_at_time_limit(self, shuffled, clock):
        """One-minute session completes at 60s and a later manual submit is a no-op."""
        on_submit = Mock()
        session = _timed_session(shuffled, clock, on_submit=on_submit)

        clock.advance(59)
        assert session.tick() is SessionState.ACTIVE

        clock.advance(1)
        assert session.tick() is SessionState.COMPLETED
        assert session.result.expired
        assert session.result.time_spent_seconds == 60

        session.submit()
        session.tick()
        assert on_submit.call_count == 1

    def test_elapsed_frozen_after_completion(self, practice, clock):
        clock.advance(20)
        practice.submit()
        clock.advance(500)
        assert practice.elapsed_seconds == 20

    def test_late_answer_rejected_and_session_submitted(self, shuffled, clock):
        """An answer arriving after the limit is not recorded or scored."""
        on_submit = Mock()
        session = _timed_session(shuffled, clock, on_submit=on_submit)
        question = session.current_question

        clock.advance(61)
        with pytest.raises(ValidationError):
            session.select_answer(question.correct_option_text)

        assert session.state is SessionState.COMPLETED
        assert session.answered_count == 0
        assert session.result.expired
        assert session.result.score.correct_answers == 0
        assert session.result.time_spent_seconds == 60
        on_submit.assert_called_once()

    def test_navigation_after_limit_submits(self, shuffled, clock):
        session = _timed_session(shuffled, clock)
        clock.advance(60)

        with pytest.raises(ValidationError):
            session.next_question()
        assert session.state is SessionState.COMPLETED
        assert session.current_index == 0


class TestSessionTimer:
    """Tests for the background ticker."""

    def test_timer_auto_submits(self, shuffled, clock):
        on_submit = Mock()
        session = _timed_session(shuffled, clock, on_submit=on_submit)
        clock.advance(61)

        timer = SessionTimer(session, interval=0.01)
        timer.start()
        timer.join(timeout=2)

        assert not timer.is_alive()
        assert session.state is SessionState.COMPLETED
        on_submit.assert_called_once()

    def test_timer_stops_on_request(self, shuffled, clock):
        session = _timed_session(shuffled, clock)
        timer = SessionTimer(session, interval=0.01)
        timer.start()
        timer.stop()
        timer.join(timeout=2)

        assert not timer.is_alive()
        assert session.state is SessionState.ACTIVE

    def test_timer_exits_after_manual_submit(self, shuffled, clock):
        session = _timed_session(shuffled, clock)
        timer = SessionTimer(session, interval=0.01)
        timer.start()
        session.submit()
        timer.join(timeout=2)

        assert not timer.is_alive()
