"""Unit tests for progress merging and the progress repository."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from pmiprep.core.errors import NotFoundError, TransientRemoteError
from pmiprep.core.models import KnowledgeAreaScore, QuizAttempt, QuizMode, UserProgress
from pmiprep.progress.aggregator import ProgressAggregator, ProgressRepository, is_exam_ready
from pmiprep.store.memory import InMemoryDocumentStore
from pmiprep.store.policy import ResilientStore

RISK = "Project Risk Management"
SCOPE = "Project Scope Management"


def make_attempt(total, correct, breakdown=None, quiz_id="quiz-1", user_id="u1"):
    breakdown = breakdown or [(RISK, correct, total)]
    return QuizAttempt(
        user_id=user_id,
        enrollment_id="e1",
        quiz_id=quiz_id,
        exam_type="PMP",
        mode=QuizMode.PRACTICE,
        answers=[],
        score=100.0 * correct / total,
        total_questions=total,
        correct_answers=correct,
        time_spent_seconds=300,
        knowledge_area_breakdown=[
            KnowledgeAreaScore(area=a, correct=c, total=t, accuracy=100.0 * c / t) for a, c, t in breakdown
        ],
        completed_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    )


def make_progress(attempted, correct, areas):
    scores = [KnowledgeAreaScore(area=a, correct=c, total=t, accuracy=100.0 * c / t) for a, c, t in areas]
    aggregator = ProgressAggregator()
    strong, weak = aggregator.classify(scores)
    return UserProgress(
        user_id="u1",
        enrollment_id="e1",
        exam_type="PMP",
        total_questions_attempted=attempted,
        correct_answers=correct,
        overall_accuracy=100.0 * correct / attempted,
        knowledge_area_scores=scores,
        strong_areas=strong,
        weak_areas=weak,
    )


class TestMerge:
    """Tests for ProgressAggregator.merge."""

    def test_running_totals(self):
        """20/12 prior plus a 10/8 attempt gives 30/20 at 66.67%."""
        prior = make_progress(20, 12, [(RISK, 12, 20)])
        merged = ProgressAggregator().merge(prior, make_attempt(10, 8))

        assert merged.total_questions_attempted == 30
        assert merged.correct_answers == 20
        assert merged.overall_accuracy == pytest.approx(66.67, abs=0.01)

    def test_merge_does_not_mutate_input(self):
        prior = make_progress(20, 12, [(RISK, 12, 20)])
        ProgressAggregator().merge(prior, make_attempt(10, 8))
        assert prior.total_questions_attempted == 20
        assert prior.area(RISK).total == 20

    def test_first_merge_creates_progress(self):
        merged = ProgressAggregator().merge(None, make_attempt(4, 3))
        assert merged.user_id == "u1"
        assert merged.total_questions_attempted == 4
        assert merged.overall_accuracy == 75
        assert merged.area(RISK).correct == 3

    def test_weak_area_moves_to_strong(self):
        """An area at 55% pushed to 72% is strong and no longer weak."""
        prior = make_progress(20, 11, [(RISK, 11, 20)])
        assert RISK in prior.weak_areas

        merged = ProgressAggregator().merge(prior, make_attempt(30, 25))

        assert merged.area(RISK).accuracy == pytest.approx(72.0)
        assert RISK in merged.strong_areas
        assert RISK not in merged.weak_areas

    def test_strong_area_can_drop_to_neither(self):
        prior = make_progress(10, 8, [(RISK, 8, 10)])
        merged = ProgressAggregator().merge(prior, make_attempt(10, 5))
        assert merged.area(RISK).accuracy == 65
        assert RISK not in merged.strong_areas
        assert RISK not in merged.weak_areas

    def test_new_area_is_added(self):
        prior = make_progress(10, 8, [(RISK, 8, 10)])
        merged = ProgressAggregator().merge(prior, make_attempt(5, 1, breakdown=[(SCOPE, 1, 5)]))
        assert {s.area for s in merged.knowledge_area_scores} == {RISK, SCOPE}
        assert merged.weak_areas == [SCOPE]

    def test_ledger_blocks_second_merge(self):
        aggregator = ProgressAggregator()
        attempt = make_attempt(10, 8)
        once = aggregator.merge(None, attempt)
        twice = aggregator.merge(once, attempt)

        assert twice.total_questions_attempted == 10
        assert once.merged_attempt_ids == ["quiz-1"]

    def test_attempt_without_key_double_counts(self):
        """Without an attempt key there is nothing to detect a repeat with."""
        aggregator = ProgressAggregator()
        attempt = make_attempt(10, 8, quiz_id=None)
        twice = aggregator.merge(aggregator.merge(None, attempt), attempt)
        assert twice.total_questions_attempted == 20

    def test_custom_thresholds(self):
        aggregator = ProgressAggregator(strong_threshold=90, weak_threshold=80)
        merged = aggregator.merge(None, make_attempt(10, 8))
        assert merged.strong_areas == []
        assert merged.weak_areas == []


class TestReadiness:
    """Tests for exam readiness."""

    def test_ready_at_passing_score(self):
        assert is_exam_ready(make_progress(100, 61, [(RISK, 61, 100)]))

    def test_not_ready_below_passing(self):
        assert not is_exam_ready(make_progress(100, 60, [(RISK, 60, 100)]))

    def test_not_ready_without_attempts(self):
        assert not is_exam_ready(UserProgress(user_id="u1", enrollment_id="e1", exam_type="PMP"))


class TestProgressRepository:
    """Tests for get-or-create and apply_attempt against the store."""

    def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            ProgressRepository(store).get("u1", "e1")

    def test_get_or_create_creates_once(self, store):
        repo = ProgressRepository(store)
        first = repo.get_or_create("u1", "e1", "PMP")
        second = repo.get_or_create("u1", "e1", "PMP")

        assert first.id == second.id
        assert len(store.list_documents("user-progress")) == 1

    def test_apply_attempt_persists_merge(self, store):
        repo = ProgressRepository(store)
        repo.apply_attempt(make_attempt(10, 8, quiz_id="a"))
        saved = repo.apply_attempt(make_attempt(10, 4, quiz_id="b"))

        reloaded = repo.get("u1", "e1")
        assert saved.total_questions_attempted == 20
        assert reloaded.correct_answers == 12
        assert reloaded.merged_attempt_ids == ["a", "b"]

    def test_apply_same_attempt_twice_is_ignored(self, store):
        repo = ProgressRepository(store)
        attempt = make_attempt(10, 8)
        repo.apply_attempt(attempt)
        repo.apply_attempt(attempt)
        assert repo.get("u1", "e1").total_questions_attempted == 10

    def test_new_progress_is_owner_only(self, store):
        ProgressRepository(store).get_or_create("u1", "e1")
        document = store.list_documents("user-progress")[0]
        assert 'read("user:u1")' in document["$permissions"]

    def test_failed_read_does_not_create_second_record(self, store):
        """A read outage during apply_attempt raises instead of starting over from an empty fallback."""
        ProgressRepository(store).apply_attempt(make_attempt(10, 8, quiz_id="a"))
        primary = Mock(wraps=store)
        primary.list_documents.side_effect = TransientRemoteError("down", operation="list_documents")
        repo = ProgressRepository(ResilientStore(primary, fallback=InMemoryDocumentStore(), retries=1))

        with pytest.raises(TransientRemoteError):
            repo.apply_attempt(make_attempt(10, 4, quiz_id="b"))

        documents = store.list_documents("user-progress")
        assert len(documents) == 1
        assert documents[0]["totalQuestionsAttempted"] == 10
