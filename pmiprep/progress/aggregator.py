"""
Rolling progress per user + enrollment.

ProgressAggregator owns the merge arithmetic and is pure; ProgressRepository
owns get-or-create and persistence against the document store.

Merge rules:
- running totals are added, overall accuracy is recomputed from them
- per-area totals are found-or-created and recomputed the same way
- strong/weak area lists are rebuilt from scratch after every merge
- an attempt whose key is already in the ledger is not merged again
"""

from __future__ import annotations

import copy

from loguru import logger

from pmiprep.core.errors import NotFoundError
from pmiprep.core.exams import passing_score_for
from pmiprep.core.models import KnowledgeAreaScore, QuizAttempt, UserProgress, percentage
from pmiprep.store.base import Collection, DocumentStore, equal, user_permissions
from pmiprep.store.policy import strict_reads


def attempt_key(attempt: QuizAttempt) -> str | None:
    """Ledger key for an attempt: the session's quiz ID, else the document ID."""
    return attempt.quiz_id or attempt.id


class ProgressAggregator:
    def __init__(self, strong_threshold: float = 70.0, weak_threshold: float = 60.0) -> None:
        self.strong_threshold = strong_threshold
        self.weak_threshold = weak_threshold

    def classify(self, scores: list[KnowledgeAreaScore]) -> tuple[list[str], list[str]]:
        strong = sorted(s.area for s in scores if s.total and s.accuracy >= self.strong_threshold)
        weak = sorted(s.area for s in scores if s.total and s.accuracy < self.weak_threshold)
        return strong, weak

    def merge(self, progress: UserProgress | None, attempt: QuizAttempt) -> UserProgress:
        """Return a new UserProgress with ``attempt`` folded in."""
        if progress is None:
            progress = UserProgress(
                user_id=attempt.user_id,
                enrollment_id=attempt.enrollment_id,
                exam_type=attempt.exam_type,
            )
        merged = copy.deepcopy(progress)

        key = attempt_key(attempt)
        if key is not None and key in merged.merged_attempt_ids:
            logger.warning("Attempt {} already merged into progress, skipping", key)
            return merged

        merged.total_questions_attempted += attempt.total_questions
        merged.correct_answers += attempt.correct_answers
        merged.overall_accuracy = percentage(merged.correct_answers, merged.total_questions_attempted)

        for entry in attempt.knowledge_area_breakdown:
            area = merged.area(entry.area)
            if area is None:
                area = KnowledgeAreaScore(area=entry.area, correct=0, total=0, accuracy=0.0)
                merged.knowledge_area_scores.append(area)
            area.correct += entry.correct
            area.total += entry.total
            area.accuracy = percentage(area.correct, area.total)

        merged.strong_areas, merged.weak_areas = self.classify(merged.knowledge_area_scores)
        merged.last_attempt_at = attempt.completed_at
        if not merged.exam_type:
            merged.exam_type = attempt.exam_type
        if key is not None:
            merged.merged_attempt_ids.append(key)
        return merged


def is_exam_ready(progress: UserProgress, exam_type: str | None = None) -> bool:
    """Overall accuracy at or above the exam's passing score."""
    exam = exam_type or progress.exam_type
    return progress.total_questions_attempted > 0 and progress.overall_accuracy >= passing_score_for(exam)


class ProgressRepository:
    """Get-or-create and persistence for UserProgress documents."""

    def __init__(self, store: DocumentStore, aggregator: ProgressAggregator | None = None) -> None:
        self.store = store
        self.guard_store = strict_reads(store)
        self.aggregator = aggregator or ProgressAggregator()

    def get(self, user_id: str, enrollment_id: str, strict: bool = False) -> UserProgress:
        store = self.guard_store if strict else self.store
        documents = store.list_documents(
            Collection.USER_PROGRESS,
            [equal("userId", user_id), equal("enrollmentId", enrollment_id)],
            limit=1,
        )
        if not documents:
            raise NotFoundError(
                f"No progress yet for user {user_id} / enrollment {enrollment_id}",
                collection=Collection.USER_PROGRESS.value,
                key=user_id,
            )
        return UserProgress.from_dict(documents[0])

    def get_or_create(self, user_id: str, enrollment_id: str, exam_type: str = "") -> UserProgress:
        """Read the record to update. A failed read raises rather than serving a stale copy."""
        try:
            return self.get(user_id, enrollment_id, strict=True)
        except NotFoundError:
            logger.info("Creating progress record for user {} / enrollment {}", user_id, enrollment_id)
            progress = UserProgress(user_id=user_id, enrollment_id=enrollment_id, exam_type=exam_type)
            return self.save(progress)

    def save(self, progress: UserProgress) -> UserProgress:
        fields = progress.to_dict()
        if progress.id:
            document = self.store.update_document(Collection.USER_PROGRESS, progress.id, fields)
        else:
            document = self.store.create_document(
                Collection.USER_PROGRESS, fields, permissions=user_permissions(progress.user_id)
            )
        return UserProgress.from_dict(document)

    def apply_attempt(self, attempt: QuizAttempt) -> UserProgress:
        """Fold one persisted attempt into the stored progress record."""
        current = self.get_or_create(attempt.user_id, attempt.enrollment_id, attempt.exam_type)
        key = attempt_key(attempt)
        if key is not None and key in current.merged_attempt_ids:
            logger.warning("Attempt {} already merged into progress, skipping", key)
            return current
        saved = self.save(self.aggregator.merge(current, attempt))
        logger.debug(
            "Progress for {} now {}/{} ({:.1f}%)",
            attempt.user_id,
            saved.correct_answers,
            saved.total_questions_attempted,
            saved.overall_accuracy,
        )
        return saved
