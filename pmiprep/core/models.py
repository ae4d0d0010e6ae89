"""
Core domain models.

Dataclasses for the documents the platform stores (questions, attempts,
progress, enrollments, unenrollment requests, resources, profiles) plus the
in-memory session types. Every persisted model round-trips through
``to_dict()`` / ``from_dict()`` using the camelCase field names of the
document store; ``$id`` carries the document ID.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pmiprep.core.errors import ValidationError

OPTION_LETTERS = ("A", "B", "C", "D")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def percentage(correct: int, total: int) -> float:
    return 100.0 * correct / total if total else 0.0


# =============================================================================
# Enums
# =============================================================================


class ExamType(str, Enum):
    """PMI certification exams."""

    PMP = "PMP"
    CAPM = "CAPM"
    PMI_ACP = "PMI-ACP"
    PFMP = "PfMP"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuizMode(str, Enum):
    """How a quiz session is run."""

    PRACTICE = "practice"
    TIMED_EXAM = "timed-exam"
    KNOWLEDGE_AREA_FOCUS = "knowledge-area-focus"
    FINAL_EXAM = "final-exam"


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class UnenrollmentReason(str, Enum):
    """Reason categories offered on the unenrollment form."""

    TOO_EXPENSIVE = "too-expensive"
    NOT_ENOUGH_TIME = "not-enough-time"
    CONTENT_QUALITY = "content-quality"
    FOUND_ALTERNATIVE = "found-alternative"
    TECHNICAL_ISSUES = "technical-issues"
    CHANGED_CAREER_GOALS = "changed-career-goals"
    PERSONAL_REASONS = "personal-reasons"
    OTHER = "Other"


class ResourceCategory(str, Enum):
    STUDY_GUIDE = "Study-Guide"
    PRACTICE_TEST = "Practice-Test"
    CHEAT_SHEET = "Cheat-Sheet"
    PMBOK_GUIDE = "PMBOK-Guide"
    TEMPLATES = "Templates"
    VIDEO = "Video"


# =============================================================================
# Identity
# =============================================================================


@dataclass(frozen=True)
class User:
    """The signed-in account as returned by the identity capability."""

    id: str
    email: str = ""
    name: str = ""
    labels: tuple[str, ...] = ()


# =============================================================================
# Questions and Sessions
# =============================================================================


@dataclass(frozen=True)
class Question:
    """A published exam question. Always exactly four options."""

    id: str
    text: str
    options: tuple[str, ...]
    correct_answer: str  # Option letter A-D
    explanation: str
    knowledge_area: str
    difficulty: Difficulty
    exam_type: ExamType
    tags: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "tags", frozenset(self.tags))
        if len(self.options) != len(OPTION_LETTERS):
            raise ValidationError(
                f"Question {self.id} has {len(self.options)} options, expected 4",
                field="options",
            )
        letter = self.correct_answer.strip().upper()
        if letter not in OPTION_LETTERS:
            raise ValidationError(
                f"Question {self.id} has invalid correct answer {self.correct_answer!r}",
                field="correctAnswer",
            )
        object.__setattr__(self, "correct_answer", letter)

    @property
    def correct_index(self) -> int:
        return OPTION_LETTERS.index(self.correct_answer)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        return cls(
            id=data["$id"],
            text=data.get("questionText", ""),
            options=tuple(data.get("options") or ()),
            correct_answer=data.get("correctAnswer", ""),
            explanation=data.get("explanation", ""),
            knowledge_area=data.get("knowledgeArea", ""),
            difficulty=Difficulty(data.get("difficulty", "medium")),
            exam_type=ExamType(data["examType"]),
            tags=frozenset(data.get("tags") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "$id": self.id,
            "questionText": self.text,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "explanation": self.explanation,
            "knowledgeArea": self.knowledge_area,
            "difficulty": self.difficulty.value,
            "examType": self.exam_type.value,
            "tags": sorted(self.tags),
        }


@dataclass(frozen=True)
class ShuffledQuestion:
    """
    A question with its options in session-random order.

    ``original_index_map[i]`` is the index in ``question.options`` of the
    option shown at position ``i``.
    """

    question: Question
    shuffled_options: tuple[str, ...]
    original_index_map: tuple[int, ...]

    @property
    def id(self) -> str:
        return self.question.id

    @property
    def knowledge_area(self) -> str:
        return self.question.knowledge_area

    def is_correct_choice(self, shuffled_index: int) -> bool:
        return self.original_index_map[shuffled_index] == self.question.correct_index

    @property
    def correct_option_text(self) -> str:
        return self.question.options[self.question.correct_index]


@dataclass(frozen=True)
class QuizAnswer:
    """The live answer for one question in a session."""

    question_id: str
    selected_answer: str  # Option text as shown
    is_correct: bool
    time_spent_seconds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "questionId": self.question_id,
            "selectedAnswer": self.selected_answer,
            "isCorrect": self.is_correct,
        }
        if self.time_spent_seconds is not None:
            data["timeSpent"] = self.time_spent_seconds
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuizAnswer:
        return cls(
            question_id=data["questionId"],
            selected_answer=data.get("selectedAnswer", ""),
            is_correct=bool(data.get("isCorrect", False)),
            time_spent_seconds=data.get("timeSpent"),
        )


@dataclass
class QuizSettings:
    """User-chosen configuration for a session."""

    mode: QuizMode = QuizMode.PRACTICE
    question_count: int = 25
    knowledge_areas: list[str] = field(default_factory=list)
    difficulty: Difficulty | None = None  # None = mixed
    timed: bool = False
    time_limit_minutes: int | None = None
    show_explanations: bool = True

    def __post_init__(self) -> None:
        if self.question_count < 1:
            raise ValidationError("question_count must be at least 1", field="questionCount")
        if self.timed and not self.time_limit_minutes:
            raise ValidationError("Timed sessions need a time limit", field="timeLimit")

    @property
    def time_limit_seconds(self) -> int | None:
        if not self.timed or not self.time_limit_minutes:
            return None
        return self.time_limit_minutes * 60


@dataclass
class KnowledgeAreaScore:
    area: str
    correct: int
    total: int
    accuracy: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "area": self.area,
            "correct": self.correct,
            "total": self.total,
            "accuracy": self.accuracy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeAreaScore:
        return cls(
            area=data["area"],
            correct=int(data.get("correct", 0)),
            total=int(data.get("total", 0)),
            accuracy=float(data.get("accuracy", 0.0)),
        )


# =============================================================================
# Persisted Quiz Results
# =============================================================================


@dataclass
class QuizAttempt:
    """Immutable record of one completed session."""

    user_id: str
    enrollment_id: str
    exam_type: str
    mode: QuizMode
    answers: list[QuizAnswer]
    score: float
    total_questions: int
    correct_answers: int
    time_spent_seconds: int
    knowledge_area_breakdown: list[KnowledgeAreaScore]
    completed_at: datetime
    quiz_id: str | None = None
    passed: bool | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "enrollmentId": self.enrollment_id,
            "quizId": self.quiz_id,
            "examType": self.exam_type,
            "mode": self.mode.value,
            "answers": [a.to_dict() for a in self.answers],
            "score": self.score,
            "totalQuestions": self.total_questions,
            "correctAnswers": self.correct_answers,
            "timeSpent": self.time_spent_seconds,
            "knowledgeAreaBreakdown": [k.to_dict() for k in self.knowledge_area_breakdown],
            "completedAt": format_datetime(self.completed_at),
            "passed": self.passed,
        }
        if self.id:
            data["$id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuizAttempt:
        return cls(
            id=data.get("$id"),
            user_id=data["userId"],
            enrollment_id=data.get("enrollmentId", ""),
            quiz_id=data.get("quizId"),
            exam_type=data.get("examType", ""),
            mode=QuizMode(data.get("mode", QuizMode.PRACTICE.value)),
            answers=[QuizAnswer.from_dict(a) for a in data.get("answers") or []],
            score=float(data.get("score", 0.0)),
            total_questions=int(data.get("totalQuestions", 0)),
            correct_answers=int(data.get("correctAnswers", 0)),
            time_spent_seconds=int(data.get("timeSpent", 0)),
            knowledge_area_breakdown=[
                KnowledgeAreaScore.from_dict(k) for k in data.get("knowledgeAreaBreakdown") or []
            ],
            completed_at=parse_datetime(data.get("completedAt")) or utcnow(),
            passed=data.get("passed"),
        )


@dataclass
class UserProgress:
    """Rolling summary of every attempt for one user + enrollment."""

    user_id: str
    enrollment_id: str
    exam_type: str = ""
    total_questions_attempted: int = 0
    correct_answers: int = 0
    overall_accuracy: float = 0.0
    knowledge_area_scores: list[KnowledgeAreaScore] = field(default_factory=list)
    strong_areas: list[str] = field(default_factory=list)
    weak_areas: list[str] = field(default_factory=list)
    last_attempt_at: datetime | None = None
    merged_attempt_ids: list[str] = field(default_factory=list)
    id: str | None = None

    def area(self, name: str) -> KnowledgeAreaScore | None:
        for score in self.knowledge_area_scores:
            if score.area == name:
                return score
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "enrollmentId": self.enrollment_id,
            "examType": self.exam_type,
            "totalQuestionsAttempted": self.total_questions_attempted,
            "correctAnswers": self.correct_answers,
            "overallAccuracy": self.overall_accuracy,
            "knowledgeAreaScores": [k.to_dict() for k in self.knowledge_area_scores],
            "strongAreas": list(self.strong_areas),
            "weakAreas": list(self.weak_areas),
            "lastAttemptAt": format_datetime(self.last_attempt_at),
            "mergedAttemptIds": list(self.merged_attempt_ids),
        }
        if self.id:
            data["$id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProgress:
        return cls(
            id=data.get("$id"),
            user_id=data["userId"],
            enrollment_id=data.get("enrollmentId", ""),
            exam_type=data.get("examType", ""),
            total_questions_attempted=int(data.get("totalQuestionsAttempted", 0)),
            correct_answers=int(data.get("correctAnswers", 0)),
            overall_accuracy=float(data.get("overallAccuracy", 0.0)),
            knowledge_area_scores=[
                KnowledgeAreaScore.from_dict(k) for k in data.get("knowledgeAreaScores") or []
            ],
            strong_areas=list(data.get("strongAreas") or []),
            weak_areas=list(data.get("weakAreas") or []),
            last_attempt_at=parse_datetime(data.get("lastAttemptAt")),
            merged_attempt_ids=list(data.get("mergedAttemptIds") or []),
        )


# =============================================================================
# Enrollment
# =============================================================================


@dataclass
class Enrollment:
    user_id: str
    plan_name: str
    plan_base_price: float
    currency: str
    certifications: list[str]
    status: EnrollmentStatus = EnrollmentStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    cooldown_ends_at: datetime | None = None
    course_id: str | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "planName": self.plan_name,
            "planBasePrice": self.plan_base_price,
            "currency": self.currency,
            "certifications": list(self.certifications),
            "status": self.status.value,
            "createdAt": format_datetime(self.created_at),
            "cooldownEndsAt": format_datetime(self.cooldown_ends_at),
            "courseId": self.course_id,
        }
        if self.id:
            data["$id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Enrollment:
        return cls(
            id=data.get("$id"),
            user_id=data["userId"],
            plan_name=data.get("planName", ""),
            plan_base_price=float(data.get("planBasePrice", 0.0)),
            currency=data.get("currency", "GHS"),
            certifications=list(data.get("certifications") or []),
            status=EnrollmentStatus(data.get("status", EnrollmentStatus.PENDING.value)),
            created_at=parse_datetime(data.get("createdAt") or data.get("$createdAt")) or utcnow(),
            cooldown_ends_at=parse_datetime(data.get("cooldownEndsAt")),
            course_id=data.get("courseId"),
        )


@dataclass
class UnenrollmentRequest:
    user_id: str
    enrollment_id: str
    certification_name: str
    plan_tier: str
    reason_category: UnenrollmentReason
    enrolled_at: datetime
    reason_details: str | None = None
    status: RequestStatus = RequestStatus.PENDING
    requested_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None
    processed_by: str | None = None
    cooldown_days: int | None = None
    refund_eligible: bool = False
    refund_amount: float | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "userId": self.user_id,
            "enrollmentId": self.enrollment_id,
            "certificationName": self.certification_name,
            "planTier": self.plan_tier,
            "reasonCategory": self.reason_category.value,
            "reasonDetails": self.reason_details,
            "status": self.status.value,
            "requestedAt": format_datetime(self.requested_at),
            "enrolledAt": format_datetime(self.enrolled_at),
            "processedAt": format_datetime(self.processed_at),
            "processedBy": self.processed_by,
            "cooldownDays": self.cooldown_days,
            "refundEligible": self.refund_eligible,
            "refundAmount": self.refund_amount,
        }
        if self.id:
            data["$id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnenrollmentRequest:
        return cls(
            id=data.get("$id"),
            user_id=data["userId"],
            enrollment_id=data["enrollmentId"],
            certification_name=data.get("certificationName", ""),
            plan_tier=data.get("planTier", ""),
            reason_category=UnenrollmentReason(data["reasonCategory"]),
            reason_details=data.get("reasonDetails"),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
            requested_at=parse_datetime(data.get("requestedAt")) or utcnow(),
            enrolled_at=parse_datetime(data.get("enrolledAt")) or utcnow(),
            processed_at=parse_datetime(data.get("processedAt")),
            processed_by=data.get("processedBy"),
            cooldown_days=data.get("cooldownDays"),
            refund_eligible=bool(data.get("refundEligible", False)),
            refund_amount=data.get("refundAmount"),
        )


# =============================================================================
# Resources
# =============================================================================


@dataclass
class Resource:
    title: str
    exam_type: str
    category: ResourceCategory
    description: str = ""
    file_id: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    is_premium: bool = False
    download_count: int = 0
    tags: list[str] = field(default_factory=list)
    order: int = 0
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "examType": self.exam_type,
            "category": self.category.value,
            "fileId": self.file_id,
            "fileSize": self.file_size,
            "fileType": self.file_type,
            "isPremium": self.is_premium,
            "downloadCount": self.download_count,
            "tags": list(self.tags),
            "order": self.order,
        }
        if self.id:
            data["$id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Resource:
        return cls(
            id=data.get("$id"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            exam_type=data.get("examType", ""),
            category=ResourceCategory(data.get("category", ResourceCategory.STUDY_GUIDE.value)),
            file_id=data.get("fileId"),
            file_size=data.get("fileSize"),
            file_type=data.get("fileType"),
            is_premium=bool(data.get("isPremium", False)),
            download_count=int(data.get("downloadCount", 0)),
            tags=list(data.get("tags") or []),
            order=int(data.get("order", 0)),
        )


@dataclass
class ResourceDownload:
    user_id: str
    resource_id: str
    downloaded_at: datetime = field(default_factory=utcnow)
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "resourceId": self.resource_id,
            "downloadedAt": format_datetime(self.downloaded_at),
        }


# =============================================================================
# Profile
# =============================================================================

# Dataclass attribute -> document field
PROFILE_FIELDS = {
    "display_name": "displayName",
    "email": "email",
    "home_country": "homeCountry",
    "phone": "phone",
    "date_of_birth": "dateOfBirth",
    "headline": "headline",
    "bio": "bio",
    "address": "address",
    "current_role": "currentRole",
    "years_experience": "yearsExperience",
    "certifications": "certifications",
    "target_training_date": "targetTrainingDate",
    "readiness_level": "readinessLevel",
    "learning_goals": "learningGoals",
    "learning_style": "learningStyle",
    "availability": "availability",
    "instructor_preferences": "instructorPreferences",
    "id_type": "idtype",
    "id_number": "idNumber",
    "id_file": "idField",
    "instructor_notes": "instructorNotes",
}


@dataclass
class UserProfile:
    """Onboarding profile; filled in over four steps."""

    user_id: str
    display_name: str = ""
    email: str = ""
    home_country: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    headline: str | None = None
    bio: str | None = None
    address: str | None = None
    current_role: str | None = None
    years_experience: int = 0
    certifications: str | None = None
    target_training_date: str | None = None
    readiness_level: str = "unknown"
    learning_goals: str | None = None
    learning_style: str | None = None
    availability: str | None = None
    instructor_preferences: str | None = None
    id_type: str | None = None
    id_number: str | None = None
    id_file: str | None = None
    instructor_notes: str | None = None
    profile_completed: bool = False
    current_step: int = 1
    is_admin: bool = False
    updated_at: datetime | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"userId": self.user_id}
        for attr, key in PROFILE_FIELDS.items():
            data[key] = getattr(self, attr)
        data["profileCompleted"] = self.profile_completed
        data["currentStep"] = self.current_step
        data["isAdmin"] = self.is_admin
        data["updatedAt"] = format_datetime(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        values = {attr: data[key] for attr, key in PROFILE_FIELDS.items() if data.get(key) is not None}
        return cls(
            id=data.get("$id"),
            user_id=data["userId"],
            profile_completed=bool(data.get("profileCompleted", False)),
            current_step=int(data.get("currentStep", 1)),
            is_admin=bool(data.get("isAdmin", False)),
            updated_at=parse_datetime(data.get("updatedAt")),
            **values,
        )
