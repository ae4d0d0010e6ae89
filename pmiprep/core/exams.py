"""
Exam configurations and PMI knowledge areas.

Passing scores are configuration, looked up per exam; exams without an
entry fall back to DEFAULT_PASSING_SCORE.
"""

from __future__ import annotations

from dataclasses import dataclass

from pmiprep.core.models import ExamType

DEFAULT_PASSING_SCORE = 61.0

PMP_KNOWLEDGE_AREAS: tuple[str, ...] = (
    "Project Integration Management",
    "Project Scope Management",
    "Project Schedule Management",
    "Project Cost Management",
    "Project Quality Management",
    "Project Resource Management",
    "Project Communications Management",
    "Project Risk Management",
    "Project Procurement Management",
    "Project Stakeholder Management",
)

CAPM_KNOWLEDGE_AREAS = PMP_KNOWLEDGE_AREAS


@dataclass(frozen=True)
class ExamConfig:
    """Shape of the real exam, used for final-exam sessions and readiness."""

    total_questions: int
    passing_score: float  # percentage
    duration_minutes: int
    knowledge_areas: tuple[str, ...]


EXAM_CONFIGS: dict[ExamType, ExamConfig] = {
    ExamType.PMP: ExamConfig(
        total_questions=180,
        passing_score=61.0,
        duration_minutes=230,
        knowledge_areas=PMP_KNOWLEDGE_AREAS,
    ),
    ExamType.CAPM: ExamConfig(
        total_questions=150,
        passing_score=61.0,
        duration_minutes=180,
        knowledge_areas=CAPM_KNOWLEDGE_AREAS,
    ),
}


def get_exam_config(exam_type: ExamType | str) -> ExamConfig | None:
    try:
        return EXAM_CONFIGS.get(ExamType(exam_type))
    except ValueError:
        return None


def passing_score_for(exam_type: ExamType | str) -> float:
    config = get_exam_config(exam_type)
    return config.passing_score if config else DEFAULT_PASSING_SCORE


def is_passing(score: float, exam_type: ExamType | str) -> bool:
    return score >= passing_score_for(exam_type)
