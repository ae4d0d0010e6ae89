"""Filtered, size-bounded question fetches from the document store."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from pmiprep.core.errors import ValidationError
from pmiprep.core.models import Difficulty, ExamType, Question
from pmiprep.store.base import Collection, DocumentStore, Filter, equal, is_in


class QuestionBankClient:
    """
    Fetch published questions for a session.

    Filters are pushed down to the store. A short bank yields a short list;
    only transport or auth failures raise.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def fetch(
        self,
        exam_type: ExamType | str,
        count: int,
        knowledge_areas: Sequence[str] | None = None,
        difficulty: Difficulty | str | None = None,
    ) -> list[Question]:
        filters: list[Filter] = [equal("examType", ExamType(exam_type))]
        if knowledge_areas:
            filters.append(is_in("knowledgeArea", list(knowledge_areas)))
        if difficulty:
            filters.append(equal("difficulty", Difficulty(difficulty)))

        documents = self.store.list_documents(Collection.QUESTIONS, filters, limit=count)

        questions: list[Question] = []
        for document in documents:
            try:
                questions.append(Question.from_dict(document))
            except (KeyError, ValueError, ValidationError) as exc:
                logger.warning("Skipping malformed question {}: {}", document.get("$id"), exc)

        if len(questions) < count:
            logger.info(
                "Question bank short for {}: requested {}, got {}",
                ExamType(exam_type).value,
                count,
                len(questions),
            )
        return questions
