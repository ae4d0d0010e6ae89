"""Shuffle a question list into a session."""

from __future__ import annotations

import random
from collections.abc import MutableSequence, Sequence
from typing import TypeVar

from pmiprep.core.models import Question, ShuffledQuestion

T = TypeVar("T")


def fisher_yates(items: MutableSequence[T], rng: random.Random) -> None:
    """Unbiased in-place shuffle."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


class SessionBuilder:
    """
    Turn raw questions into ShuffledQuestions.

    Each question's options are permuted independently, then the question
    order is permuted. Output length always equals input length.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def shuffle_options(self, question: Question) -> ShuffledQuestion:
        index_map = list(range(len(question.options)))
        fisher_yates(index_map, self.rng)
        return ShuffledQuestion(
            question=question,
            shuffled_options=tuple(question.options[i] for i in index_map),
            original_index_map=tuple(index_map),
        )

    def build(self, questions: Sequence[Question]) -> list[ShuffledQuestion]:
        shuffled = [self.shuffle_options(q) for q in questions]
        fisher_yates(shuffled, self.rng)
        return shuffled
