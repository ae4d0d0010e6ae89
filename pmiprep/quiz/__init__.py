"""Question fetching, session building, the session state machine and scoring."""

from pmiprep.quiz.builder import SessionBuilder
from pmiprep.quiz.question_bank import QuestionBankClient
from pmiprep.quiz.scorer import Scorer, ScoreResult
from pmiprep.quiz.service import QuizService, SubmissionOutcome
from pmiprep.quiz.session import QuizSession, SessionResult, SessionState, SessionTimer

__all__ = [
    "QuestionBankClient",
    "QuizService",
    "QuizSession",
    "ScoreResult",
    "Scorer",
    "SessionBuilder",
    "SessionResult",
    "SessionState",
    "SessionTimer",
    "SubmissionOutcome",
]
