"""Database models."""

# Import all models here so metadata.create_all sees them
from assessment_engine.models.catalog import Category, Question, QuestionCategory
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.priority import CategoryPracticePriority
from assessment_engine.models.quiz_session import (
    QuestionAttempt,
    QuizSession,
    SessionQuestion,
    SessionStatus,
    SessionType,
)
from assessment_engine.models.rating import (
    CategoryMicroRating,
    LearnerRating,
    QuestionRating,
    Trend,
)

__all__ = [
    "Category",
    "Question",
    "QuestionCategory",
    "LearnerRating",
    "QuestionRating",
    "CategoryMicroRating",
    "Trend",
    "CategoryPracticePriority",
    "QuizSession",
    "SessionQuestion",
    "QuestionAttempt",
    "SessionStatus",
    "SessionType",
    "QuestionHistory",
]
