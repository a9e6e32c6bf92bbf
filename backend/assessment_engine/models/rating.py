"""
SQLAlchemy models for Elo ratings.

Learner overall rating, shared question ratings and per-category
micro-ratings. K-factors and reliability are derived from the counters and
never stored.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from assessment_engine.db.base import Base
from assessment_engine.learning_engine.config import BASELINE_RATING


class Trend(str, Enum):
    """Direction of recent accuracy relative to overall success rate."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class LearnerRating(Base):
    """Overall learner rating. Mutated only by settlement."""

    __tablename__ = "learner_ratings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)

    rating: Mapped[float] = mapped_column(
        Float, nullable=False, default=BASELINE_RATING.value, comment="Overall learner rating"
    )
    games_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    losses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_rating: Mapped[float] = mapped_column(
        Float, nullable=False, default=BASELINE_RATING.value
    )
    confidence_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


class QuestionRating(Base):
    """Question difficulty rating, shared across learners."""

    __tablename__ = "question_ratings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    rating: Mapped[float] = mapped_column(
        Float, nullable=False, default=BASELINE_RATING.value, comment="Question difficulty"
    )
    times_answered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_question_ratings_distribution", "rating"),)


class CategoryMicroRating(Base):
    """
    Learner rating within one category.

    Created lazily on the first settled attempt in the category.
    """

    __tablename__ = "category_micro_ratings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=BASELINE_RATING.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correct_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="correct_attempts / attempts in [0, 1]"
    )
    recent_accuracy: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="Accuracy over the last N attempts in [0, 1]"
    )
    trend: Mapped[str] = mapped_column(String(20), nullable=False, default=Trend.STABLE.value)
    questions_mastered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_category_micro_ratings_lookup", "learner_id", "category_id", unique=True),
    )
