"""Quiz session models: sessions, ordered assignments and settled attempts."""

from datetime import UTC, datetime
from enum import Enum as PyEnum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from assessment_engine.db.base import Base


class SessionType(str, PyEnum):
    """Quiz session type."""

    PRACTICE = "practice"
    DIAGNOSTIC = "diagnostic"
    TIMED = "timed"


class SessionStatus(str, PyEnum):
    """Quiz session status."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class QuizSession(Base):
    """One practice attempt. Retained for history, never deleted."""

    __tablename__ = "quiz_sessions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)

    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="session_type", values_callable=_enum_values),
        nullable=False,
        default=SessionType.PRACTICE,
    )
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status", values_callable=_enum_values),
        nullable=False,
        default=SessionStatus.ACTIVE,
    )

    requested_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_pause_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Denormalized stats, filled by settlement
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incorrect_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_answers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accuracy_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    avg_time_per_question: Mapped[float | None] = mapped_column(Float, nullable=True)
    rating_change: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("idx_quiz_sessions_learner_started", "learner_id", "started_at"),
        Index("idx_quiz_sessions_learner_status", "learner_id", "status"),
    )


class SessionQuestion(Base):
    """Ordered question assignment with the rating frozen at selection time."""

    __tablename__ = "session_questions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, comment="1-based")
    question_rating_at_selection: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        Index("idx_session_questions_question", "session_id", "question_id", unique=True),
        Index("idx_session_questions_position", "session_id", "position", unique=True),
    )


class QuestionAttempt(Base):
    """One settled answer. Source of recent-accuracy per category."""

    __tablename__ = "question_attempts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    session_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("quiz_sessions.id", ondelete="CASCADE"), nullable=False
    )
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, comment="Order within submission")

    submitted_answer: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_spent_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    question_rating_at_selection: Mapped[float] = mapped_column(Float, nullable=False)
    learner_rating_before: Mapped[float] = mapped_column(Float, nullable=False)
    learner_rating_after: Mapped[float] = mapped_column(Float, nullable=False)
    category_rating_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    category_rating_after: Mapped[float | None] = mapped_column(Float, nullable=True)

    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_question_attempts_session", "session_id", "question_id", unique=True),
        Index("idx_question_attempts_recent", "learner_id", "category_id", "answered_at"),
    )
