"""Per-learner question history driving exclusion and requeue."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, SmallInteger, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from assessment_engine.db.base import Base


class QuestionHistory(Base):
    """
    What a learner has seen and answered, per question.

    Generation marks questions as seen; settlement handles counters,
    retirement and the requeue priority.
    """

    __tablename__ = "question_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )

    times_seen: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    times_incorrect: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_session_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("quiz_sessions.id", ondelete="SET NULL"), nullable=True
    )

    is_retired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    retired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    queue_priority: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=0, comment="0-3, bumped on misses"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_question_history_lookup", "learner_id", "question_id", unique=True),
        Index("idx_question_history_queue", "learner_id", "queue_priority"),
        Index("idx_question_history_session", "learner_id", "last_session_id"),
    )
