"""Per-learner category practice priority cache."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from assessment_engine.db.base import Base


class CategoryPracticePriority(Base):
    """
    Selection weight of a category for a learner.

    A recomputable projection of CategoryMicroRating and the question
    inventory. Never the source of truth.
    """

    __tablename__ = "category_practice_priorities"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    learner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    category_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )

    selection_weight: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    questions_needed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_deficit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    accuracy_deficit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    next_practice_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_category_priorities_lookup", "learner_id", "category_id", unique=True),
        Index("idx_category_priorities_weight", "learner_id", "selection_weight"),
    )
