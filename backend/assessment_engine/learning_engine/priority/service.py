"""Category priority service: recompute and read the priority cache."""

import logging
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.clock import ensure_utc, utcnow
from assessment_engine.db.engine import dialect_insert
from assessment_engine.learning_engine.config import get_priority_defaults
from assessment_engine.learning_engine.priority.core import PriorityComputation, compute_priority
from assessment_engine.models.catalog import Category, Question, QuestionCategory
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.priority import CategoryPracticePriority
from assessment_engine.models.rating import CategoryMicroRating

logger = logging.getLogger(__name__)

# Columns rewritten on conflict; a row is only touched when one of them changed
_COMPUTED_COLUMNS = (
    "selection_weight",
    "questions_needed",
    "rating_deficit",
    "accuracy_deficit",
    "next_practice_at",
)


async def count_active_questions_by_category(
    db: AsyncSession, category_ids: list[int] | None = None
) -> dict[int, int]:
    """Number of active questions tagged to each category."""
    stmt = (
        select(QuestionCategory.category_id, func.count(func.distinct(Question.id)))
        .join(Question, Question.id == QuestionCategory.question_id)
        .where(Question.is_active.is_(True))
        .group_by(QuestionCategory.category_id)
    )
    if category_ids:
        stmt = stmt.where(QuestionCategory.category_id.in_(category_ids))

    result = await db.execute(stmt)
    return {category_id: count for category_id, count in result.all()}


async def count_mastered_by_category(
    db: AsyncSession, learner_id: UUID, category_ids: list[int] | None = None
) -> dict[int, int]:
    """Number of active questions per category the learner has retired."""
    stmt = (
        select(QuestionCategory.category_id, func.count(func.distinct(QuestionHistory.question_id)))
        .join(QuestionCategory, QuestionCategory.question_id == QuestionHistory.question_id)
        .join(Question, Question.id == QuestionHistory.question_id)
        .where(
            and_(
                QuestionHistory.learner_id == learner_id,
                QuestionHistory.is_retired.is_(True),
                Question.is_active.is_(True),
            )
        )
        .group_by(QuestionCategory.category_id)
    )
    if category_ids:
        stmt = stmt.where(QuestionCategory.category_id.in_(category_ids))

    result = await db.execute(stmt)
    return {category_id: count for category_id, count in result.all()}


async def recalculate_all(
    db: AsyncSession,
    learner_id: UUID,
    now: datetime | None = None,
    params: dict | None = None,
) -> list[PriorityComputation]:
    """
    Recompute and upsert one priority row per category with micro-rating history.

    Idempotent: rows whose computed values did not change are left untouched,
    including last_calculated_at. Does not commit; runs inside the caller's
    transaction.

    Args:
        db: Database session
        learner_id: Learner
        now: Calculation timestamp (defaults to current UTC time)
        params: Priority parameters (defaults to registry)

    Returns:
        Computed priorities, one per category
    """
    params = params or get_priority_defaults()
    now = now or utcnow()

    result = await db.execute(
        select(CategoryMicroRating)
        .where(CategoryMicroRating.learner_id == learner_id)
        .order_by(CategoryMicroRating.category_id)
    )
    micro_ratings = result.scalars().all()

    if not micro_ratings:
        logger.debug(f"No micro-ratings for learner {learner_id}, nothing to recompute")
        return []

    category_ids = [m.category_id for m in micro_ratings]
    available = await count_active_questions_by_category(db, category_ids)
    mastered = await count_mastered_by_category(db, learner_id, category_ids)

    computations = [
        compute_priority(
            category_id=m.category_id,
            rating=m.rating,
            success_rate=m.success_rate,
            available=available.get(m.category_id, 0),
            mastered=mastered.get(m.category_id, 0),
            last_attempt_at=ensure_utc(m.last_attempt_at),
            params=params,
        )
        for m in micro_ratings
    ]

    rows = [
        {
            "id": uuid4(),
            "learner_id": learner_id,
            "last_calculated_at": now,
            **c.to_dict(),
        }
        for c in computations
    ]

    stmt = dialect_insert(db, CategoryPracticePriority).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["learner_id", "category_id"],
        set_={
            **{col: getattr(stmt.excluded, col) for col in _COMPUTED_COLUMNS},
            "last_calculated_at": stmt.excluded.last_calculated_at,
        },
        where=or_(
            *(
                getattr(CategoryPracticePriority, col).is_distinct_from(getattr(stmt.excluded, col))
                for col in _COMPUTED_COLUMNS
            )
        ),
    )
    await db.execute(stmt)

    logger.info(
        "priorities_recomputed",
        extra={
            "event": "priorities_recomputed",
            "learner_id": str(learner_id),
            "categories": len(computations),
        },
    )
    return computations


def _priority_query(learner_id: UUID):
    return (
        select(
            CategoryPracticePriority,
            Category.name,
            CategoryMicroRating.rating,
            CategoryMicroRating.success_rate,
        )
        .join(Category, Category.id == CategoryPracticePriority.category_id)
        .outerjoin(
            CategoryMicroRating,
            and_(
                CategoryMicroRating.learner_id == CategoryPracticePriority.learner_id,
                CategoryMicroRating.category_id == CategoryPracticePriority.category_id,
            ),
        )
        .where(
            and_(
                CategoryPracticePriority.learner_id == learner_id,
                Category.is_active.is_(True),
            )
        )
        .order_by(
            CategoryPracticePriority.selection_weight.desc(),
            CategoryPracticePriority.category_id.asc(),
        )
        .execution_options(populate_existing=True)
    )


def _priority_row_to_dict(priority: CategoryPracticePriority, name, rating, success_rate) -> dict:
    return {
        "category_id": priority.category_id,
        "category_name": name,
        "selection_weight": priority.selection_weight,
        "questions_needed": priority.questions_needed,
        "rating_deficit": priority.rating_deficit,
        "accuracy_deficit": priority.accuracy_deficit,
        "next_practice_at": ensure_utc(priority.next_practice_at),
        "last_calculated_at": ensure_utc(priority.last_calculated_at),
        "rating": rating,
        "success_rate": success_rate,
    }


async def top_priorities(db: AsyncSession, learner_id: UUID, n: int) -> list[dict]:
    """
    Highest-weight categories for a learner.

    Ties are broken by category id ascending. Inactive categories are skipped.

    Returns:
        List of dicts with priority fields, category name and current micro-rating
    """
    if n <= 0:
        return []
    result = await db.execute(_priority_query(learner_id).limit(n))
    return [_priority_row_to_dict(*row) for row in result.all()]


async def get_all_priorities(db: AsyncSession, learner_id: UUID) -> list[dict]:
    """All cached priorities for a learner, highest weight first."""
    result = await db.execute(_priority_query(learner_id))
    return [_priority_row_to_dict(*row) for row in result.all()]


async def delete_priorities(db: AsyncSession, learner_id: UUID) -> int:
    """Drop a learner's priority cache. Returns the number of rows removed."""
    result = await db.execute(
        delete(CategoryPracticePriority).where(CategoryPracticePriority.learner_id == learner_id)
    )
    return result.rowcount or 0
