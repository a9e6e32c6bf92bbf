"""
Rating persistence helpers.

Get-or-create and row locking for learner, question and category ratings.
Creation uses INSERT .. ON CONFLICT DO NOTHING so concurrent first use of a
rating row never fails.
"""

import logging
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.clock import utcnow
from assessment_engine.db.engine import dialect_insert
from assessment_engine.learning_engine.config import BASELINE_RATING
from assessment_engine.models.rating import CategoryMicroRating, LearnerRating, QuestionRating

logger = logging.getLogger(__name__)


async def _create_learner_rating_if_missing(
    db: AsyncSession, learner_id: UUID, baseline: float
) -> None:
    now = utcnow()
    stmt = dialect_insert(db, LearnerRating).values(
        id=uuid4(),
        learner_id=learner_id,
        rating=baseline,
        games_played=0,
        wins=0,
        losses=0,
        current_streak=0,
        best_rating=baseline,
        confidence_level=0.0,
        created_at=now,
        updated_at=now,
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["learner_id"]))


async def lock_learner_rating(
    db: AsyncSession, learner_id: UUID, baseline: float = BASELINE_RATING.value
) -> LearnerRating:
    """
    Fetch the learner rating row under SELECT .. FOR UPDATE.

    Holding this lock serialises settlements and generations of one learner.
    """
    await _create_learner_rating_if_missing(db, learner_id, baseline)
    result = await db.execute(
        select(LearnerRating)
        .where(LearnerRating.learner_id == learner_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def lock_question_ratings(
    db: AsyncSession, question_ids: list[UUID], baseline: float = BASELINE_RATING.value
) -> dict[UUID, QuestionRating]:
    """
    Fetch (creating when missing) question rating rows under FOR UPDATE.

    Rows are locked in question id order so concurrent settlements sharing
    questions cannot deadlock.

    Returns:
        {question_id: QuestionRating}
    """
    if not question_ids:
        return {}

    ordered_ids = sorted(set(question_ids))
    now = utcnow()
    stmt = dialect_insert(db, QuestionRating).values(
        [
            {
                "id": uuid4(),
                "question_id": qid,
                "rating": baseline,
                "times_answered": 0,
                "times_correct": 0,
                "created_at": now,
                "updated_at": now,
            }
            for qid in ordered_ids
        ]
    )
    await db.execute(stmt.on_conflict_do_nothing(index_elements=["question_id"]))

    result = await db.execute(
        select(QuestionRating)
        .where(QuestionRating.question_id.in_(ordered_ids))
        .order_by(QuestionRating.question_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {r.question_id: r for r in result.scalars().all()}


async def get_or_create_micro_rating(
    db: AsyncSession,
    learner_id: UUID,
    category_id: int,
    baseline: float = BASELINE_RATING.value,
) -> CategoryMicroRating:
    """
    Get or create the learner's rating in one category.

    Callers hold the learner rating lock, so creation cannot race.
    """
    result = await db.execute(
        select(CategoryMicroRating)
        .where(
            and_(
                CategoryMicroRating.learner_id == learner_id,
                CategoryMicroRating.category_id == category_id,
            )
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    micro = result.scalar_one_or_none()
    if micro:
        return micro

    micro = CategoryMicroRating(
        id=uuid4(),
        learner_id=learner_id,
        category_id=category_id,
        rating=baseline,
        attempts=0,
        correct_attempts=0,
        success_rate=0.0,
        recent_accuracy=0.0,
        questions_mastered=0,
        priority_score=0.0,
        confidence=0.0,
        last_attempt_at=None,
    )
    db.add(micro)
    await db.flush()
    logger.debug(f"Created micro-rating for learner {learner_id} in category {category_id}")
    return micro
