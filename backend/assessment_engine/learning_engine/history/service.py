"""
Question history maintenance.

Retirement is the only permanent exclusion the selector applies. These
helpers let an operator return retired questions to a learner's pool and
report what the history holds.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.clock import utcnow
from assessment_engine.models.history import QuestionHistory
from assessment_engine.schemas.quiz import HistorySummary

logger = logging.getLogger(__name__)


async def reset_retired_questions(
    db: AsyncSession,
    learner_id: UUID,
    category_id: int | None = None,
    now: datetime | None = None,
) -> int:
    """
    Un-retire a learner's questions so the selector can pick them again.

    Counters and queue priority are kept. Does not commit; the priority
    cache (mastered counts) should be recalculated in the same transaction.

    Args:
        db: Database session
        learner_id: Learner
        category_id: Restrict to questions recorded under this category
        now: Update timestamp

    Returns:
        Number of history rows reset
    """
    conditions = [
        QuestionHistory.learner_id == learner_id,
        QuestionHistory.is_retired.is_(True),
    ]
    if category_id is not None:
        conditions.append(QuestionHistory.category_id == category_id)

    result = await db.execute(
        select(QuestionHistory)
        .where(and_(*conditions))
        .order_by(QuestionHistory.question_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entries = result.scalars().all()

    now = now or utcnow()
    for entry in entries:
        entry.is_retired = False
        entry.retired_at = None
        entry.updated_at = now
    await db.flush()
    reset = len(entries)

    logger.info(
        "retired_questions_reset",
        extra={
            "event": "retired_questions_reset",
            "learner_id": str(learner_id),
            "category_id": category_id,
            "reset": reset,
        },
    )
    return reset


async def get_history_summary(db: AsyncSession, learner_id: UUID) -> HistorySummary:
    """Seen, correct, incorrect, mastered and queued totals for a learner."""
    result = await db.execute(
        select(
            func.count(QuestionHistory.id),
            func.coalesce(func.sum(QuestionHistory.times_correct), 0),
            func.coalesce(func.sum(QuestionHistory.times_incorrect), 0),
            func.coalesce(func.sum(case((QuestionHistory.is_retired.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((QuestionHistory.queue_priority > 0, 1), else_=0)), 0),
        ).where(QuestionHistory.learner_id == learner_id)
    )
    seen, correct, incorrect, mastered, queued = result.one()

    return HistorySummary(
        learner_id=learner_id,
        total_questions_seen=seen,
        total_correct=correct,
        total_incorrect=incorrect,
        questions_mastered=mastered,
        questions_in_queue=queued,
    )
