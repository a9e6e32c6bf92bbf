"""
Repository layer for question selection.

Provides the queries behind the selector:
- Queued (requeued after misses) question ids with their priority
- Excluded question ids (recently seen or retired)
- Candidate questions for one category in a single statement
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, case, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.clock import utcnow
from assessment_engine.models.catalog import Question, QuestionCategory
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.quiz_session import QuizSession
from assessment_engine.models.rating import QuestionRating

logger = logging.getLogger(__name__)


@dataclass
class SelectedQuestion:
    """A question chosen for a category, with the rating it was chosen at."""

    question_id: UUID
    category_id: int
    question_text: str
    options: list
    question_rating: float
    queue_priority: int
    distance: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "question_id": str(self.question_id),
            "category_id": self.category_id,
            "question_text": self.question_text,
            "options": self.options,
            "question_rating": self.question_rating,
            "queue_priority": self.queue_priority,
            "distance": self.distance,
        }


async def get_queued_question_ids(db: AsyncSession, learner_id: UUID) -> dict[UUID, int]:
    """
    Questions requeued for the learner after misses.

    Returns:
        {question_id: queue_priority} for non-retired rows with priority > 0
    """
    result = await db.execute(
        select(QuestionHistory.question_id, QuestionHistory.queue_priority).where(
            and_(
                QuestionHistory.learner_id == learner_id,
                QuestionHistory.queue_priority > 0,
                QuestionHistory.is_retired.is_(False),
            )
        )
    )
    return {question_id: priority for question_id, priority in result.all()}


async def get_recent_session_ids(db: AsyncSession, learner_id: UUID, last_n: int) -> list[UUID]:
    """Ids of the learner's last N sessions, most recent first."""
    if last_n <= 0:
        return []
    result = await db.execute(
        select(QuizSession.id)
        .where(QuizSession.learner_id == learner_id)
        .order_by(QuizSession.started_at.desc(), QuizSession.id.desc())
        .limit(last_n)
    )
    return [row[0] for row in result.all()]


async def get_excluded_question_ids(
    db: AsyncSession,
    learner_id: UUID,
    last_n_sessions: int,
    seen_within_days: int = 0,
    now: datetime | None = None,
) -> set[UUID]:
    """
    Questions the learner should not see now.

    Combines retirement, session-based recency (last N sessions) and an
    optional time-based recency window (disabled when seen_within_days is 0).

    Args:
        db: Database session
        learner_id: Learner
        last_n_sessions: Exclude questions last seen in these sessions
        seen_within_days: Exclude questions seen within N days (0 = off)
        now: Reference time for the day window

    Returns:
        Set of question ids to exclude
    """
    conditions = [QuestionHistory.is_retired.is_(True)]

    recent_session_ids = await get_recent_session_ids(db, learner_id, last_n_sessions)
    if recent_session_ids:
        conditions.append(QuestionHistory.last_session_id.in_(recent_session_ids))

    if seen_within_days > 0:
        cutoff = (now or utcnow()) - timedelta(days=seen_within_days)
        conditions.append(QuestionHistory.last_seen_at >= cutoff)

    result = await db.execute(
        select(QuestionHistory.question_id).where(
            and_(QuestionHistory.learner_id == learner_id, or_(*conditions))
        )
    )
    excluded = {row[0] for row in result.all()}

    logger.debug(
        f"Excluding {len(excluded)} questions for learner {learner_id} "
        f"(recent sessions: {len(recent_session_ids)}, days: {seen_within_days})"
    )
    return excluded


async def get_candidate_questions(
    db: AsyncSession,
    category_id: int,
    limit: int,
    target_rating: float,
    tolerance: float,
    baseline_rating: float,
    queued: dict[UUID, int] | None = None,
    excluded: set[UUID] | None = None,
    exclude_ids: set[UUID] | None = None,
) -> list[SelectedQuestion]:
    """
    Ranked candidate questions for one category.

    Hard filters: active, tagged to the category, rating inside
    [target - tolerance, target + tolerance] and not excluded. Queued
    questions bypass both the window and the exclusion. exclude_ids is
    absolute and applies to queued questions too.

    Ordering: queue priority DESC, |rating - target| ASC, random().

    Empty queued/excluded/exclude_ids sets add no predicate.
    """
    if limit <= 0:
        return []

    rating_expr = func.coalesce(QuestionRating.rating, literal(baseline_rating))
    distance_expr = func.abs(rating_expr - target_rating)
    if queued:
        priority_expr = case(queued, value=Question.id, else_=0)
    else:
        priority_expr = literal(0)

    eligible = rating_expr.between(target_rating - tolerance, target_rating + tolerance)
    if excluded:
        eligible = and_(eligible, Question.id.notin_(list(excluded)))
    if queued:
        eligible = or_(Question.id.in_(list(queued)), eligible)

    query = (
        select(
            Question.id,
            Question.question_text,
            Question.options,
            rating_expr.label("question_rating"),
            priority_expr.label("queue_priority"),
            distance_expr.label("distance"),
        )
        .join(QuestionCategory, QuestionCategory.question_id == Question.id)
        .outerjoin(QuestionRating, QuestionRating.question_id == Question.id)
        .where(
            and_(
                Question.is_active.is_(True),
                QuestionCategory.category_id == category_id,
                eligible,
            )
        )
        .order_by(priority_expr.desc(), distance_expr.asc(), func.random())
        .limit(limit)
    )

    if exclude_ids:
        query = query.where(Question.id.notin_(list(exclude_ids)))

    result = await db.execute(query)
    return [
        SelectedQuestion(
            question_id=row.id,
            category_id=category_id,
            question_text=row.question_text,
            options=row.options,
            question_rating=float(row.question_rating),
            queue_priority=int(row.queue_priority),
            distance=float(row.distance),
        )
        for row in result.all()
    ]
