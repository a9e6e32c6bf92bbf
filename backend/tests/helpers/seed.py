"""Test seed helpers for creating catalogue, rating and history data."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.clock import utcnow
from assessment_engine.models.catalog import Category, Question, QuestionCategory
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.quiz_session import QuizSession, SessionStatus, SessionType
from assessment_engine.models.rating import CategoryMicroRating, LearnerRating, QuestionRating


async def create_category(
    db: AsyncSession, name: str | None = None, is_active: bool = True
) -> Category:
    """Create a category with a unique default name."""
    category = Category(name=name or f"Category {uuid4().hex[:8]}", is_active=is_active)
    db.add(category)
    await db.flush()
    return category


async def create_question(
    db: AsyncSession,
    category: Category,
    rating: float | None = None,
    times_answered: int = 0,
    is_active: bool = True,
    correct_answer: str = "A",
) -> Question:
    """
    Create a question tagged to a category.

    Args:
        db: Database session
        category: Category to tag
        rating: Stored question rating (None = no rating row, baseline applies)
        times_answered: Times the question rating has been updated
        is_active: Whether the question can be served
        correct_answer: Correct option

    Returns:
        Created Question instance
    """
    question = Question(
        id=uuid4(),
        question_text=f"Question {uuid4().hex[:8]}",
        options=["A", "B", "C", "D"],
        correct_answer=correct_answer,
        is_active=is_active,
    )
    db.add(question)
    await db.flush()

    db.add(QuestionCategory(question_id=question.id, category_id=category.id, is_primary=True))
    if rating is not None:
        db.add(
            QuestionRating(
                id=uuid4(),
                question_id=question.id,
                rating=rating,
                times_answered=times_answered,
                times_correct=0,
            )
        )
    await db.flush()
    return question


async def create_questions(
    db: AsyncSession,
    category: Category,
    count: int,
    rating: float | None = None,
    **kwargs: Any,
) -> list[Question]:
    """Create several questions in one category with the same rating."""
    return [await create_question(db, category, rating=rating, **kwargs) for _ in range(count)]


async def create_learner_rating(
    db: AsyncSession, learner_id: UUID, rating: float = 1500.0, games_played: int = 0
) -> LearnerRating:
    learner = LearnerRating(
        id=uuid4(),
        learner_id=learner_id,
        rating=rating,
        games_played=games_played,
        wins=0,
        losses=0,
        current_streak=0,
        best_rating=rating,
        confidence_level=0.0,
    )
    db.add(learner)
    await db.flush()
    return learner


async def create_micro_rating(
    db: AsyncSession,
    learner_id: UUID,
    category: Category,
    rating: float = 1500.0,
    success_rate: float = 0.0,
    attempts: int = 10,
    last_attempt_at: datetime | None = None,
) -> CategoryMicroRating:
    """Create a category micro-rating as if the learner had practised there."""
    micro = CategoryMicroRating(
        id=uuid4(),
        learner_id=learner_id,
        category_id=category.id,
        rating=rating,
        attempts=attempts,
        correct_attempts=round(attempts * success_rate),
        success_rate=success_rate,
        recent_accuracy=success_rate,
        last_attempt_at=last_attempt_at,
    )
    db.add(micro)
    await db.flush()
    return micro


async def create_session(
    db: AsyncSession,
    learner_id: UUID,
    started_at: datetime | None = None,
    status: SessionStatus = SessionStatus.COMPLETED,
) -> QuizSession:
    """Create a bare quiz session (no assignments)."""
    session = QuizSession(
        id=uuid4(),
        learner_id=learner_id,
        session_type=SessionType.PRACTICE,
        status=status,
        requested_questions=0,
        total_questions=0,
        started_at=started_at or utcnow(),
    )
    db.add(session)
    await db.flush()
    return session


async def create_history(
    db: AsyncSession,
    learner_id: UUID,
    question: Question,
    category: Category | None = None,
    **kwargs: Any,
) -> QuestionHistory:
    """Create a history row; counters and flags come from kwargs."""
    now = utcnow()
    entry = QuestionHistory(
        id=uuid4(),
        learner_id=learner_id,
        question_id=question.id,
        category_id=category.id if category is not None else None,
        times_seen=kwargs.pop("times_seen", 1),
        times_correct=kwargs.pop("times_correct", 0),
        times_incorrect=kwargs.pop("times_incorrect", 0),
        first_seen_at=kwargs.pop("first_seen_at", now),
        last_seen_at=kwargs.pop("last_seen_at", now),
        is_retired=kwargs.pop("is_retired", False),
        queue_priority=kwargs.pop("queue_priority", 0),
        **kwargs,
    )
    db.add(entry)
    await db.flush()
    return entry
