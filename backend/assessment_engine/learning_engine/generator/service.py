"""Quiz generator: builds and persists an adaptive practice session."""

import logging
import random
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.app_exceptions import NoCategoriesAvailableError, SessionNotFoundError
from assessment_engine.core.clock import utcnow
from assessment_engine.db.engine import dialect_insert
from assessment_engine.learning_engine.config import get_engine_params, get_session_profile
from assessment_engine.learning_engine.generator.core import calculate_distribution, shuffle_questions
from assessment_engine.learning_engine.priority.service import recalculate_all, top_priorities
from assessment_engine.learning_engine.rating.core import difficulty_band
from assessment_engine.learning_engine.rating.service import lock_learner_rating
from assessment_engine.learning_engine.selection.repo import SelectedQuestion
from assessment_engine.learning_engine.selection.service import (
    load_learner_filters,
    select_questions,
)
from assessment_engine.models.catalog import Category, Question, QuestionCategory
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.quiz_session import (
    QuizSession,
    SessionQuestion,
    SessionStatus,
    SessionType,
)
from assessment_engine.models.rating import LearnerRating
from assessment_engine.schemas.quiz import CategoryCount, QuizGenerationResult, QuizQuestionOut

logger = logging.getLogger(__name__)


async def resolve_target_categories(
    db: AsyncSession,
    learner_id: UUID,
    target_categories: list[int] | None,
    params: dict,
) -> list[dict]:
    """
    Categories to draw from, with weights, highest weight first.

    Explicit ids get weight 1.0 each (unknown or inactive ids are dropped).
    Otherwise the top-N priority categories are used, falling back to active
    categories with questions when cold-start fallback is enabled.

    Returns:
        List of {"category_id", "category_name", "weight"}
    """
    if target_categories:
        result = await db.execute(
            select(Category.id, Category.name).where(
                and_(Category.id.in_(target_categories), Category.is_active.is_(True))
            )
        )
        names = {row.id: row.name for row in result.all()}
        # Repeated ids collapse to their first occurrence
        return [
            {"category_id": cid, "category_name": names[cid], "weight": 1.0}
            for cid in dict.fromkeys(target_categories)
            if cid in names
        ]

    top_n = params["top_priority_categories"]
    priorities = await top_priorities(db, learner_id, top_n)
    if priorities:
        return [
            {
                "category_id": p["category_id"],
                "category_name": p["category_name"],
                "weight": p["selection_weight"],
            }
            for p in priorities
        ]

    if not params.get("cold_start_fallback"):
        return []

    result = await db.execute(
        select(Category.id, Category.name)
        .where(
            and_(
                Category.is_active.is_(True),
                Category.id.in_(
                    select(QuestionCategory.category_id)
                    .join(Question, Question.id == QuestionCategory.question_id)
                    .where(Question.is_active.is_(True))
                ),
            )
        )
        .order_by(Category.id)
        .limit(top_n)
    )
    return [
        {"category_id": row.id, "category_name": row.name, "weight": 1.0} for row in result.all()
    ]


async def generate_quiz(
    db: AsyncSession,
    learner_id: UUID,
    total_questions: int,
    session_type: SessionType | str = SessionType.PRACTICE,
    target_categories: list[int] | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
    params: dict | None = None,
) -> QuizGenerationResult:
    """
    Generate and persist an adaptive quiz session.

    Pipeline:
    1. Lock the learner rating row (baseline for a first-time learner)
    2. Recompute category priorities
    3. Resolve target categories and weights
    4. Distribute the requested count across categories
    5. Select questions per category inside the session type's rating window
    6. Shuffle presentation order
    7. Persist session, assignments (frozen ratings) and seen-history
    8. Return ordered questions with a per-category breakdown

    Under-filled categories are not an error; the session may hold fewer
    questions than requested.

    Args:
        db: Database session
        learner_id: Learner
        total_questions: Requested number of questions (>= 1)
        session_type: practice, diagnostic or timed
        target_categories: Explicit category ids, or None for top priorities
        rng: Random source for the shuffle (tests pass a seeded one)
        now: Generation timestamp
        params: Engine parameters (defaults to registry + settings)

    Returns:
        QuizGenerationResult

    Raises:
        NoCategoriesAvailableError: No category could be resolved
    """
    if total_questions < 1:
        raise ValueError(f"total_questions must be >= 1, got {total_questions}")

    session_type = SessionType(session_type)
    params = params or get_engine_params()
    now = now or utcnow()

    try:
        # Step 1: Learner row first, the same lock settlement takes first
        learner = await lock_learner_rating(db, learner_id, params["baseline_rating"])
        learner_rating = learner.rating

        # Step 2: Fresh priorities
        await recalculate_all(db, learner_id, now=now, params=params)

        # Step 3: Target categories
        categories = await resolve_target_categories(db, learner_id, target_categories, params)
        if not categories:
            raise NoCategoriesAvailableError(
                "No categories available for quiz generation",
                details={
                    "learner_id": str(learner_id),
                    "target_categories": target_categories,
                },
            )

        # Step 4: Distribution
        counts = calculate_distribution(total_questions, [c["weight"] for c in categories])
        plan = [(c, n) for c, n in zip(categories, counts) if n > 0]

        # Step 5: Selection
        profile = get_session_profile(session_type.value, params)
        filters = await load_learner_filters(db, learner_id, params, now)
        chosen_ids: set[UUID] = set()
        selected: list[SelectedQuestion] = []
        selected_per_category: dict[int, int] = {}

        async def _select(category_id: int, desired: int) -> int:
            picked = await select_questions(
                db,
                learner_id=learner_id,
                category_id=category_id,
                desired_count=desired,
                target_rating=learner_rating,
                tolerance=profile["tolerance"],
                exclude_ids=chosen_ids,
                params=params,
                filters=filters,
            )
            for q in picked:
                chosen_ids.add(q.question_id)
                selected.append(q)
            selected_per_category[category_id] = (
                selected_per_category.get(category_id, 0) + len(picked)
            )
            return len(picked)

        for category, count in plan:
            await _select(category["category_id"], count)

        # Top-up pass for categories that came back short
        shortfall = total_questions - len(selected)
        if shortfall > 0 and params.get("redistribute_shortfall"):
            for category, _ in plan:
                shortfall -= await _select(category["category_id"], shortfall)
                if shortfall <= 0:
                    break

        # Step 6: Presentation order
        ordered = shuffle_questions(selected, rng)

        # Step 7: Persist
        session = QuizSession(
            id=uuid4(),
            learner_id=learner_id,
            session_type=session_type,
            status=SessionStatus.ACTIVE,
            requested_questions=total_questions,
            total_questions=len(ordered),
            started_at=now,
            total_pause_seconds=0,
            correct_answers=0,
            incorrect_answers=0,
            skipped_answers=0,
        )
        db.add(session)
        await db.flush()

        for position, q in enumerate(ordered, start=1):
            db.add(
                SessionQuestion(
                    id=uuid4(),
                    session_id=session.id,
                    question_id=q.question_id,
                    category_id=q.category_id,
                    position=position,
                    question_rating_at_selection=q.question_rating,
                )
            )

        await mark_questions_seen(db, learner_id, session.id, ordered, now)
        await db.commit()

    except Exception:
        await db.rollback()
        raise

    breakdown = [
        CategoryCount(
            category_id=category["category_id"],
            category_name=category["category_name"],
            weight=category["weight"],
            requested=count,
            selected=selected_per_category.get(category["category_id"], 0),
        )
        for category, count in plan
    ]

    logger.info(
        "quiz_generated",
        extra={
            "event": "quiz_generated",
            "learner_id": str(learner_id),
            "session_id": str(session.id),
            "session_type": session_type.value,
            "requested": total_questions,
            "selected": len(ordered),
            "under_filled": len(ordered) < total_questions,
            "per_category": {str(b.category_id): b.selected for b in breakdown},
        },
    )

    return QuizGenerationResult(
        session_id=session.id,
        session_type=session_type,
        learner_rating=learner_rating,
        requested_questions=total_questions,
        total_questions=len(ordered),
        questions=[
            QuizQuestionOut(
                position=position,
                question_id=q.question_id,
                category_id=q.category_id,
                question_text=q.question_text,
                options=q.options,
                question_rating=q.question_rating,
                difficulty_band=difficulty_band(learner_rating, q.question_rating),
            )
            for position, q in enumerate(ordered, start=1)
        ],
        category_breakdown=breakdown,
    )


async def mark_questions_seen(
    db: AsyncSession,
    learner_id: UUID,
    session_id: UUID,
    questions: list[SelectedQuestion],
    now: datetime,
) -> None:
    """
    Upsert history rows for questions assigned to a session.

    Increments times_seen and moves last_seen_at / last_session_id.
    Retirement and queue priority are left to settlement.
    """
    if not questions:
        return

    rows = [
        {
            "id": uuid4(),
            "learner_id": learner_id,
            "question_id": q.question_id,
            "category_id": q.category_id,
            "times_seen": 1,
            "times_correct": 0,
            "times_incorrect": 0,
            "first_seen_at": now,
            "last_seen_at": now,
            "last_session_id": session_id,
            "is_retired": False,
            "queue_priority": 0,
            "updated_at": now,
        }
        for q in sorted(questions, key=lambda q: q.question_id)
    ]

    stmt = dialect_insert(db, QuestionHistory).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["learner_id", "question_id"],
        set_={
            "times_seen": QuestionHistory.times_seen + 1,
            "last_seen_at": stmt.excluded.last_seen_at,
            "last_session_id": stmt.excluded.last_session_id,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def get_session_questions(db: AsyncSession, session_id: UUID) -> list[QuizQuestionOut]:
    """
    Ordered questions of an existing session.

    Uses the ratings frozen at selection time, never the live ones.

    Raises:
        SessionNotFoundError: Unknown session
    """
    session = await db.get(QuizSession, session_id)
    if session is None:
        raise SessionNotFoundError(
            f"Session {session_id} not found", details={"session_id": str(session_id)}
        )

    rating_result = await db.execute(
        select(LearnerRating.rating).where(LearnerRating.learner_id == session.learner_id)
    )
    learner_rating = rating_result.scalar_one_or_none()

    result = await db.execute(
        select(SessionQuestion, Question)
        .join(Question, Question.id == SessionQuestion.question_id)
        .where(SessionQuestion.session_id == session_id)
        .order_by(SessionQuestion.position)
    )

    return [
        QuizQuestionOut(
            position=assignment.position,
            question_id=question.id,
            category_id=assignment.category_id,
            question_text=question.question_text,
            options=question.options,
            question_rating=assignment.question_rating_at_selection,
            difficulty_band=(
                difficulty_band(learner_rating, assignment.question_rating_at_selection)
                if learner_rating is not None
                else None
            ),
        )
        for assignment, question in result.all()
    ]
