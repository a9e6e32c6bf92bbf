"""
Session settlement service.

Completes a quiz session and settles everything it affects in one
transaction: session stats, question history, learner rating, question
ratings, category micro-ratings and the priority cache. Every step takes an
explicit SettlementContext carrying the transaction handle.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.app_exceptions import (
    AppError,
    InvalidAttemptError,
    InvalidSessionStateError,
    SessionNotFoundError,
    SettlementConflictError,
)
from assessment_engine.core.clock import ensure_utc, utcnow
from assessment_engine.learning_engine.config import get_engine_params, get_session_profile
from assessment_engine.learning_engine.priority.core import classify_trend, selection_weight
from assessment_engine.learning_engine.priority.service import (
    count_mastered_by_category,
    recalculate_all,
)
from assessment_engine.learning_engine.rating.core import (
    apply_delta,
    calculate,
    category_k_factor,
    player_confidence,
    player_k_factor,
    question_k_factor,
)
from assessment_engine.learning_engine.rating.service import (
    get_or_create_micro_rating,
    lock_learner_rating,
    lock_question_ratings,
)
from assessment_engine.learning_engine.settlement.core import (
    ResolvedAttempt,
    compute_session_stats,
    history_transition,
    next_streak,
    recent_accuracy,
    success_rate,
)
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.quiz_session import (
    QuestionAttempt,
    QuizSession,
    SessionQuestion,
    SessionStatus,
)
from assessment_engine.models.rating import CategoryMicroRating, LearnerRating
from assessment_engine.schemas.quiz import (
    AttemptIn,
    CategoryBreakdownItem,
    SessionCompletionResult,
    SessionStats,
)

logger = logging.getLogger(__name__)

SETTLEABLE_STATUSES = (SessionStatus.ACTIVE, SessionStatus.PAUSED)

# Frozen ratings submitted by the caller must match the assignment snapshot
RATING_MATCH_TOLERANCE = 1e-6


@dataclass
class SettlementContext:
    """Transaction handle and fixed inputs shared by every settlement step."""

    db: AsyncSession
    session: QuizSession
    learner_id: UUID
    now: datetime
    params: dict
    k_multiplier: float = 1.0
    attempt_rows: dict[UUID, QuestionAttempt] = field(default_factory=dict)


# =============================================================================
# Step 0: Lock and validate
# =============================================================================


async def _lock_session(db: AsyncSession, session_id: UUID) -> QuizSession:
    result = await db.execute(
        select(QuizSession)
        .where(QuizSession.id == session_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise SessionNotFoundError(
            f"Session {session_id} not found", details={"session_id": str(session_id)}
        )
    return session


def _validate_session(session: QuizSession, learner_id: UUID) -> None:
    if session.learner_id != learner_id:
        raise InvalidSessionStateError(
            "Session does not belong to this learner",
            details={"session_id": str(session.id), "learner_id": str(learner_id)},
        )
    if session.status not in SETTLEABLE_STATUSES:
        raise InvalidSessionStateError(
            f"Session is {session.status.value} and cannot be completed",
            details={"session_id": str(session.id), "status": session.status.value},
        )


async def _resolve_attempts(
    db: AsyncSession, session_id: UUID, attempts: list[AttemptIn]
) -> list[ResolvedAttempt]:
    """Match attempts to assignments; category and frozen rating come from the snapshot."""
    result = await db.execute(
        select(SessionQuestion).where(SessionQuestion.session_id == session_id)
    )
    assignments = {a.question_id: a for a in result.scalars().all()}

    resolved: list[ResolvedAttempt] = []
    seen: set[UUID] = set()
    for position, attempt in enumerate(attempts, start=1):
        assignment = assignments.get(attempt.question_id)
        if assignment is None:
            raise InvalidAttemptError(
                "Attempt references a question not assigned to this session",
                details={"question_id": str(attempt.question_id)},
            )
        if attempt.question_id in seen:
            raise InvalidAttemptError(
                "Question answered more than once in one submission",
                details={"question_id": str(attempt.question_id)},
            )
        seen.add(attempt.question_id)

        if attempt.category_id is not None and attempt.category_id != assignment.category_id:
            raise InvalidAttemptError(
                "Attempt category does not match the assignment",
                details={
                    "question_id": str(attempt.question_id),
                    "category_id": attempt.category_id,
                    "assigned_category_id": assignment.category_id,
                },
            )
        frozen = assignment.question_rating_at_selection
        if (
            attempt.question_rating_at_selection is not None
            and abs(attempt.question_rating_at_selection - frozen) > RATING_MATCH_TOLERANCE
        ):
            raise InvalidAttemptError(
                "Attempt rating does not match the rating frozen at selection",
                details={
                    "question_id": str(attempt.question_id),
                    "question_rating_at_selection": attempt.question_rating_at_selection,
                    "frozen_rating": frozen,
                },
            )

        resolved.append(
            ResolvedAttempt(
                position=position,
                question_id=attempt.question_id,
                category_id=assignment.category_id,
                submitted_answer=attempt.submitted_answer,
                is_correct=attempt.is_correct,
                time_spent_seconds=attempt.time_spent_seconds,
                question_rating_at_selection=frozen,
            )
        )
    return resolved


# =============================================================================
# Step 1: Session stats
# =============================================================================


def _apply_session_stats(ctx: SettlementContext, stats: SessionStats) -> None:
    session = ctx.session
    if session.status == SessionStatus.PAUSED and session.paused_at is not None:
        pause = (ctx.now - ensure_utc(session.paused_at)).total_seconds()
        session.total_pause_seconds += max(0, int(pause))

    session.status = SessionStatus.COMPLETED
    session.ended_at = ctx.now
    session.correct_answers = stats.correct_answers
    session.incorrect_answers = stats.incorrect_answers
    session.skipped_answers = stats.skipped_answers
    session.accuracy_percentage = stats.accuracy_percentage
    session.avg_time_per_question = stats.avg_time_per_question


# =============================================================================
# Step 2: Question history
# =============================================================================


async def _update_history(ctx: SettlementContext, attempts: list[ResolvedAttempt]) -> None:
    if not attempts:
        return

    question_ids = sorted({a.question_id for a in attempts})
    result = await ctx.db.execute(
        select(QuestionHistory)
        .where(
            and_(
                QuestionHistory.learner_id == ctx.learner_id,
                QuestionHistory.question_id.in_(question_ids),
            )
        )
        .order_by(QuestionHistory.question_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    entries = {h.question_id: h for h in result.scalars().all()}
    queue_max = ctx.params["queue_priority_max"]

    for attempt in attempts:
        entry = entries.get(attempt.question_id)
        if entry is None:
            entry = QuestionHistory(
                id=uuid4(),
                learner_id=ctx.learner_id,
                question_id=attempt.question_id,
                category_id=attempt.category_id,
                times_seen=1,
                times_correct=0,
                times_incorrect=0,
                first_seen_at=ctx.now,
                last_seen_at=ctx.now,
                last_session_id=ctx.session.id,
                is_retired=False,
                queue_priority=0,
            )
            ctx.db.add(entry)
            entries[attempt.question_id] = entry

        if attempt.is_correct:
            entry.times_correct += 1
        else:
            entry.times_incorrect += 1

        entry.is_retired, entry.queue_priority = history_transition(
            entry.queue_priority, attempt.is_correct, queue_max
        )
        entry.retired_at = ctx.now if entry.is_retired else None


# =============================================================================
# Steps 3-4: Learner and question ratings
# =============================================================================


async def _settle_learner_rating(
    ctx: SettlementContext, learner: LearnerRating, attempts: list[ResolvedAttempt]
) -> float:
    """
    Thread the learner rating through the attempts in order.

    Each attempt plays against its own frozen question rating. The question's
    side of the update is applied to its current stored rating.

    Returns:
        Learner rating before settlement
    """
    params = ctx.params
    previous_rating = learner.rating
    question_ratings = await lock_question_ratings(
        ctx.db, [a.question_id for a in attempts], params["baseline_rating"]
    )

    rating = learner.rating
    best = learner.best_rating
    streak = learner.current_streak
    for i, attempt in enumerate(attempts):
        question_rating = question_ratings[attempt.question_id]
        update = calculate(
            challenger_rating=rating,
            challenger_k=player_k_factor(learner.games_played + i) * ctx.k_multiplier,
            opponent_rating=attempt.question_rating_at_selection,
            opponent_k=question_k_factor(question_rating.times_answered),
            success=attempt.is_correct,
            scale=params["scale"],
            min_step=params["min_step"],
            floor=params["rating_floor"],
        )

        question_rating.rating = apply_delta(
            question_rating.rating, update.opponent_delta, params["rating_floor"]
        )
        question_rating.times_answered += 1
        if attempt.is_correct:
            question_rating.times_correct += 1

        row = QuestionAttempt(
            id=uuid4(),
            session_id=ctx.session.id,
            learner_id=ctx.learner_id,
            question_id=attempt.question_id,
            category_id=attempt.category_id,
            position=attempt.position,
            submitted_answer=attempt.submitted_answer,
            is_correct=attempt.is_correct,
            is_skipped=attempt.is_skipped,
            time_spent_seconds=attempt.time_spent_seconds,
            question_rating_at_selection=attempt.question_rating_at_selection,
            learner_rating_before=rating,
            learner_rating_after=update.challenger_rating,
            answered_at=ctx.now,
        )
        ctx.db.add(row)
        ctx.attempt_rows[attempt.question_id] = row

        rating = update.challenger_rating
        best = max(best, rating)
        streak = next_streak(streak, attempt.is_correct)

    correct = sum(1 for a in attempts if a.is_correct)
    learner.rating = rating
    learner.best_rating = best
    learner.current_streak = streak
    learner.games_played += len(attempts)
    learner.wins += correct
    learner.losses += len(attempts) - correct
    if attempts:
        learner.confidence_level = player_confidence(
            learner.games_played, success_rate(correct, len(attempts))
        )

    return previous_rating


# =============================================================================
# Step 5: Category micro-ratings
# =============================================================================


async def _recent_outcomes(ctx: SettlementContext, category_id: int) -> list[bool]:
    result = await ctx.db.execute(
        select(QuestionAttempt.is_correct)
        .where(
            and_(
                QuestionAttempt.learner_id == ctx.learner_id,
                QuestionAttempt.category_id == category_id,
            )
        )
        .order_by(QuestionAttempt.answered_at.desc(), QuestionAttempt.position.desc())
        .limit(ctx.params["recent_window"])
    )
    return [row[0] for row in result.all()]


async def _settle_categories(
    ctx: SettlementContext, attempts: list[ResolvedAttempt]
) -> list[CategoryBreakdownItem]:
    params = ctx.params
    by_category: dict[int, list[ResolvedAttempt]] = {}
    for attempt in attempts:
        by_category.setdefault(attempt.category_id, []).append(attempt)

    # Attempts and history must be visible to the aggregate queries below
    await ctx.db.flush()

    breakdown = []
    for category_id, category_attempts in by_category.items():
        micro = await get_or_create_micro_rating(
            ctx.db, ctx.learner_id, category_id, params["baseline_rating"]
        )
        rating_before = micro.rating

        rating = micro.rating
        for j, attempt in enumerate(category_attempts):
            update = calculate(
                challenger_rating=rating,
                challenger_k=category_k_factor(micro.attempts + j, params["category_k_scale"]),
                opponent_rating=attempt.question_rating_at_selection,
                opponent_k=0,
                success=attempt.is_correct,
                scale=params["scale"],
                min_step=params["min_step"],
                floor=params["rating_floor"],
            )
            row = ctx.attempt_rows[attempt.question_id]
            row.category_rating_before = rating
            row.category_rating_after = update.challenger_rating
            rating = update.challenger_rating

        correct = sum(1 for a in category_attempts if a.is_correct)
        micro.rating = rating
        micro.attempts += len(category_attempts)
        micro.correct_attempts += correct
        micro.success_rate = success_rate(micro.correct_attempts, micro.attempts)
        micro.recent_accuracy = recent_accuracy(await _recent_outcomes(ctx, category_id))
        micro.trend = classify_trend(micro.recent_accuracy, micro.success_rate, params)
        mastered = await count_mastered_by_category(ctx.db, ctx.learner_id, [category_id])
        micro.questions_mastered = mastered.get(category_id, 0)
        micro.priority_score = selection_weight(micro.rating, micro.success_rate, params)
        micro.confidence = player_confidence(micro.attempts, micro.recent_accuracy)
        micro.last_attempt_at = ctx.now

        breakdown.append(
            CategoryBreakdownItem(
                category_id=category_id,
                attempts=len(category_attempts),
                correct=correct,
                rating_before=rating_before,
                rating_after=micro.rating,
                rating_change=micro.rating - rating_before,
                success_rate=micro.success_rate,
                recent_accuracy=micro.recent_accuracy,
                trend=micro.trend,
            )
        )

    await ctx.db.flush()
    return breakdown


# =============================================================================
# Entry point
# =============================================================================


async def complete_session(
    db: AsyncSession,
    session_id: UUID,
    learner_id: UUID,
    attempts: list[AttemptIn],
    now: datetime | None = None,
    params: dict | None = None,
) -> SessionCompletionResult:
    """
    Complete a session and settle all affected state atomically.

    Steps:
    0. Lock the session, validate owner, status and attempts
    1. Session stats, status completed
    2. Question history (retire on correct, requeue on miss)
    3. Learner rating threaded through attempts; question ratings by delta
    4. Learner counters, streak, best rating, confidence
    5. Category micro-ratings
    6. Priority recompute

    One commit. Any failure rolls back every write. A completed session
    cannot be settled again.

    Args:
        db: Database session (one transaction)
        session_id: Session to complete
        learner_id: Learner completing it (must own the session)
        attempts: Answered questions in answer order
        now: Settlement timestamp
        params: Engine parameters (defaults to registry + settings)

    Returns:
        SessionCompletionResult

    Raises:
        SessionNotFoundError: Unknown session
        InvalidSessionStateError: Wrong learner or session not active/paused
        InvalidAttemptError: Attempts do not match assignments
        SettlementConflictError: The transaction could not commit
    """
    params = params or get_engine_params()
    now = now or utcnow()

    try:
        # Step 0: Lock session, then the learner row that serialises this learner
        session = await _lock_session(db, session_id)
        _validate_session(session, learner_id)
        learner = await lock_learner_rating(db, learner_id, params["baseline_rating"])
        resolved = await _resolve_attempts(db, session_id, attempts)

        profile = get_session_profile(session.session_type.value, params)
        ctx = SettlementContext(
            db=db,
            session=session,
            learner_id=learner_id,
            now=now,
            params=params,
            k_multiplier=profile["k_multiplier"],
        )

        # Step 1: Stats
        stats = compute_session_stats(resolved)
        _apply_session_stats(ctx, stats)

        # Step 2: History
        await _update_history(ctx, resolved)

        # Steps 3-4: Learner and question ratings
        previous_rating = await _settle_learner_rating(ctx, learner, resolved)
        session.rating_change = learner.rating - previous_rating

        # Step 5: Categories
        breakdown = await _settle_categories(ctx, resolved)

        # Step 6: Priorities for the next quiz
        await recalculate_all(db, learner_id, now=now, params=params)

        await db.commit()

    except AppError:
        await db.rollback()
        raise
    except DBAPIError as exc:
        await db.rollback()
        logger.warning(
            "settlement_rolled_back",
            extra={
                "event": "settlement_rolled_back",
                "session_id": str(session_id),
                "learner_id": str(learner_id),
                "error": type(exc.orig).__name__ if exc.orig is not None else type(exc).__name__,
            },
        )
        raise SettlementConflictError(
            "Settlement could not be committed; no changes were applied",
            details={"session_id": str(session_id)},
        ) from exc
    except Exception:
        await db.rollback()
        logger.exception(
            "settlement_rolled_back",
            extra={
                "event": "settlement_rolled_back",
                "session_id": str(session_id),
                "learner_id": str(learner_id),
            },
        )
        raise

    logger.info(
        "settlement_committed",
        extra={
            "event": "settlement_committed",
            "session_id": str(session_id),
            "learner_id": str(learner_id),
            "attempts": stats.total_questions,
            "rating_change": session.rating_change,
            "new_rating": learner.rating,
        },
    )

    return SessionCompletionResult(
        session_id=session_id,
        stats=stats,
        previous_rating=previous_rating,
        new_rating=learner.rating,
        rating_change=session.rating_change,
        category_breakdown=breakdown,
    )


async def get_session_summary(db: AsyncSession, session_id: UUID) -> SessionCompletionResult:
    """
    Rebuild the completion result of a settled session from stored rows.

    Rating paths come from the attempt log. Success rate, recent accuracy and
    trend reflect the category's current state.

    Raises:
        SessionNotFoundError: Unknown session
        InvalidSessionStateError: Session not completed
    """
    session = await db.get(QuizSession, session_id)
    if session is None:
        raise SessionNotFoundError(
            f"Session {session_id} not found", details={"session_id": str(session_id)}
        )
    if session.status != SessionStatus.COMPLETED:
        raise InvalidSessionStateError(
            "Session has not been completed",
            details={"session_id": str(session_id), "status": session.status.value},
        )

    result = await db.execute(
        select(QuestionAttempt)
        .where(QuestionAttempt.session_id == session_id)
        .order_by(QuestionAttempt.position)
    )
    rows = result.scalars().all()

    stats = compute_session_stats(
        [
            ResolvedAttempt(
                position=r.position,
                question_id=r.question_id,
                category_id=r.category_id,
                submitted_answer=r.submitted_answer,
                is_correct=r.is_correct,
                time_spent_seconds=r.time_spent_seconds,
                question_rating_at_selection=r.question_rating_at_selection,
            )
            for r in rows
        ]
    )

    rating_change = session.rating_change or 0.0
    if rows:
        previous_rating = rows[0].learner_rating_before
        new_rating = rows[-1].learner_rating_after
    else:
        rating_result = await db.execute(
            select(LearnerRating.rating).where(LearnerRating.learner_id == session.learner_id)
        )
        new_rating = rating_result.scalar_one()
        previous_rating = new_rating - rating_change

    by_category: dict[int, list[QuestionAttempt]] = {}
    for r in rows:
        by_category.setdefault(r.category_id, []).append(r)

    micro_result = await db.execute(
        select(CategoryMicroRating).where(
            and_(
                CategoryMicroRating.learner_id == session.learner_id,
                CategoryMicroRating.category_id.in_(list(by_category)),
            )
        )
    )
    micros = {m.category_id: m for m in micro_result.scalars().all()}

    breakdown = []
    for category_id, category_rows in by_category.items():
        micro = micros[category_id]
        before = category_rows[0].category_rating_before
        after = category_rows[-1].category_rating_after
        breakdown.append(
            CategoryBreakdownItem(
                category_id=category_id,
                attempts=len(category_rows),
                correct=sum(1 for r in category_rows if r.is_correct),
                rating_before=before,
                rating_after=after,
                rating_change=after - before,
                success_rate=micro.success_rate,
                recent_accuracy=micro.recent_accuracy,
                trend=micro.trend,
            )
        )

    return SessionCompletionResult(
        session_id=session_id,
        stats=stats,
        previous_rating=previous_rating,
        new_rating=new_rating,
        rating_change=rating_change,
        category_breakdown=breakdown,
    )
