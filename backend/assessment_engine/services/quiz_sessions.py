"""Quiz session lifecycle: pause, resume, abandon and timing."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.core.app_exceptions import InvalidSessionStateError, SessionNotFoundError
from assessment_engine.core.clock import ensure_utc, utcnow
from assessment_engine.models.quiz_session import QuizSession, SessionStatus

logger = logging.getLogger(__name__)


async def get_session(
    db: AsyncSession, session_id: UUID, learner_id: UUID | None = None, lock: bool = False
) -> QuizSession:
    """
    Load a session, optionally checking ownership and locking the row.

    Raises:
        SessionNotFoundError: Unknown session
        InvalidSessionStateError: Session owned by another learner
    """
    stmt = select(QuizSession).where(QuizSession.id == session_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    session = result.scalar_one_or_none()

    if session is None:
        raise SessionNotFoundError(
            f"Session {session_id} not found", details={"session_id": str(session_id)}
        )
    if learner_id is not None and session.learner_id != learner_id:
        raise InvalidSessionStateError(
            "Session does not belong to this learner",
            details={"session_id": str(session_id), "learner_id": str(learner_id)},
        )
    return session


def _require_status(session: QuizSession, allowed: tuple[SessionStatus, ...], action: str) -> None:
    if session.status not in allowed:
        raise InvalidSessionStateError(
            f"Cannot {action} a {session.status.value} session",
            details={"session_id": str(session.id), "status": session.status.value},
        )


async def pause_session(
    db: AsyncSession, session_id: UUID, learner_id: UUID, now: datetime | None = None
) -> QuizSession:
    """Pause an active session."""
    now = now or utcnow()
    session = await get_session(db, session_id, learner_id, lock=True)
    _require_status(session, (SessionStatus.ACTIVE,), "pause")

    session.status = SessionStatus.PAUSED
    session.paused_at = now
    await db.commit()

    logger.info(f"Paused session {session_id}")
    return session


async def resume_session(
    db: AsyncSession, session_id: UUID, learner_id: UUID, now: datetime | None = None
) -> QuizSession:
    """Resume a paused session, adding the pause to total_pause_seconds."""
    now = now or utcnow()
    session = await get_session(db, session_id, learner_id, lock=True)
    _require_status(session, (SessionStatus.PAUSED,), "resume")

    if session.paused_at is not None:
        pause = (now - ensure_utc(session.paused_at)).total_seconds()
        session.total_pause_seconds += max(0, int(pause))

    session.status = SessionStatus.ACTIVE
    session.resumed_at = now
    await db.commit()

    logger.info(f"Resumed session {session_id}")
    return session


async def abandon_session(
    db: AsyncSession, session_id: UUID, learner_id: UUID, now: datetime | None = None
) -> QuizSession:
    """Abandon an active or paused session. No ratings change."""
    now = now or utcnow()
    session = await get_session(db, session_id, learner_id, lock=True)
    _require_status(session, (SessionStatus.ACTIVE, SessionStatus.PAUSED), "abandon")

    if session.status == SessionStatus.PAUSED and session.paused_at is not None:
        pause = (now - ensure_utc(session.paused_at)).total_seconds()
        session.total_pause_seconds += max(0, int(pause))

    session.status = SessionStatus.ABANDONED
    session.ended_at = now
    await db.commit()

    logger.info(f"Abandoned session {session_id}")
    return session


async def get_active_sessions(db: AsyncSession, learner_id: UUID) -> list[QuizSession]:
    """Active and paused sessions of a learner, most recent first."""
    result = await db.execute(
        select(QuizSession)
        .where(
            and_(
                QuizSession.learner_id == learner_id,
                QuizSession.status.in_([SessionStatus.ACTIVE, SessionStatus.PAUSED]),
            )
        )
        .order_by(QuizSession.started_at.desc())
    )
    return list(result.scalars().all())


def get_elapsed_seconds(session: QuizSession, now: datetime | None = None) -> int:
    """
    Time spent in the session excluding pauses.

    Open sessions are measured up to now; a paused session stops at its pause.
    Never negative.
    """
    now = now or utcnow()
    started_at = ensure_utc(session.started_at)

    if session.ended_at is not None:
        end = ensure_utc(session.ended_at)
    elif session.status == SessionStatus.PAUSED and session.paused_at is not None:
        end = ensure_utc(session.paused_at)
    else:
        end = now

    elapsed = (end - started_at).total_seconds() - session.total_pause_seconds
    return max(0, int(elapsed))
