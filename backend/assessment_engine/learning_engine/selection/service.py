"""Question selector: candidate pool for one category and rating window."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.learning_engine.config import get_selection_defaults
from assessment_engine.learning_engine.selection.repo import (
    SelectedQuestion,
    get_candidate_questions,
    get_excluded_question_ids,
    get_queued_question_ids,
)

logger = logging.getLogger(__name__)


async def load_learner_filters(
    db: AsyncSession,
    learner_id: UUID,
    params: dict | None = None,
    now: datetime | None = None,
) -> tuple[dict[UUID, int], set[UUID]]:
    """
    Load the learner's queued and excluded sets once per request.

    Returns:
        (queued {question_id: priority}, excluded set of question ids)
    """
    params = params or get_selection_defaults()
    queued = await get_queued_question_ids(db, learner_id)
    excluded = await get_excluded_question_ids(
        db,
        learner_id,
        last_n_sessions=params["exclude_last_n_sessions"],
        seen_within_days=params["exclude_seen_within_days"],
        now=now,
    )
    return queued, excluded


async def select_questions(
    db: AsyncSession,
    learner_id: UUID,
    category_id: int,
    desired_count: int,
    target_rating: float,
    tolerance: float,
    exclude_ids: set[UUID] | None = None,
    params: dict | None = None,
    filters: tuple[dict[UUID, int], set[UUID]] | None = None,
) -> list[SelectedQuestion]:
    """
    Select up to desired_count questions for a learner in one category.

    A short result is not an error.

    Args:
        db: Database session
        learner_id: Learner
        category_id: Category to draw from
        desired_count: Maximum number of questions
        target_rating: Centre of the rating window (learner rating)
        tolerance: Half-width of the rating window
        exclude_ids: Questions already chosen for the same session
        params: Selection parameters (defaults to registry)
        filters: Preloaded (queued, excluded) from load_learner_filters

    Returns:
        Ranked list of SelectedQuestion
    """
    if desired_count <= 0:
        return []

    params = params or get_selection_defaults()
    if filters is None:
        filters = await load_learner_filters(db, learner_id, params)
    queued, excluded = filters

    selected = await get_candidate_questions(
        db,
        category_id=category_id,
        limit=desired_count,
        target_rating=target_rating,
        tolerance=tolerance,
        baseline_rating=params["baseline_rating"],
        queued=queued,
        excluded=excluded,
        exclude_ids=exclude_ids,
    )

    if len(selected) < desired_count:
        logger.info(
            f"Category {category_id} under-filled for learner {learner_id}: "
            f"{len(selected)}/{desired_count}"
        )
    return selected
