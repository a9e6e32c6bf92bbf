"""
Tests for question selection.

Tests:
- Rating window and distance ordering
- Exclusion of retired and recently seen questions
- Requeued questions bypass window and exclusion
- Empty filter sets leave the pool unrestricted
"""

from datetime import UTC, datetime, timedelta

from assessment_engine.learning_engine.config import get_selection_defaults
from assessment_engine.learning_engine.selection.repo import (
    get_excluded_question_ids,
    get_queued_question_ids,
)
from assessment_engine.learning_engine.selection.service import (
    load_learner_filters,
    select_questions,
)
from tests.helpers.seed import (
    create_category,
    create_history,
    create_question,
    create_questions,
    create_session,
)

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=UTC)


async def _select(db, learner_id, category, desired=10, target=1500.0, tolerance=200.0, **kwargs):
    return await select_questions(
        db,
        learner_id=learner_id,
        category_id=category.id,
        desired_count=desired,
        target_rating=target,
        tolerance=tolerance,
        **kwargs,
    )


async def test_new_learner_gets_full_pool_inside_window(db_session, learner_id):
    category = await create_category(db_session)
    in_window = await create_questions(db_session, category, 5, rating=1500.0)
    await create_questions(db_session, category, 2, rating=1800.0)
    await db_session.commit()

    assert await get_excluded_question_ids(db_session, learner_id, last_n_sessions=3) == set()
    assert await get_queued_question_ids(db_session, learner_id) == {}

    selected = await _select(db_session, learner_id, category)

    assert {q.question_id for q in selected} == {q.id for q in in_window}
    assert all(q.category_id == category.id for q in selected)


async def test_window_bounds_are_inclusive(db_session, learner_id):
    category = await create_category(db_session)
    low = await create_question(db_session, category, rating=1300.0)
    high = await create_question(db_session, category, rating=1700.0)
    await create_question(db_session, category, rating=1299.0)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert {q.question_id for q in selected} == {low.id, high.id}


async def test_candidates_ordered_by_distance(db_session, learner_id):
    category = await create_category(db_session)
    for rating in (1650.0, 1400.0, 1500.0, 1550.0):
        await create_question(db_session, category, rating=rating)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category, desired=4)

    assert [q.question_rating for q in selected] == [1500.0, 1550.0, 1400.0, 1650.0]
    assert [q.distance for q in selected] == [0.0, 50.0, 100.0, 150.0]


async def test_unrated_question_uses_baseline(db_session, learner_id):
    category = await create_category(db_session)
    question = await create_question(db_session, category, rating=None)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert len(selected) == 1
    assert selected[0].question_id == question.id
    assert selected[0].question_rating == 1500.0


async def test_retired_questions_excluded(db_session, learner_id):
    category = await create_category(db_session)
    retired, fresh = await create_questions(db_session, category, 2, rating=1500.0)
    await create_history(db_session, learner_id, retired, category, is_retired=True)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert [q.question_id for q in selected] == [fresh.id]


async def test_questions_from_last_sessions_excluded(db_session, learner_id):
    category = await create_category(db_session)
    old_q, recent_q, never_q = await create_questions(db_session, category, 3, rating=1500.0)

    oldest = await create_session(db_session, learner_id, started_at=NOW - timedelta(days=10))
    recent = [
        await create_session(db_session, learner_id, started_at=NOW - timedelta(days=d))
        for d in (3, 2, 1)
    ]
    await create_history(db_session, learner_id, old_q, category, last_session_id=oldest.id)
    await create_history(db_session, learner_id, recent_q, category, last_session_id=recent[0].id)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert {q.question_id for q in selected} == {old_q.id, never_q.id}


async def test_seen_within_days_window(db_session, learner_id):
    category = await create_category(db_session)
    seen, unseen = await create_questions(db_session, category, 2, rating=1500.0)
    await create_history(
        db_session, learner_id, seen, category, last_seen_at=NOW - timedelta(days=2)
    )
    await db_session.commit()

    params = get_selection_defaults()

    params["exclude_seen_within_days"] = 3
    _, excluded = await load_learner_filters(db_session, learner_id, params, now=NOW)
    assert excluded == {seen.id}

    params["exclude_seen_within_days"] = 1
    filters = await load_learner_filters(db_session, learner_id, params, now=NOW)
    selected = await _select(db_session, learner_id, category, params=params, filters=filters)
    assert {q.question_id for q in selected} == {seen.id, unseen.id}


async def test_queued_question_bypasses_window_and_exclusion(db_session, learner_id):
    category = await create_category(db_session)
    near = await create_question(db_session, category, rating=1500.0)
    far_queued = await create_question(db_session, category, rating=1900.0)
    session = await create_session(db_session, learner_id, started_at=NOW)
    await create_history(
        db_session,
        learner_id,
        far_queued,
        category,
        queue_priority=2,
        last_session_id=session.id,
    )
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert [q.question_id for q in selected] == [far_queued.id, near.id]
    assert selected[0].queue_priority == 2
    assert selected[0].question_rating == 1900.0
    assert selected[1].queue_priority == 0


async def test_higher_queue_priority_first(db_session, learner_id):
    category = await create_category(db_session)
    low, high = await create_questions(db_session, category, 2, rating=1500.0)
    await create_history(db_session, learner_id, low, category, queue_priority=1)
    await create_history(db_session, learner_id, high, category, queue_priority=3)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert [q.question_id for q in selected] == [high.id, low.id]


async def test_exclude_ids_apply_to_queued_questions(db_session, learner_id):
    category = await create_category(db_session)
    queued = await create_question(db_session, category, rating=1500.0)
    await create_history(db_session, learner_id, queued, category, queue_priority=1)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category, exclude_ids={queued.id})

    assert selected == []


async def test_inactive_and_other_category_questions_skipped(db_session, learner_id):
    category = await create_category(db_session)
    other = await create_category(db_session)
    active = await create_question(db_session, category, rating=1500.0)
    await create_question(db_session, category, rating=1500.0, is_active=False)
    await create_question(db_session, other, rating=1500.0)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category)

    assert [q.question_id for q in selected] == [active.id]


async def test_under_fill_is_not_an_error(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 2, rating=1500.0)
    await db_session.commit()

    selected = await _select(db_session, learner_id, category, desired=10)
    assert len(selected) == 2

    assert await _select(db_session, learner_id, category, desired=0) == []
