"""
Tests for adaptive quiz generation.

Tests:
- Weighted split across top priority categories
- Explicit target categories
- Frozen ratings on assignments and seen-history marking
- Recently seen questions excluded from the next quiz
- Error paths and under-filled sessions
"""

import random
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select, text

from assessment_engine.core.app_exceptions import NoCategoriesAvailableError, SessionNotFoundError
from assessment_engine.learning_engine.config import get_engine_params
from assessment_engine.learning_engine.generator.service import (
    generate_quiz,
    get_session_questions,
)
from assessment_engine.models.history import QuestionHistory
from assessment_engine.models.quiz_session import (
    QuizSession,
    SessionQuestion,
    SessionStatus,
    SessionType,
)
from assessment_engine.models.rating import LearnerRating, QuestionRating
from tests.helpers.seed import (
    create_category,
    create_learner_rating,
    create_micro_rating,
    create_questions,
)

NOW = datetime(2026, 6, 1, 8, 0, tzinfo=UTC)


async def _seed_weighted_categories(db, learner_id):
    """Three categories with priority weights 3.0, 1.0, 1.0 and 15 questions each."""
    heavy = await create_category(db, "Pharmacology")
    light_a = await create_category(db, "Anatomy")
    light_b = await create_category(db, "Physiology")
    for category in (heavy, light_a, light_b):
        await create_questions(db, category, 15)

    await create_micro_rating(db, learner_id, heavy, rating=1300, success_rate=0.6)
    await create_micro_rating(db, learner_id, light_a, rating=1300, success_rate=0.8)
    await create_micro_rating(db, learner_id, light_b, rating=1300, success_rate=0.8)
    await db.commit()
    return heavy, light_a, light_b


async def test_weighted_quiz_for_learner_without_history(db_session, learner_id):
    """Weights 3:1:1 over 20 questions give 12/4/4 distinct questions."""
    heavy, light_a, light_b = await _seed_weighted_categories(db_session, learner_id)

    result = await generate_quiz(db_session, learner_id, 20, rng=random.Random(7), now=NOW)

    assert result.total_questions == 20
    assert result.requested_questions == 20
    assert result.learner_rating == 1500.0
    assert len({q.question_id for q in result.questions}) == 20
    assert [q.position for q in result.questions] == list(range(1, 21))

    breakdown = {b.category_id: b for b in result.category_breakdown}
    assert [b.category_id for b in result.category_breakdown] == [heavy.id, light_a.id, light_b.id]
    assert breakdown[heavy.id].weight == pytest.approx(3.0)
    assert (breakdown[heavy.id].requested, breakdown[heavy.id].selected) == (12, 12)
    assert (breakdown[light_a.id].requested, breakdown[light_a.id].selected) == (4, 4)
    assert (breakdown[light_b.id].requested, breakdown[light_b.id].selected) == (4, 4)

    per_category = {}
    for q in result.questions:
        per_category[q.category_id] = per_category.get(q.category_id, 0) + 1
    assert per_category == {heavy.id: 12, light_a.id: 4, light_b.id: 4}


async def test_generation_persists_session_and_frozen_ratings(db_session, learner_id):
    await _seed_weighted_categories(db_session, learner_id)

    result = await generate_quiz(db_session, learner_id, 10, now=NOW)

    session = await db_session.get(QuizSession, result.session_id)
    assert session.status == SessionStatus.ACTIVE
    assert session.session_type == SessionType.PRACTICE
    assert session.total_questions == 10
    assert session.requested_questions == 10

    assignments = (
        await db_session.execute(
            select(SessionQuestion)
            .where(SessionQuestion.session_id == result.session_id)
            .order_by(SessionQuestion.position)
        )
    ).scalars().all()
    assert [a.question_id for a in assignments] == [q.question_id for q in result.questions]
    assert all(a.question_rating_at_selection == 1500.0 for a in assignments)

    learner = (
        await db_session.execute(select(LearnerRating).where(LearnerRating.learner_id == learner_id))
    ).scalar_one()
    assert learner.rating == 1500.0
    assert learner.games_played == 0


async def test_generation_marks_questions_seen(db_session, learner_id):
    await _seed_weighted_categories(db_session, learner_id)

    result = await generate_quiz(db_session, learner_id, 5, now=NOW)

    history = (
        await db_session.execute(
            select(QuestionHistory).where(QuestionHistory.learner_id == learner_id)
        )
    ).scalars().all()
    assert {h.question_id for h in history} == {q.question_id for q in result.questions}
    for entry in history:
        assert entry.times_seen == 1
        assert entry.last_session_id == result.session_id
        assert entry.is_retired is False
        assert entry.queue_priority == 0


async def test_history_rows_written_in_question_id_order(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 8)
    await db_session.commit()

    result = await generate_quiz(
        db_session, learner_id, 8, target_categories=[category.id], rng=random.Random(7), now=NOW
    )

    written = (
        await db_session.execute(text("SELECT question_id FROM question_history ORDER BY rowid"))
    ).scalars().all()
    assert written == sorted(q.question_id.hex for q in result.questions)


async def test_next_quiz_excludes_recently_seen_questions(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 8)
    await db_session.commit()

    first = await generate_quiz(db_session, learner_id, 5, target_categories=[category.id], now=NOW)
    second = await generate_quiz(
        db_session,
        learner_id,
        5,
        target_categories=[category.id],
        now=NOW + timedelta(minutes=30),
    )

    first_ids = {q.question_id for q in first.questions}
    second_ids = {q.question_id for q in second.questions}
    assert first_ids.isdisjoint(second_ids)
    assert second.total_questions == 3, "Only three unseen questions remain"


async def test_explicit_targets_get_equal_weights(db_session, learner_id):
    first = await create_category(db_session)
    second = await create_category(db_session)
    await create_questions(db_session, first, 10)
    await create_questions(db_session, second, 10)
    await db_session.commit()

    result = await generate_quiz(
        db_session, learner_id, 6, target_categories=[second.id, first.id, 999_999], now=NOW
    )

    assert [b.category_id for b in result.category_breakdown] == [second.id, first.id]
    assert all(b.weight == 1.0 for b in result.category_breakdown)
    assert [b.requested for b in result.category_breakdown] == [3, 3]


async def test_repeated_target_ids_counted_once(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 10)
    await db_session.commit()

    result = await generate_quiz(
        db_session, learner_id, 6, target_categories=[category.id, category.id], now=NOW
    )

    assert len(result.category_breakdown) == 1
    breakdown = result.category_breakdown[0]
    assert (breakdown.category_id, breakdown.requested, breakdown.selected) == (category.id, 6, 6)
    assert result.total_questions == 6


async def test_quiz_stays_inside_rating_window(db_session, learner_id):
    category = await create_category(db_session)
    await create_learner_rating(db_session, learner_id, rating=1800.0)
    near = await create_questions(db_session, category, 3, rating=1750.0)
    await create_questions(db_session, category, 3, rating=1500.0)
    await db_session.commit()

    result = await generate_quiz(db_session, learner_id, 6, target_categories=[category.id], now=NOW)

    assert result.learner_rating == 1800.0
    assert {q.question_id for q in result.questions} == {q.id for q in near}
    assert result.total_questions == 3
    assert all(q.difficulty_band == "easier" for q in result.questions)


async def test_under_filled_category_topped_up_from_others(db_session, learner_id):
    scarce = await create_category(db_session)
    plenty = await create_category(db_session)
    await create_questions(db_session, scarce, 1)
    await create_questions(db_session, plenty, 10)
    await db_session.commit()

    result = await generate_quiz(
        db_session, learner_id, 6, target_categories=[scarce.id, plenty.id], now=NOW
    )

    breakdown = {b.category_id: b for b in result.category_breakdown}
    assert breakdown[scarce.id].requested == 3
    assert breakdown[scarce.id].selected == 1
    assert breakdown[plenty.id].selected == 5
    assert result.total_questions == 6


async def test_under_filled_session_is_not_an_error(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 2)
    await db_session.commit()

    result = await generate_quiz(db_session, learner_id, 10, target_categories=[category.id], now=NOW)

    assert result.requested_questions == 10
    assert result.total_questions == 2


async def test_new_learner_without_targets_has_no_categories(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 5)
    await db_session.commit()

    with pytest.raises(NoCategoriesAvailableError) as exc_info:
        await generate_quiz(db_session, learner_id, 5, now=NOW)

    assert exc_info.value.to_dict()["code"] == "NO_CATEGORIES_AVAILABLE"
    count = await db_session.scalar(select(func.count()).select_from(QuizSession))
    assert count == 0


async def test_cold_start_fallback_uses_active_categories(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 5)
    await create_category(db_session)  # no questions
    await db_session.commit()

    params = get_engine_params()
    params["cold_start_fallback"] = True

    result = await generate_quiz(db_session, learner_id, 5, now=NOW, params=params)

    assert [b.category_id for b in result.category_breakdown] == [category.id]
    assert result.total_questions == 5


async def test_inactive_targets_rejected(db_session, learner_id):
    category = await create_category(db_session, is_active=False)
    await create_questions(db_session, category, 5)
    await db_session.commit()

    with pytest.raises(NoCategoriesAvailableError):
        await generate_quiz(db_session, learner_id, 5, target_categories=[category.id], now=NOW)


async def test_invalid_total_rejected(db_session, learner_id):
    with pytest.raises(ValueError):
        await generate_quiz(db_session, learner_id, 0, now=NOW)


async def test_unknown_session_type_rejected(db_session, learner_id):
    with pytest.raises(ValueError):
        await generate_quiz(db_session, learner_id, 5, session_type="marathon", now=NOW)


async def test_session_questions_use_frozen_ratings(db_session, learner_id):
    category = await create_category(db_session)
    await create_questions(db_session, category, 4, rating=1500.0)
    await db_session.commit()

    result = await generate_quiz(
        db_session,
        learner_id,
        4,
        session_type=SessionType.DIAGNOSTIC,
        target_categories=[category.id],
        rng=random.Random(3),
        now=NOW,
    )

    # Live ratings drift after selection
    ratings = (await db_session.execute(select(QuestionRating))).scalars().all()
    for rating in ratings:
        rating.rating = 1900.0
    await db_session.commit()

    questions = await get_session_questions(db_session, result.session_id)

    assert [q.question_id for q in questions] == [q.question_id for q in result.questions]
    assert [q.position for q in questions] == [1, 2, 3, 4]
    assert all(q.question_rating == 1500.0 for q in questions)
    assert all(q.difficulty_band == "at_level" for q in questions)


async def test_session_questions_unknown_session(db_session):
    with pytest.raises(SessionNotFoundError):
        await get_session_questions(db_session, uuid4())
