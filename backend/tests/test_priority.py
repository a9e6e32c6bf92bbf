"""
Tests for category practice priorities.

Tests:
- Tiered factors, deficits, trend and next practice time
- Recompute upserts one row per category
- Recompute is idempotent (unchanged rows are not touched)
- Top-N ordering and tie breaking
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from assessment_engine.learning_engine.priority.core import (
    accuracy_deficit,
    accuracy_factor,
    classify_trend,
    compute_priority,
    next_practice_at,
    questions_needed,
    rating_deficit,
    rating_factor,
    selection_weight,
)
from assessment_engine.learning_engine.priority.service import (
    delete_priorities,
    get_all_priorities,
    recalculate_all,
    top_priorities,
)
from assessment_engine.models.priority import CategoryPracticePriority
from assessment_engine.models.rating import CategoryMicroRating
from tests.helpers.seed import (
    create_category,
    create_history,
    create_micro_rating,
    create_questions,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

# === Core math ===


def test_rating_factor_tiers():
    assert rating_factor(1100) == 3.0
    assert rating_factor(1200) == 2.0
    assert rating_factor(1399) == 2.0
    assert rating_factor(1400) == 1.0


def test_accuracy_factor_tiers():
    assert accuracy_factor(0.49) == 2.5
    assert accuracy_factor(0.5) == 1.5
    assert accuracy_factor(0.69) == 1.5
    assert accuracy_factor(0.7) == 0.5


def test_selection_weight_is_product():
    assert selection_weight(1300, 0.6) == pytest.approx(3.0)
    assert selection_weight(1100, 0.2) == pytest.approx(7.5)
    assert selection_weight(1600, 0.95) == pytest.approx(0.5)


def test_deficits_are_signed():
    assert rating_deficit(1300) == 200.0
    assert rating_deficit(1600) == -100.0
    assert accuracy_deficit(0.6) == pytest.approx(0.2)
    assert accuracy_deficit(0.9) == pytest.approx(-0.1)


def test_questions_needed_never_negative():
    assert questions_needed(10, 3) == 7
    assert questions_needed(3, 10) == 0


def test_classify_trend():
    assert classify_trend(0.95, 0.7) == "improving"
    assert classify_trend(0.5, 0.7) == "declining"
    assert classify_trend(0.75, 0.7) == "stable"


def test_next_practice_sooner_for_higher_weight():
    assert next_practice_at(T0, 7.5) == T0 + timedelta(days=1)
    assert next_practice_at(T0, 3.0) == T0 + timedelta(days=2)
    assert next_practice_at(T0, 1.0) == T0 + timedelta(days=4)
    assert next_practice_at(T0, 0.5) == T0 + timedelta(days=7)
    assert next_practice_at(None, 7.5) is None


def test_compute_priority():
    result = compute_priority(
        category_id=7,
        rating=1300,
        success_rate=0.6,
        available=12,
        mastered=5,
        last_attempt_at=T0,
    )

    assert result.to_dict() == {
        "category_id": 7,
        "selection_weight": pytest.approx(3.0),
        "questions_needed": 7,
        "rating_deficit": 200.0,
        "accuracy_deficit": pytest.approx(0.2),
        "next_practice_at": T0 + timedelta(days=2),
    }


# === Service ===


async def _seed_three_categories(db, learner_id):
    weak = await create_category(db, "Weak")
    middling = await create_category(db, "Middling")
    strong = await create_category(db, "Strong")
    for category in (weak, middling, strong):
        await create_questions(db, category, 5)

    await create_micro_rating(db, learner_id, weak, rating=1100, success_rate=0.3, last_attempt_at=T0)
    await create_micro_rating(db, learner_id, middling, rating=1300, success_rate=0.6, last_attempt_at=T0)
    await create_micro_rating(db, learner_id, strong, rating=1500, success_rate=0.9, last_attempt_at=T0)
    await db.commit()
    return weak, middling, strong


async def _priority_rows(db, learner_id):
    table = CategoryPracticePriority.__table__
    result = await db.execute(
        select(table).where(table.c.learner_id == learner_id).order_by(table.c.category_id)
    )
    return [tuple(row) for row in result.all()]


async def test_recalculate_creates_row_per_category(db_session, learner_id):
    weak, middling, strong = await _seed_three_categories(db_session, learner_id)

    computed = await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    assert [c.category_id for c in computed] == [weak.id, middling.id, strong.id]
    rows = await get_all_priorities(db_session, learner_id)
    weights = {row["category_id"]: row["selection_weight"] for row in rows}
    assert weights == {
        weak.id: pytest.approx(7.5),
        middling.id: pytest.approx(3.0),
        strong.id: pytest.approx(0.5),
    }
    assert all(row["questions_needed"] == 5 for row in rows)


async def test_recalculate_counts_mastered_questions(db_session, learner_id):
    weak, _, _ = await _seed_three_categories(db_session, learner_id)
    questions = await create_questions(db_session, weak, 2)
    await create_history(db_session, learner_id, questions[0], weak, is_retired=True)
    await create_history(db_session, learner_id, questions[1], weak, queue_priority=2)
    await db_session.commit()

    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    rows = {row["category_id"]: row for row in await get_all_priorities(db_session, learner_id)}
    assert rows[weak.id]["questions_needed"] == 6


async def test_recalculate_is_idempotent(db_session, learner_id):
    """A second recompute without new attempts leaves every row byte-identical."""
    await _seed_three_categories(db_session, learner_id)

    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()
    first = await _priority_rows(db_session, learner_id)

    await recalculate_all(db_session, learner_id, now=T0 + timedelta(hours=1))
    await db_session.commit()
    second = await _priority_rows(db_session, learner_id)

    assert len(first) == 3
    assert first == second

    rows = await get_all_priorities(db_session, learner_id)
    assert all(row["last_calculated_at"] == T0 for row in rows)


async def test_recalculate_updates_changed_rows_only(db_session, learner_id):
    weak, middling, strong = await _seed_three_categories(db_session, learner_id)
    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    cached = await db_session.execute(
        select(CategoryPracticePriority).where(CategoryPracticePriority.category_id == middling.id)
    )
    assert cached.scalar_one().selection_weight == pytest.approx(3.0)

    micro = (
        await db_session.execute(
            select(CategoryMicroRating).where(CategoryMicroRating.category_id == middling.id)
        )
    ).scalar_one()
    micro.success_rate = 0.9
    await db_session.flush()

    t1 = T0 + timedelta(hours=2)
    await recalculate_all(db_session, learner_id, now=t1)
    await db_session.commit()

    rows = {row["category_id"]: row for row in await get_all_priorities(db_session, learner_id)}
    assert rows[middling.id]["selection_weight"] == pytest.approx(1.0)
    assert rows[middling.id]["last_calculated_at"] == t1
    assert rows[weak.id]["last_calculated_at"] == T0
    assert rows[strong.id]["last_calculated_at"] == T0


async def test_recalculate_without_history_is_noop(db_session, learner_id):
    assert await recalculate_all(db_session, learner_id, now=T0) == []
    assert await _priority_rows(db_session, learner_id) == []


async def test_top_priorities_orders_by_weight(db_session, learner_id):
    weak, middling, strong = await _seed_three_categories(db_session, learner_id)
    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    top = await top_priorities(db_session, learner_id, 2)

    assert [row["category_id"] for row in top] == [weak.id, middling.id]
    assert top[0]["category_name"] == "Weak"
    assert top[0]["rating"] == pytest.approx(1100)
    assert top[0]["next_practice_at"] == T0 + timedelta(days=1)


async def test_top_priorities_ties_broken_by_category_id(db_session, learner_id):
    categories = [await create_category(db_session) for _ in range(3)]
    for category in categories:
        await create_micro_rating(db_session, learner_id, category, rating=1300, success_rate=0.6)
    await db_session.commit()

    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    top = await top_priorities(db_session, learner_id, 3)
    assert [row["category_id"] for row in top] == sorted(c.id for c in categories)


async def test_top_priorities_skip_inactive_categories(db_session, learner_id):
    weak, middling, _ = await _seed_three_categories(db_session, learner_id)
    weak.is_active = False
    await db_session.commit()

    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    top = await top_priorities(db_session, learner_id, 1)
    assert [row["category_id"] for row in top] == [middling.id]


async def test_priorities_are_per_learner(db_session, learner_id):
    await _seed_three_categories(db_session, learner_id)
    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    assert await top_priorities(db_session, uuid4(), 3) == []


async def test_delete_priorities(db_session, learner_id):
    await _seed_three_categories(db_session, learner_id)
    await recalculate_all(db_session, learner_id, now=T0)
    await db_session.commit()

    assert await delete_priorities(db_session, learner_id) == 3
    await db_session.commit()
    assert await get_all_priorities(db_session, learner_id) == []
