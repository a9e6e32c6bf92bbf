"""
Core category priority math.

Pure functions turning a learner's per-category state into a selection
weight and the deficits shown alongside it. No I/O.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from assessment_engine.learning_engine.config import get_priority_defaults
from assessment_engine.models.rating import Trend

# Decimal places kept for stored deficits
DEFICIT_PRECISION = 4


@dataclass
class PriorityComputation:
    """Computed priority row for one (learner, category)."""

    category_id: int
    selection_weight: float
    questions_needed: int
    rating_deficit: float
    accuracy_deficit: float
    next_practice_at: datetime | None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "category_id": self.category_id,
            "selection_weight": self.selection_weight,
            "questions_needed": self.questions_needed,
            "rating_deficit": self.rating_deficit,
            "accuracy_deficit": self.accuracy_deficit,
            "next_practice_at": self.next_practice_at,
        }


def rating_factor(rating: float, params: dict | None = None) -> float:
    """
    Tiered multiplier on the category rating.

    Lower ratings get larger multipliers (struggling > improving > proficient).
    """
    params = params or get_priority_defaults()
    factors = params["rating_factors"]
    if rating < params["struggling_rating"]:
        return factors["struggling"]
    if rating < params["improving_rating"]:
        return factors["improving"]
    return factors["proficient"]


def accuracy_factor(success_rate: float, params: dict | None = None) -> float:
    """Tiered multiplier on the success rate (fraction in [0, 1])."""
    params = params or get_priority_defaults()
    factors = params["accuracy_factors"]
    if success_rate < params["low_accuracy"]:
        return factors["low"]
    if success_rate < params["medium_accuracy"]:
        return factors["medium"]
    return factors["high"]


def selection_weight(rating: float, success_rate: float, params: dict | None = None) -> float:
    """
    Combined selection weight = rating factor x accuracy factor.

    Always >= 0 and bounded by the product of the largest factors.
    """
    return rating_factor(rating, params) * accuracy_factor(success_rate, params)


def questions_needed(available: int, mastered: int) -> int:
    """Active questions in the category the learner has not yet retired."""
    return max(0, available - mastered)


def rating_deficit(rating: float, params: dict | None = None) -> float:
    """Baseline minus rating. Negative when the learner is above baseline."""
    params = params or get_priority_defaults()
    return round(params["baseline_rating"] - rating, DEFICIT_PRECISION)


def accuracy_deficit(success_rate: float, params: dict | None = None) -> float:
    """Target accuracy minus success rate (signed)."""
    params = params or get_priority_defaults()
    return round(params["target_accuracy"] - success_rate, DEFICIT_PRECISION)


def classify_trend(recent_accuracy: float, success_rate: float, params: dict | None = None) -> str:
    """
    Compare recent accuracy to the overall success rate.

    Returns:
        Trend value: improving, declining or stable
    """
    params = params or get_priority_defaults()
    threshold = params["trend_threshold"]
    if recent_accuracy > success_rate + threshold:
        return Trend.IMPROVING.value
    if recent_accuracy < success_rate - threshold:
        return Trend.DECLINING.value
    return Trend.STABLE.value


def next_practice_at(
    last_attempt_at: datetime | None,
    weight: float,
    params: dict | None = None,
) -> datetime | None:
    """
    Recommended next practice time.

    Higher weights come back sooner. Deterministic in its inputs so that a
    recompute without new attempts yields the same value.
    """
    if last_attempt_at is None:
        return None
    params = params or get_priority_defaults()
    for min_weight, days in params["practice_interval_days"]:
        if weight >= min_weight:
            return last_attempt_at + timedelta(days=days)
    return last_attempt_at + timedelta(days=params["practice_interval_days"][-1][1])


def compute_priority(
    category_id: int,
    rating: float,
    success_rate: float,
    available: int,
    mastered: int,
    last_attempt_at: datetime | None,
    params: dict | None = None,
) -> PriorityComputation:
    """Compute the full priority row for one category."""
    params = params or get_priority_defaults()
    weight = selection_weight(rating, success_rate, params)
    return PriorityComputation(
        category_id=category_id,
        selection_weight=weight,
        questions_needed=questions_needed(available, mastered),
        rating_deficit=rating_deficit(rating, params),
        accuracy_deficit=accuracy_deficit(success_rate, params),
        next_practice_at=next_practice_at(last_attempt_at, weight, params),
    )
