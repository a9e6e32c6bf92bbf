"""
Core Elo math for learner, question and category ratings.

Pure functions implementing:
- Expected score (logistic, base 10)
- Rounded rating deltas with a minimum step
- Dynamic K schedules for players, questions and categories
- Reliability and confidence metrics

No I/O. Negative sample counts are a caller error and raise ValueError.
"""

import math
from dataclasses import dataclass

from assessment_engine.learning_engine.config import (
    CATEGORY_K_SCALE,
    CONFIDENCE_EXPERIENCE_GAMES,
    CONFIDENCE_EXPERIENCE_WEIGHT,
    CONFIDENCE_PERFORMANCE_WEIGHT,
    ELO_SCALE,
    MIN_RATING_STEP,
    PLAYER_K_MAX,
    PLAYER_K_MIN,
    PLAYER_K_PROVISIONAL_GAMES,
    PLAYER_K_STAGED,
    PLAYER_K_STAGED_TAIL,
    PLAYER_K_STAGES,
    PLAYER_K_VETERAN_GAMES,
    QUESTION_K_PROVISIONAL,
    QUESTION_K_PROVISIONAL_RATINGS,
    QUESTION_K_STABLE,
    RATING_FLOOR,
    RATING_TOLERANCE,
    RELIABILITY_CAP,
    RELIABILITY_SAMPLE_SIZE,
)

# Largest |exponent| passed to 10**x; keeps the power finite
MAX_EXPONENT = 300.0

# Offsets for easier / at-level / harder windows around a rating
BAND_NEAR = 25.0
BAND_FAR = 100.0


@dataclass
class RatingUpdate:
    """Outcome of one challenger-vs-opponent rating update."""

    expected_score: float
    actual_score: float
    challenger_k: float
    opponent_k: float
    challenger_delta: int
    challenger_rating: float
    opponent_delta: int
    opponent_rating: float

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "expected_score": self.expected_score,
            "actual_score": self.actual_score,
            "challenger_k": self.challenger_k,
            "opponent_k": self.opponent_k,
            "challenger_delta": self.challenger_delta,
            "challenger_rating": self.challenger_rating,
            "opponent_delta": self.opponent_delta,
            "opponent_rating": self.opponent_rating,
        }


def _require_non_negative(name: str, value: float) -> None:
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    magnitude = math.floor(abs(x) + 0.5)
    return int(magnitude if x >= 0 else -magnitude)


def expected_score(challenger: float, opponent: float, scale: float = ELO_SCALE.value) -> float:
    """
    Expected score of the challenger against the opponent.

    Formula:
        E = 1 / (1 + 10^((opponent - challenger) / scale))

    Symmetric: expected_score(a, b) + expected_score(b, a) == 1.

    Args:
        challenger: Challenger rating
        opponent: Opponent rating
        scale: Logistic scale (400 in classic Elo)

    Returns:
        Expected score in (0, 1)
    """
    exponent = (opponent - challenger) / scale
    exponent = max(-MAX_EXPONENT, min(MAX_EXPONENT, exponent))
    return 1.0 / (1.0 + math.pow(10.0, exponent))


def rating_delta(
    k: float,
    actual: float,
    expected: float,
    min_step: int = MIN_RATING_STEP.value,
) -> int:
    """
    Rounded rating change for one outcome.

    delta = round_half_up(k * (actual - expected)). When the outcome differs
    from the expectation the rating moves by at least min_step in the
    direction of the surprise.

    Args:
        k: K-factor of the side being updated
        actual: Actual score (1 win, 0 loss)
        expected: Expected score of the same side
        min_step: Minimum non-zero step

    Returns:
        Integer rating delta
    """
    surprise = actual - expected
    delta = round_half_up(k * surprise)
    if delta == 0 and surprise != 0 and k > 0:
        delta = min_step if surprise > 0 else -min_step
    return delta


def apply_delta(rating: float, delta: float, floor: float = RATING_FLOOR.value) -> float:
    """Apply a delta and clamp the result at the floor."""
    return max(floor, rating + delta)


def calculate(
    challenger_rating: float,
    challenger_k: float,
    opponent_rating: float,
    opponent_k: float,
    success: bool,
    scale: float = ELO_SCALE.value,
    min_step: int = MIN_RATING_STEP.value,
    floor: float = RATING_FLOOR.value,
) -> RatingUpdate:
    """
    Update both sides of one challenger-vs-opponent outcome.

    The opponent is updated with its own K, the complement outcome and the
    complement expectation, so the two sides move by different amounts when
    their K-factors differ. Returned deltas are the effective ones after
    clamping at the floor.

    Args:
        challenger_rating: Rating of the learner (or learner-in-category)
        challenger_k: Challenger K-factor
        opponent_rating: Rating of the question
        opponent_k: Question K-factor
        success: Whether the challenger won (answered correctly)

    Returns:
        RatingUpdate with expected score, deltas and new ratings
    """
    _require_non_negative("challenger_k", challenger_k)
    _require_non_negative("opponent_k", opponent_k)

    expected = expected_score(challenger_rating, opponent_rating, scale)
    actual = 1.0 if success else 0.0

    raw_challenger = rating_delta(challenger_k, actual, expected, min_step)
    raw_opponent = rating_delta(opponent_k, 1.0 - actual, 1.0 - expected, min_step)

    new_challenger = apply_delta(challenger_rating, raw_challenger, floor)
    new_opponent = apply_delta(opponent_rating, raw_opponent, floor)

    return RatingUpdate(
        expected_score=expected,
        actual_score=actual,
        challenger_k=challenger_k,
        opponent_k=opponent_k,
        challenger_delta=round_half_up(new_challenger - challenger_rating),
        challenger_rating=new_challenger,
        opponent_delta=round_half_up(new_opponent - opponent_rating),
        opponent_rating=new_opponent,
    )


def player_k_factor(games_played: int, smoothing: bool = True) -> int:
    """
    Dynamic K-factor for a learner.

    Provisional learners keep the maximum K; veterans get the floor. In between
    K either steps down per band or, with smoothing, is linearly interpolated
    inside each stage.

    Args:
        games_played: Number of rated attempts so far
        smoothing: Interpolate inside stages instead of stepping

    Returns:
        K-factor, non-increasing in games_played
    """
    _require_non_negative("games_played", games_played)

    if games_played <= PLAYER_K_PROVISIONAL_GAMES.value:
        return PLAYER_K_MAX.value
    if games_played >= PLAYER_K_VETERAN_GAMES.value:
        return PLAYER_K_MIN.value

    if not smoothing:
        for max_games, k in PLAYER_K_STAGED.value:
            if games_played <= max_games:
                return k
        return PLAYER_K_STAGED_TAIL.value

    for min_games, max_games, start_k, end_k in PLAYER_K_STAGES.value:
        if min_games <= games_played <= max_games:
            progress = (games_played - min_games) / (max_games - min_games)
            return round_half_up(start_k + (end_k - start_k) * progress)

    return PLAYER_K_MIN.value


def question_k_factor(times_rated: int) -> int:
    """Two-band K-factor for a question: provisional, then stable."""
    _require_non_negative("times_rated", times_rated)
    if times_rated < QUESTION_K_PROVISIONAL_RATINGS.value:
        return QUESTION_K_PROVISIONAL.value
    return QUESTION_K_STABLE.value


def category_k_factor(attempts: int, scale: float = CATEGORY_K_SCALE.value) -> float:
    """K-factor for a category micro-rating: player schedule scaled down."""
    return player_k_factor(attempts) * scale


def question_reliability(times_rated: int) -> float:
    """Reliability of a question rating, growing with ratings and capped."""
    _require_non_negative("times_rated", times_rated)
    return min(RELIABILITY_CAP.value, times_rated / RELIABILITY_SAMPLE_SIZE.value)


def player_confidence(games_played: int, recent_performance: float = 0.5) -> float:
    """
    Confidence in a learner rating.

    Combines experience (saturating at CONFIDENCE_EXPERIENCE_GAMES) with recent
    performance, capped below full certainty.

    Args:
        games_played: Number of rated attempts
        recent_performance: Recent accuracy in [0, 1]

    Returns:
        Confidence in [0, RELIABILITY_CAP]
    """
    _require_non_negative("games_played", games_played)
    if not (0.0 <= recent_performance <= 1.0):
        raise ValueError(f"recent_performance must be in [0, 1], got {recent_performance}")

    experience = min(1.0, games_played / CONFIDENCE_EXPERIENCE_GAMES.value)
    confidence = (
        experience * CONFIDENCE_EXPERIENCE_WEIGHT.value
        + recent_performance * CONFIDENCE_PERFORMANCE_WEIGHT.value
    )
    return min(RELIABILITY_CAP.value, confidence)


def is_question_appropriate(
    player_rating: float,
    question_rating: float,
    tolerance: float = RATING_TOLERANCE.value,
) -> bool:
    """Whether the question lies inside the player's rating window."""
    return abs(player_rating - question_rating) <= tolerance


def difficulty_ranges(player_rating: float, floor: float = RATING_FLOOR.value) -> dict:
    """Rating ranges for easier, at-level and harder questions."""
    return {
        "easier": {
            "min": max(floor, player_rating - BAND_FAR),
            "max": max(floor, player_rating - BAND_NEAR),
        },
        "at_level": {
            "min": max(floor, player_rating - BAND_NEAR),
            "max": player_rating + BAND_NEAR,
        },
        "harder": {
            "min": player_rating + BAND_NEAR,
            "max": player_rating + BAND_FAR,
        },
    }


def difficulty_band(player_rating: float, question_rating: float) -> str:
    """
    Classify a question relative to the player.

    Returns:
        "easier", "at_level" or "harder"
    """
    at_level = difficulty_ranges(player_rating)["at_level"]
    if question_rating < at_level["min"]:
        return "easier"
    if question_rating > at_level["max"]:
        return "harder"
    return "at_level"
