"""
Assessment Engine Configuration - Central Constants Registry.

All constants used by the rating, priority and selection algorithms MUST be
defined here with proper provenance. No magic numbers in algorithm code.

Each constant includes:
- value: The actual constant value
- source: Citation (paper, rating system handbook, product decision)
- notes: Rationale and context
- validated: Whether the value has been validated against source
"""

from dataclasses import dataclass
from typing import Any

from assessment_engine.core.config import settings


@dataclass(frozen=True)
class SourcedValue:
    """
    A constant value with documented provenance.

    All engine constants must use this type to enforce documentation.
    """

    value: Any
    source: str
    notes: str = ""
    validated: bool = False

    def __post_init__(self):
        if not self.source or self.source.strip() == "":
            raise ValueError(f"SourcedValue must have non-empty source. Got: {self.source}")


# =============================================================================
# Elo Rating Constants
# =============================================================================

BASELINE_RATING = SourcedValue(
    value=1500.0,
    source="Elo (1978) The Rating of Chessplayers, Past and Present; conventional new-player rating",
    notes="Single baseline for learners, questions and category micro-ratings. "
    "A first-time learner is the only case where a default stands in for stored state.",
    validated=True,
)

RATING_FLOOR = SourcedValue(
    value=0.0,
    source="Product decision: ratings are non-negative",
    notes="Ratings are clamped at the floor after every update. No ceiling.",
    validated=True,
)

ELO_SCALE = SourcedValue(
    value=400.0,
    source="Elo (1978); logistic scale used by FIDE and USCF",
    notes="A 400 point gap means ~10:1 expected odds.",
    validated=True,
)

MIN_RATING_STEP = SourcedValue(
    value=1,
    source="Product decision: every non-zero surprise moves the rating",
    notes="After half-up rounding, a delta of 0 with a non-zero surprise becomes +/-1 "
    "so a correct answer always raises and a miss always lowers the challenger.",
    validated=True,
)

# Player K-factor schedule: (games_played upper bound, K at that bound)
# Source: FIDE K=40/20/10 progression, scaled up for short quiz "games"
PLAYER_K_PROVISIONAL_GAMES = SourcedValue(
    value=44,
    source="FIDE Handbook B.02 8.3.3 (provisional period); adapted to quiz attempts",
    notes="Up to this many attempts the learner is provisional and keeps the maximum K.",
    validated=False,
)

PLAYER_K_STAGES = SourcedValue(
    value=[
        (44, 200, 100, 60),
        (200, 400, 60, 40),
        (400, 600, 40, 24),
        (600, 800, 24, 16),
        (800, 1000, 16, 10),
    ],
    source="FIDE Handbook B.02 8.3.3 (decreasing K with experience); stage boundaries tuned for quizzes",
    notes="(min_games, max_games, start_k, end_k). With smoothing K is linearly "
    "interpolated inside a stage and rounded.",
    validated=False,
)

PLAYER_K_STAGED = SourcedValue(
    value=[(200, 60), (400, 40), (600, 24)],
    source="FIDE Handbook B.02 8.3.3; step variant of PLAYER_K_STAGES",
    notes="(max_games, K) bands used when smoothing is disabled. Above the last band K=16 "
    "until the veteran threshold.",
    validated=False,
)

PLAYER_K_MAX = SourcedValue(
    value=100,
    source="Product decision: new learners converge within one or two sessions",
    notes="K for provisional learners.",
    validated=False,
)

PLAYER_K_STAGED_TAIL = SourcedValue(
    value=16,
    source="FIDE Handbook B.02 8.3.3; step variant of PLAYER_K_STAGES",
    notes="K between the last staged band and the veteran threshold.",
    validated=False,
)

PLAYER_K_VETERAN_GAMES = SourcedValue(
    value=801,
    source="FIDE Handbook B.02 8.3.3; veteran threshold adapted to quiz attempts",
    notes="From this many attempts on K is the floor value.",
    validated=False,
)

PLAYER_K_MIN = SourcedValue(
    value=10,
    source="FIDE Handbook B.02 8.3.3 (K=10 for established players)",
    notes="Floor of the player schedule.",
    validated=True,
)

QUESTION_K_PROVISIONAL = SourcedValue(
    value=40,
    source="Pelanek (2016) Applications of the Elo rating system in adaptive educational systems",
    notes="Items move fast while they have few ratings.",
    validated=False,
)

QUESTION_K_STABLE = SourcedValue(
    value=10,
    source="Pelanek (2016) Applications of the Elo rating system in adaptive educational systems",
    notes="Stable item K once calibrated.",
    validated=False,
)

QUESTION_K_PROVISIONAL_RATINGS = SourcedValue(
    value=20,
    source="Pelanek (2016); uncertainty function reaches plateau after ~20 answers",
    notes="Items rated fewer times than this use the provisional K.",
    validated=False,
)

CATEGORY_K_SCALE = SourcedValue(
    value=0.75,
    source="Product decision: category micro-ratings move slower than the overall rating",
    notes="Category K = player schedule(attempts) x scale.",
    validated=False,
)

# =============================================================================
# Reliability / Confidence Constants
# =============================================================================

RELIABILITY_CAP = SourcedValue(
    value=0.95,
    source="Product decision: never claim full certainty",
    notes="Upper bound for question reliability and learner confidence.",
    validated=True,
)

RELIABILITY_SAMPLE_SIZE = SourcedValue(
    value=100,
    source="Pelanek (2016); item difficulty estimate stabilises after ~100 answers",
    notes="reliability = min(cap, times_rated / sample_size).",
    validated=False,
)

CONFIDENCE_EXPERIENCE_GAMES = SourcedValue(
    value=50,
    source="Product decision: experience factor saturates at 50 attempts",
    notes="experience = min(1, games / 50).",
    validated=False,
)

CONFIDENCE_EXPERIENCE_WEIGHT = SourcedValue(
    value=0.7,
    source="Product decision",
    notes="Weight of experience in learner confidence.",
    validated=False,
)

CONFIDENCE_PERFORMANCE_WEIGHT = SourcedValue(
    value=0.3,
    source="Product decision",
    notes="Weight of recent performance in learner confidence.",
    validated=False,
)

# =============================================================================
# Category Priority Constants
# =============================================================================

PRIORITY_STRUGGLING_RATING = SourcedValue(
    value=1200.0,
    source="Product decision: 300 points below baseline",
    notes="Category ratings below this get the struggling multiplier.",
    validated=False,
)

PRIORITY_IMPROVING_RATING = SourcedValue(
    value=1400.0,
    source="Product decision: 100 points below baseline",
    notes="Category ratings below this (and above struggling) get the improving multiplier.",
    validated=False,
)

PRIORITY_RATING_FACTORS = SourcedValue(
    value={"struggling": 3.0, "improving": 2.0, "proficient": 1.0},
    source="Product decision: tiered practice weighting",
    notes="Rating multiplier per tier.",
    validated=False,
)

PRIORITY_LOW_ACCURACY = SourcedValue(
    value=0.50,
    source="Product decision",
    notes="Success rates below this get the low-accuracy multiplier.",
    validated=False,
)

PRIORITY_MEDIUM_ACCURACY = SourcedValue(
    value=0.70,
    source="Product decision",
    notes="Success rates below this get the medium-accuracy multiplier.",
    validated=False,
)

PRIORITY_ACCURACY_FACTORS = SourcedValue(
    value={"low": 2.5, "medium": 1.5, "high": 0.5},
    source="Product decision: tiered practice weighting",
    notes="Accuracy multiplier per tier. Max weight = 3.0 x 2.5 = 7.5.",
    validated=False,
)

PRIORITY_TARGET_ACCURACY = SourcedValue(
    value=0.80,
    source="Bloom (1968) Learning for Mastery; 80% mastery criterion",
    notes="Accuracy deficit = target - success rate (signed).",
    validated=True,
)

TREND_THRESHOLD = SourcedValue(
    value=0.10,
    source="Product decision",
    notes="Recent accuracy more than this above/below the success rate is a trend.",
    validated=False,
)

RECENT_ACCURACY_WINDOW = SourcedValue(
    value=10,
    source="Product decision",
    notes="Recent accuracy covers the last N attempts in the category across sessions.",
    validated=False,
)

QUEUE_PRIORITY_MAX = SourcedValue(
    value=3,
    source="Product decision: bounded requeue after repeated misses",
    notes="Queue priority increases by 1 per miss up to this cap; resets on a correct answer.",
    validated=True,
)

PRACTICE_INTERVAL_DAYS = SourcedValue(
    value=[(4.0, 1), (2.0, 2), (1.0, 4), (0.0, 7)],
    source="Leitner (1972) So lernt man lernen; box intervals",
    notes="(min_weight, days). Next practice = last attempt + days of the first tier "
    "whose min_weight <= weight.",
    validated=False,
)

# =============================================================================
# Selection / Generation Constants
# =============================================================================

RATING_TOLERANCE = SourcedValue(
    value=200.0,
    source="Pelanek (2016); target success ~75% corresponds to ~200 Elo points",
    notes="Half-width of the rating window around the learner rating.",
    validated=False,
)

EXCLUDE_LAST_N_SESSIONS = SourcedValue(
    value=3,
    source="Product decision: avoid repeats across consecutive sessions",
    notes="Questions last seen in one of the learner's last N sessions are excluded.",
    validated=False,
)

EXCLUDE_SEEN_WITHIN_DAYS = SourcedValue(
    value=0,
    source="Product decision",
    notes="Optional day-based recency window. 0 disables it.",
    validated=True,
)

TOP_PRIORITY_CATEGORIES = SourcedValue(
    value=3,
    source="Product decision",
    notes="Number of priority categories used when the caller names none.",
    validated=False,
)

COLD_START_FALLBACK = SourcedValue(
    value=False,
    source="Product decision: a learner without history must name categories",
    notes="When enabled, active categories with questions are used if no priorities exist.",
    validated=True,
)

REDISTRIBUTE_SHORTFALL = SourcedValue(
    value=True,
    source="Product decision",
    notes="One top-up pass asks other categories for questions an under-filled category lacked.",
    validated=True,
)

SESSION_TYPE_PROFILES = SourcedValue(
    value={
        "practice": {"tolerance": RATING_TOLERANCE.value, "k_multiplier": 1.0},
        "diagnostic": {"tolerance": RATING_TOLERANCE.value, "k_multiplier": 1.0},
        "timed": {"tolerance": RATING_TOLERANCE.value, "k_multiplier": 1.0},
    },
    source="Product decision: session types share selection and rating behaviour until tuned",
    notes="Per-type tolerance and learner K multiplier.",
    validated=False,
)


def validate_all_constants():
    """
    Validate all constants at import time.

    Raises:
        ValueError: If any constant fails validation
    """
    errors = []

    if RATING_FLOOR.value >= BASELINE_RATING.value:
        errors.append("RATING_FLOOR must be below BASELINE_RATING")

    if ELO_SCALE.value <= 0:
        errors.append("ELO_SCALE must be positive")

    # Player K schedule must be non-increasing
    previous_k = PLAYER_K_MAX.value
    for min_games, max_games, start_k, end_k in PLAYER_K_STAGES.value:
        if min_games >= max_games:
            errors.append(f"PLAYER_K_STAGES stage {min_games}-{max_games} is empty")
        if not (previous_k >= start_k >= end_k):
            errors.append(f"PLAYER_K_STAGES stage {min_games}-{max_games} increases K")
        previous_k = end_k
    if previous_k != PLAYER_K_MIN.value:
        errors.append("PLAYER_K_STAGES must end at PLAYER_K_MIN")

    if QUESTION_K_PROVISIONAL.value < QUESTION_K_STABLE.value:
        errors.append("QUESTION_K_PROVISIONAL must be >= QUESTION_K_STABLE")

    if not (0 < CATEGORY_K_SCALE.value <= 1):
        errors.append(f"CATEGORY_K_SCALE must be in (0, 1], got {CATEGORY_K_SCALE.value}")

    if not (0 < RELIABILITY_CAP.value < 1):
        errors.append(f"RELIABILITY_CAP must be in (0, 1), got {RELIABILITY_CAP.value}")

    weights_sum = CONFIDENCE_EXPERIENCE_WEIGHT.value + CONFIDENCE_PERFORMANCE_WEIGHT.value
    if abs(weights_sum - 1.0) > 1e-9:
        errors.append(f"Confidence weights must sum to 1, got {weights_sum}")

    if PRIORITY_STRUGGLING_RATING.value >= PRIORITY_IMPROVING_RATING.value:
        errors.append("PRIORITY_STRUGGLING_RATING must be < PRIORITY_IMPROVING_RATING")

    if not (0 < PRIORITY_LOW_ACCURACY.value < PRIORITY_MEDIUM_ACCURACY.value < 1):
        errors.append("Accuracy tiers must satisfy 0 < low < medium < 1")

    for profile_name, profile in SESSION_TYPE_PROFILES.value.items():
        if profile["tolerance"] <= 0 or profile["k_multiplier"] <= 0:
            errors.append(f"SESSION_TYPE_PROFILES[{profile_name}] must be positive")

    if errors:
        raise ValueError("Constant validation failed:\n" + "\n".join(f"  - {e}" for e in errors))


# Validate on import
validate_all_constants()


def get_rating_defaults() -> dict:
    """Get Elo rating defaults as a dict."""
    return {
        "baseline_rating": BASELINE_RATING.value,
        "rating_floor": RATING_FLOOR.value,
        "scale": ELO_SCALE.value,
        "min_step": MIN_RATING_STEP.value,
        "category_k_scale": CATEGORY_K_SCALE.value,
    }


def get_priority_defaults() -> dict:
    """Get category priority defaults as a dict."""
    return {
        "baseline_rating": BASELINE_RATING.value,
        "struggling_rating": PRIORITY_STRUGGLING_RATING.value,
        "improving_rating": PRIORITY_IMPROVING_RATING.value,
        "rating_factors": dict(PRIORITY_RATING_FACTORS.value),
        "low_accuracy": PRIORITY_LOW_ACCURACY.value,
        "medium_accuracy": PRIORITY_MEDIUM_ACCURACY.value,
        "accuracy_factors": dict(PRIORITY_ACCURACY_FACTORS.value),
        "target_accuracy": PRIORITY_TARGET_ACCURACY.value,
        "trend_threshold": TREND_THRESHOLD.value,
        "recent_window": RECENT_ACCURACY_WINDOW.value,
        "practice_interval_days": list(PRACTICE_INTERVAL_DAYS.value),
    }


def get_selection_defaults() -> dict:
    """Get question selection and generation defaults as a dict."""
    return {
        "baseline_rating": BASELINE_RATING.value,
        "exclude_last_n_sessions": EXCLUDE_LAST_N_SESSIONS.value,
        "exclude_seen_within_days": EXCLUDE_SEEN_WITHIN_DAYS.value,
        "top_priority_categories": TOP_PRIORITY_CATEGORIES.value,
        "cold_start_fallback": COLD_START_FALLBACK.value,
        "redistribute_shortfall": REDISTRIBUTE_SHORTFALL.value,
        "queue_priority_max": QUEUE_PRIORITY_MAX.value,
    }


def get_session_profile(session_type: str, params: dict | None = None) -> dict:
    """
    Get selection tolerance and K multiplier for a session type.

    An explicit tolerance override in params applies to every session type.
    """
    profiles = SESSION_TYPE_PROFILES.value
    if session_type not in profiles:
        raise ValueError(f"Unknown session type: {session_type}")

    profile = dict(profiles[session_type])
    if params and "tolerance_override" in params:
        profile["tolerance"] = params["tolerance_override"]
    return profile


def get_engine_params() -> dict:
    """
    Effective engine parameters: registry defaults merged with settings overrides.

    Returns:
        Flat dict consumed by the generator and settlement services
    """
    params: dict[str, Any] = {}
    params.update(get_rating_defaults())
    params.update(get_priority_defaults())
    params.update(get_selection_defaults())

    overrides = settings.engine_overrides()
    if "tolerance" in overrides:
        params["tolerance_override"] = overrides.pop("tolerance")
    params.update(overrides)
    return params
