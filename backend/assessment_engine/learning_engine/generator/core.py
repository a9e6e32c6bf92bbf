"""
Core quiz generation math.

Pure functions:
- Weighted count-per-category distribution with deterministic reconciliation
- Presentation-order shuffle
"""

import random
from typing import Sequence, TypeVar

from assessment_engine.learning_engine.rating.core import round_half_up

T = TypeVar("T")


def _top_index(weights: Sequence[float]) -> int:
    """Index of the highest weight; ties go to the earliest."""
    best = 0
    for i, w in enumerate(weights):
        if w > weights[best]:
            best = i
    return best


def calculate_distribution(total: int, weights: Sequence[float]) -> list[int]:
    """
    Apportion total questions across categories by weight.

    count_i = round_half_up(total * w_i / sum(w)), floored at 1. The whole
    difference total - sum(count) goes to the single highest-weight category
    (earliest on ties). If that would push it below 1, it keeps 1 and the
    excess is taken one question at a time from the lowest-weight categories
    still holding more than 1.

    When total is smaller than the number of categories only the `total`
    highest-weight categories get a question (1 each) and the rest get 0.

    Args:
        total: Requested number of questions (>= 1)
        weights: Non-negative weights, one per category

    Returns:
        Counts aligned with weights, summing exactly to total
    """
    if total < 1:
        raise ValueError(f"total must be >= 1, got {total}")
    if not weights:
        raise ValueError("weights must not be empty")
    if any(w < 0 for w in weights):
        raise ValueError("weights must be non-negative")

    n = len(weights)
    # Highest weight first, earliest index on ties
    by_weight = sorted(range(n), key=lambda i: (-weights[i], i))

    if total < n:
        keep = set(by_weight[:total])
        return [1 if i in keep else 0 for i in range(n)]

    weight_sum = float(sum(weights))
    if weight_sum <= 0:
        # All-zero weights behave as equal weights
        weights = [1.0] * n
        weight_sum = float(n)

    counts = [max(1, round_half_up(total * w / weight_sum)) for w in weights]

    top = _top_index(weights)
    counts[top] += total - sum(counts)

    if counts[top] < 1:
        excess = 1 - counts[top]
        counts[top] = 1
        for i in reversed(by_weight):
            while excess > 0 and counts[i] > 1:
                counts[i] -= 1
                excess -= 1
            if excess == 0:
                break

    return counts


def shuffle_questions(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """
    Uniformly random presentation order (Fisher-Yates).

    Returns a new list; which items are present never changes.
    """
    rng = rng or random.Random()
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled
