"""Tests for question distribution across categories and presentation shuffle."""

import random

import pytest

from assessment_engine.learning_engine.generator.core import (
    calculate_distribution,
    shuffle_questions,
)


def test_weighted_split():
    """Weights 3:1:1 over 20 questions."""
    assert calculate_distribution(20, [3.0, 1.0, 1.0]) == [12, 4, 4]


def test_rounding_difference_goes_to_top_weight():
    """10 over three equal weights rounds to 3 each; the missing one goes to the first."""
    assert calculate_distribution(10, [1.0, 1.0, 1.0]) == [4, 3, 3]


def test_top_weight_is_first_maximum_not_first_position():
    assert calculate_distribution(11, [1.0, 2.0, 2.0]) == [2, 5, 4]


def test_excess_removed_from_lowest_weights():
    """
    Four equal weights over 6: each rounds up to 2 (sum 8).

    The top category cannot absorb -2, so it keeps 1 and the remaining
    excess comes off the lowest-weight categories.
    """
    counts = calculate_distribution(6, [1.0, 1.0, 1.0, 1.0])

    assert counts == [1, 2, 2, 1]
    assert sum(counts) == 6


def test_every_category_gets_at_least_one():
    counts = calculate_distribution(5, [100.0, 0.01, 0.01, 0.01])

    assert counts == [2, 1, 1, 1]


def test_total_below_category_count_keeps_highest_weights():
    assert calculate_distribution(2, [1.0, 3.0, 2.0]) == [0, 1, 1]


def test_total_below_category_count_ties_go_to_earliest():
    assert calculate_distribution(1, [1.0, 1.0, 1.0]) == [1, 0, 0]


def test_all_zero_weights_split_evenly():
    assert calculate_distribution(9, [0.0, 0.0, 0.0]) == [3, 3, 3]


def test_single_category_takes_everything():
    assert calculate_distribution(17, [0.4]) == [17]


@pytest.mark.parametrize(
    "total,weights",
    [(0, [1.0]), (5, []), (5, [1.0, -1.0])],
)
def test_invalid_input_rejected(total, weights):
    with pytest.raises(ValueError):
        calculate_distribution(total, weights)


def test_shuffle_deterministic_for_seed():
    items = list(range(20))

    first = shuffle_questions(items, random.Random(42))
    second = shuffle_questions(items, random.Random(42))

    assert first == second
    assert sorted(first) == items
    assert items == list(range(20)), "Input must not be mutated"


def test_shuffle_handles_small_inputs():
    assert shuffle_questions([], random.Random(1)) == []
    assert shuffle_questions(["only"], random.Random(1)) == ["only"]
