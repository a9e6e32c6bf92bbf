"""
Core settlement math.

Pure helpers for session statistics, history transitions, streaks and
recent accuracy. No I/O.
"""

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from assessment_engine.schemas.quiz import SessionStats

STATS_PRECISION = 2


@dataclass
class ResolvedAttempt:
    """A submitted attempt validated against its session assignment."""

    position: int
    question_id: UUID
    category_id: int
    submitted_answer: str
    is_correct: bool
    time_spent_seconds: float
    question_rating_at_selection: float

    @property
    def is_skipped(self) -> bool:
        """Empty answer means skipped; never counted as incorrect."""
        return self.submitted_answer == ""


def compute_session_stats(attempts: Sequence[ResolvedAttempt]) -> SessionStats:
    """
    Aggregate statistics for a session.

    skipped = empty answer; incorrect = answered but wrong. Percentages and
    averages are rounded to two decimals. An empty submission yields zeros.
    """
    total = len(attempts)
    correct = sum(1 for a in attempts if a.is_correct)
    skipped = sum(1 for a in attempts if a.is_skipped)
    incorrect = sum(1 for a in attempts if not a.is_correct and not a.is_skipped)
    total_time = sum(a.time_spent_seconds for a in attempts)

    if total:
        accuracy = round(correct / total * 100.0, STATS_PRECISION)
        avg_time = round(total_time / total, STATS_PRECISION)
    else:
        accuracy = 0.0
        avg_time = 0.0

    return SessionStats(
        total_questions=total,
        correct_answers=correct,
        incorrect_answers=incorrect,
        skipped_answers=skipped,
        accuracy_percentage=accuracy,
        avg_time_per_question=avg_time,
        total_time_seconds=round(total_time, STATS_PRECISION),
    )


def history_transition(queue_priority: int, is_correct: bool, queue_max: int) -> tuple[bool, int]:
    """
    Next (is_retired, queue_priority) after one attempt.

    Correct answers retire the question and clear its queue priority. Misses
    (including skips) un-retire it and bump the priority up to queue_max.
    """
    if is_correct:
        return True, 0
    return False, min(queue_max, queue_priority + 1)


def next_streak(current_streak: int, is_correct: bool) -> int:
    """Consecutive correct answers; a miss resets to 0."""
    return current_streak + 1 if is_correct else 0


def success_rate(correct: int, attempts: int) -> float:
    """correct / attempts clamped to [0, 1]; 0 with no attempts."""
    if attempts <= 0:
        return 0.0
    return max(0.0, min(1.0, correct / attempts))


def recent_accuracy(outcomes: Sequence[bool]) -> float:
    """Fraction of correct outcomes; 0 for an empty window."""
    if not outcomes:
        return 0.0
    return sum(1 for o in outcomes if o) / len(outcomes)
