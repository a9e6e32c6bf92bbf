"""Pydantic schemas for quiz generation, settlement and session views."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from assessment_engine.models.quiz_session import SessionStatus, SessionType

# ============================================================================
# Generation
# ============================================================================


class QuizGenerationRequest(BaseModel):
    """Request to generate an adaptive quiz."""

    learner_id: UUID
    total_questions: int = Field(..., ge=1, le=200, description="Number of questions requested")
    session_type: SessionType = Field(SessionType.PRACTICE, description="Session type profile")
    target_categories: list[int] | None = Field(
        None, description="Explicit category ids (null = top priority categories)"
    )

    @field_validator("target_categories")
    @classmethod
    def dedupe_categories(cls, v: list[int] | None) -> list[int] | None:
        """Drop repeated ids, keeping first occurrence order."""
        if v is None:
            return None
        return list(dict.fromkeys(v))


class QuizQuestionOut(BaseModel):
    """Question as shown to the learner."""

    position: int  # 1-based
    question_id: UUID
    category_id: int
    question_text: str
    options: list
    question_rating: float = Field(..., description="Rating frozen at selection time")
    difficulty_band: str | None = None


class CategoryCount(BaseModel):
    """Requested vs selected questions for one category."""

    category_id: int
    category_name: str | None = None
    weight: float
    requested: int
    selected: int


class QuizGenerationResult(BaseModel):
    """Generated session with its ordered questions."""

    session_id: UUID
    session_type: SessionType
    learner_rating: float
    requested_questions: int
    total_questions: int
    questions: list[QuizQuestionOut]
    category_breakdown: list[CategoryCount]


# ============================================================================
# Settlement
# ============================================================================


class AttemptIn(BaseModel):
    """One answered question submitted for settlement."""

    question_id: UUID
    submitted_answer: str = Field("", max_length=500, description="Empty string = skipped")
    is_correct: bool
    time_spent_seconds: float = Field(0.0, ge=0)
    category_id: int | None = Field(None, description="Defaults to the assignment's category")
    question_rating_at_selection: float | None = Field(
        None, ge=0, description="Defaults to the assignment's frozen rating"
    )

    @model_validator(mode="after")
    def skipped_is_not_correct(self) -> "AttemptIn":
        """A skipped (empty) answer cannot be correct."""
        if self.submitted_answer == "" and self.is_correct:
            raise ValueError("A skipped attempt cannot be marked correct")
        return self


class SessionCompleteRequest(BaseModel):
    """Request to complete (settle) a session."""

    learner_id: UUID
    attempts: list[AttemptIn] = Field(default_factory=list, max_length=200)


class SessionStats(BaseModel):
    """Aggregate statistics of a settled session."""

    total_questions: int
    correct_answers: int
    incorrect_answers: int
    skipped_answers: int
    accuracy_percentage: float
    avg_time_per_question: float
    total_time_seconds: float


class CategoryBreakdownItem(BaseModel):
    """Per-category outcome of a settled session."""

    category_id: int
    attempts: int
    correct: int
    rating_before: float
    rating_after: float
    rating_change: float
    success_rate: float
    recent_accuracy: float
    trend: str


class SessionCompletionResult(BaseModel):
    """Result of settling a session."""

    session_id: UUID
    stats: SessionStats
    previous_rating: float
    new_rating: float
    rating_change: float
    category_breakdown: list[CategoryBreakdownItem]


# ============================================================================
# Session views
# ============================================================================


class QuizSessionOut(BaseModel):
    """Session state."""

    id: UUID
    learner_id: UUID
    session_type: SessionType
    status: SessionStatus
    requested_questions: int
    total_questions: int
    started_at: datetime
    ended_at: datetime | None
    paused_at: datetime | None
    resumed_at: datetime | None
    total_pause_seconds: int
    correct_answers: int
    incorrect_answers: int
    skipped_answers: int
    accuracy_percentage: float | None
    avg_time_per_question: float | None
    rating_change: float | None

    class Config:
        from_attributes = True


# ============================================================================
# History
# ============================================================================


class HistorySummary(BaseModel):
    """Totals over a learner's question history."""

    learner_id: UUID
    total_questions_seen: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    questions_mastered: int = Field(0, description="Retired after a correct answer")
    questions_in_queue: int = Field(0, description="Requeued after misses")
