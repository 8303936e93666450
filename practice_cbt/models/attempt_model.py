"""
models/attempt_model.py

Server-side attempt records: Attempt, AnswerRecord, DailyActivity,
and the local (non-authoritative) LocalDraft snapshot.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class SubmitReason(str, Enum):
    MANUAL = "manual"
    TIMEUP = "timeup"


class Attempt(BaseModel):
    """
    One student's session on one practice set.

    Attributes:
        status:             in_progress -> submitted, exactly once.
        started_at:         Fixed at creation; the deadline derives from it.
        score:              Correct selections, set on submit.
        total_questions:    Full question count of the set, answered or not.
        time_spent_seconds: Clamped to the limit for timed sets, None otherwise.
    """

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    set_id: str = Field(..., min_length=1)
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=utc_now)
    submitted_at: Optional[datetime] = None
    score: Optional[int] = Field(None, ge=0)
    total_questions: Optional[int] = Field(None, ge=0)
    time_spent_seconds: Optional[int] = Field(None, ge=0)
    submit_reason: Optional[SubmitReason] = None

    @property
    def is_submitted(self) -> bool:
        return self.status == AttemptStatus.SUBMITTED

    @model_validator(mode="after")
    def validate_score_bounds(self) -> "Attempt":
        """score can never exceed total_questions."""
        if self.score is not None and self.total_questions is not None:
            if self.score > self.total_questions:
                raise ValueError(
                    f"score({self.score}) exceeds total_questions({self.total_questions})"
                )
        return self


class AnswerRecord(BaseModel):
    """Persisted selection, unique per (attempt_id, question_id)."""

    attempt_id: str
    user_id: str
    question_id: str
    selected_option_id: str
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> tuple:
        return (self.attempt_id, self.question_id)


class DailyActivity(BaseModel):
    """Per-day practice marker used for streaks, unique per (user_id, activity_date)."""

    user_id: str
    activity_date: date
    did_practice: bool = True
    points: int = Field(1, ge=0)
    updated_at: datetime = Field(default_factory=utc_now)


class LocalDraft(BaseModel):
    """
    Local resilience snapshot of answers and flags.

    Stored as ``{"answers": {...}, "flagged": {...}, "updatedAt": <epoch ms>}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    answers: Dict[str, str] = Field(default_factory=dict)
    flagged: Dict[str, bool] = Field(default_factory=dict)
    updated_at: int = Field(
        default_factory=lambda: epoch_ms(utc_now()),
        alias="updatedAt",
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
