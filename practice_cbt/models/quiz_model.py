"""
models/quiz_model.py

Read-only practice set content: QuizSet, Question, Option.
Pydantic v2 models, no engine state.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class QuizSet(BaseModel):
    """A practice set as published by the study portal."""

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque set id"
    )
    title: str = Field(
        ...,
        description="Display title"
    )
    description: Optional[str] = Field(
        None,
        description="Free-text description"
    )
    course_code: Optional[str] = Field(
        None,
        description="Course code, e.g. CSC 201"
    )
    level: Optional[str] = Field(
        None,
        description="Study level, e.g. 200"
    )
    time_limit_minutes: Optional[int] = Field(
        None,
        description="Time limit in minutes. None or <= 0 means untimed."
    )

    @property
    def is_timed(self) -> bool:
        return bool(self.time_limit_minutes and self.time_limit_minutes > 0)

    @field_validator("course_code")
    @classmethod
    def normalize_course_code(cls, v: Optional[str]) -> Optional[str]:
        """Collapse whitespace and upper-case ("csc  201" -> "CSC 201")."""
        if v is None:
            return None
        v = " ".join(v.split()).upper()
        return v or None


class Question(BaseModel):
    """A single multiple-choice question, ordered within its set by position."""

    id: str = Field(..., min_length=1)
    set_id: str = Field(..., min_length=1)
    prompt: str = Field(
        ...,
        description="Question text"
    )
    explanation: Optional[str] = Field(
        None,
        description="Shown after submission"
    )
    position: Optional[int] = Field(
        None,
        description="Sort key within the set (None sorts last)"
    )


class Option(BaseModel):
    """An answer option. ``is_correct`` must not leave the engine before submission."""

    id: str = Field(..., min_length=1)
    question_id: str = Field(..., min_length=1)
    text: str = ""
    is_correct: bool = False
    position: Optional[int] = None

    def public_dict(self) -> dict:
        return self.model_dump(exclude={"is_correct"})


def sort_key(item) -> tuple:
    """Order by position with missing positions last, ties broken by id."""
    return (item.position is None, item.position or 0, item.id)
