"""
models/session_state.py

Engine-side state machine for one attempt.
Pydantic BaseModel so the API can serialize it directly.

    in_progress --(compare_and_set)--> finalizing --> submitted
                       ^                    |
                       +---- rollback ------+   (finalize write failed)

``submitted`` is terminal.
"""

import threading
from enum import Enum

from pydantic import BaseModel, Field, PrivateAttr


class Phase(str, Enum):
    IN_PROGRESS = "in_progress"
    FINALIZING = "finalizing"
    SUBMITTED = "submitted"


class AttemptState(BaseModel):
    """
    Mutable session state of the attempt being taken.

    Attributes:
        attempt_id:    The attempt this state belongs to.
        phase:         Current state machine phase.
        current_index: Question the student is looking at (0-based).
    """

    attempt_id: str
    phase: Phase = Field(
        default=Phase.IN_PROGRESS,
        description="in_progress / finalizing / submitted"
    )
    current_index: int = Field(
        default=0,
        ge=0,
        description="Current question index (0-based)"
    )

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def accepts_answers(self) -> bool:
        return self.phase == Phase.IN_PROGRESS

    @property
    def is_submitted(self) -> bool:
        return self.phase == Phase.SUBMITTED

    def compare_and_set(self, expected: Phase, new: Phase) -> bool:
        """Atomically move expected -> new. Returns False if the phase was not ``expected``."""
        with self._lock:
            if self.phase != expected:
                return False
            self.phase = new
            return True

    def try_begin_finalize(self) -> bool:
        return self.compare_and_set(Phase.IN_PROGRESS, Phase.FINALIZING)

    def mark_submitted(self) -> None:
        with self._lock:
            self.phase = Phase.SUBMITTED

    def rollback_finalize(self) -> bool:
        return self.compare_and_set(Phase.FINALIZING, Phase.IN_PROGRESS)
