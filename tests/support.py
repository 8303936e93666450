"""Shared builders for the engine tests."""

from datetime import datetime, timedelta, timezone

from practice_cbt.models.quiz_model import Option, Question, QuizSet
from practice_cbt.services.store import InMemoryStore

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

USER = "student-1"
OTHER_USER = "student-2"
SET_ID = "set-1"

FAST = {"tick_interval": 0.005, "max_retries": 2, "backoff_base": 0}


class FakeClock:
    """Callable ``now()`` that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def correct_option(i: int) -> str:
    return f"q{i}-o1"


def wrong_option(i: int) -> str:
    return f"q{i}-o2"


def build_set(set_id: str = SET_ID, question_count: int = 5, time_limit_minutes=20):
    """question i has options q{i}-o1..o4; o1 is correct."""
    quiz_set = QuizSet(
        id=set_id,
        title=f"Practice {set_id}",
        course_code="csc 201",
        level="200",
        time_limit_minutes=time_limit_minutes,
    )
    questions, options = [], []
    for i in range(1, question_count + 1):
        qid = f"q{i}" if set_id == SET_ID else f"{set_id}-q{i}"
        questions.append(Question(id=qid, set_id=set_id, prompt=f"Question {i}?", explanation=f"Because {i}.", position=i))
        for n in range(1, 5):
            options.append(Option(id=f"{qid}-o{n}", question_id=qid, text=f"Choice {n}", is_correct=(n == 1), position=n))
    return quiz_set, questions, options


def build_store(question_count: int = 5, time_limit_minutes=20) -> InMemoryStore:
    store = InMemoryStore()
    store.add_set(*build_set(SET_ID, question_count, time_limit_minutes))
    store.add_set(*build_set("set-2", 2, None))
    return store
